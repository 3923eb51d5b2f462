from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .rates import RateRead


class QuoteSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    origin_postal: Optional[str] = None
    destination_postal: Optional[str] = None
    ship_date: Optional[date] = None
    modes: List[str]
    created_at: datetime
    rates: List[RateRead]


class QuoteList(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quotes: List[QuoteSummary]
    limit: int
    offset: int
