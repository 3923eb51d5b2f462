from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RateRead(_CamelModel):
    id: str  # internal rate id; the only id accepted for booking
    rate_id: Optional[str] = None  # provider-assigned id
    mode: Optional[str] = None
    carrier_name: str
    service_name: str
    transit_days: Optional[int] = None
    total_cost: float
    currency: str = "USD"


class RateSearchResponse(_CamelModel):
    # extra="forbid" keeps the two search responses distinguishable in a Union
    model_config = ConfigDict(extra="forbid")

    request_id: str
    quote_id: Optional[str] = None
    rates: List[RateRead]
    modes: List[str]
    failed_modes: List[str] = []
    rate_tokens_remaining: Optional[int] = None
    rate_tokens_used: Optional[int] = None


class NoRatesResponse(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    request_id: str
    rates: List[RateRead] = []
    no_rates: bool = True
    user_message: str
    modes: List[str]
    failed_modes: List[str] = []


class QuotaRead(_CamelModel):
    client_id: str
    rate_tokens_remaining: int
    rate_tokens_used: int


class ErrorEnvelope(_CamelModel):
    request_id: str
    error_code: str
    message: str
    errors: Optional[dict] = None


def rate_read_from_row(row) -> RateRead:
    """Build a RateRead from a persisted ``Rate`` row."""
    cost = row.total_cost
    return RateRead(
        id=row.id,
        rate_id=row.provider_rate_id,
        mode=row.mode,
        carrier_name=row.carrier_name,
        service_name=row.service_name,
        transit_days=row.transit_days,
        total_cost=float(cost) if isinstance(cost, Decimal) else cost,
        currency=row.currency,
    )


class QuotaTopUp(_CamelModel):
    client_id: str
    tokens: int = Field(..., ge=1, le=10000)
