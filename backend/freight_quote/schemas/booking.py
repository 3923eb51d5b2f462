from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from ..models.booking_status import BookingStatus


class BookingCreate(BaseModel):
    """Book against a persisted rate, or against a raw provider rate payload
    when the quote could not be persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quote_id: Optional[str] = None
    rate_id: Optional[str] = None
    rate: Optional[Dict[str, Any]] = None

    @model_validator(mode="before")
    def accept_legacy_names(cls, data: Any) -> Any:
        # Older clients post selectedRateId
        if isinstance(data, dict) and "selectedRateId" in data and "rateId" not in data:
            data = {**data, "rateId": data["selectedRateId"]}
        return data

    @model_validator(mode="after")
    def require_rate_reference(self) -> "BookingCreate":
        if not self.rate_id and not self.rate:
            raise ValueError("rateId or rate is required")
        if self.rate_id and not self.quote_id:
            raise ValueError("quoteId is required when booking by rateId")
        return self


class BookedRate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    carrier_name: str
    service_name: str
    total_cost: float
    currency: str


class BookingResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    request_id: str
    booking_id: str
    quote_id: str
    rate_id: str
    confirmation_number: Optional[str] = None
    status: BookingStatus
    rate: BookedRate
