import uuid

from sqlalchemy import Column, Integer, Numeric, String, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel


class Rate(BaseModel):
    """A persisted normalized rate.

    ``id`` is the internal rate id handed to clients for booking;
    ``provider_rate_id`` is whatever the provider called it.
    """

    __tablename__ = "rates"

    id               = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_request_id = Column(String(36), ForeignKey("quote_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_rate_id = Column(String, nullable=True)
    mode             = Column(String(16), nullable=True)
    carrier_name     = Column(String, nullable=False)
    service_name     = Column(String, nullable=False)
    transit_days     = Column(Integer, nullable=True)
    total_cost       = Column(Numeric(10, 2), nullable=False)
    currency         = Column(String(3), nullable=False, default="USD")
    raw_json         = Column(JSON, nullable=True)

    quote_request = relationship("QuoteRequest", back_populates="rates")
