import uuid

from sqlalchemy import Column, String, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel
from .booking_status import BookingStatus
from .types import CaseInsensitiveEnum

class Booking(BaseModel):
    __tablename__ = "bookings"

    id                  = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id           = Column(String(64), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id             = Column(String(64), nullable=False, index=True)
    quote_request_id    = Column(String(36), ForeignKey("quote_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    rate_id             = Column(String(36), ForeignKey("rates.id"), nullable=False)
    booking_id_external = Column(String, nullable=True)
    confirmation_number = Column(String, nullable=True)
    status              = Column(
        CaseInsensitiveEnum(BookingStatus, name="bookingstatus"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    raw_json            = Column(JSON, nullable=True)

    # Relationships
    quote_request = relationship("QuoteRequest", back_populates="bookings")
    rate          = relationship("Rate")
