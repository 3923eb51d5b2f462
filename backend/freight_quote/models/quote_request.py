import uuid

from sqlalchemy import Column, String, Date, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel


class QuoteRequest(BaseModel):
    __tablename__ = "quote_requests"

    id                   = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id            = Column(String(64), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id              = Column(String(64), nullable=False, index=True)
    origin_postal        = Column(String, nullable=True, index=True)
    destination_postal   = Column(String, nullable=True, index=True)
    ship_date            = Column(Date, nullable=True)
    modes                = Column(JSON, nullable=False, default=list)
    request_payload_json = Column(JSON, nullable=False)

    rates = relationship(
        "Rate",
        back_populates="quote_request",
        cascade="all, delete-orphan",
        order_by="Rate.total_cost",
    )
    bookings = relationship("Booking", back_populates="quote_request")
