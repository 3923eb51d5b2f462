from sqlalchemy import Column, Integer, String, CheckConstraint

from .base import BaseModel


class Client(BaseModel):
    """A tenant account; owns the rate-search allowance."""

    __tablename__ = "clients"
    __table_args__ = (
        CheckConstraint("rate_tokens_remaining >= 0", name="ck_clients_tokens_remaining"),
        CheckConstraint("rate_tokens_used >= 0", name="ck_clients_tokens_used"),
    )

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String, nullable=True)
    rate_tokens_remaining = Column(Integer, nullable=False, default=3)
    rate_tokens_used = Column(Integer, nullable=False, default=0)
