import enum
import uuid

from sqlalchemy import Column, String, JSON, ForeignKey

from .base import BaseModel
from .types import CaseInsensitiveEnum


class AuditAction(str, enum.Enum):
    GET_RATES = "get_rates"
    CREATE_BOOKING = "create_booking"


class AuditLog(BaseModel):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(64), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    action = Column(CaseInsensitiveEnum(AuditAction, name="auditaction"), nullable=False)
    metadata_json = Column(JSON, nullable=True)
