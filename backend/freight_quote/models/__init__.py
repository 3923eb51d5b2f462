from .client import Client
from .quote_request import QuoteRequest
from .rate import Rate
from .booking import Booking
from .booking_status import BookingStatus
from .audit_log import AuditLog, AuditAction

__all__ = [
    "Client",
    "QuoteRequest",
    "Rate",
    "Booking",
    "BookingStatus",
    "AuditLog",
    "AuditAction",
]
