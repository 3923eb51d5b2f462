import enum

class BookingStatus(str, enum.Enum):
    """Lifecycle of a booking made against a persisted rate."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
