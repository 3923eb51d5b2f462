from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from .. import models
from ..models.booking_status import BookingStatus


def create_booking(
    db: Session,
    *,
    client_id: str,
    user_id: str,
    quote_request_id: str,
    rate_id: str,
    confirmation_number: Optional[str],
    booking_id_external: Optional[str] = None,
    raw_json: Optional[Dict[str, Any]] = None,
    new_rows: Iterable[Any] = (),
) -> models.Booking:
    """Insert a pending booking, committing any unsaved rows it points at in the same transaction."""
    db.add_all(new_rows)
    db_booking = models.Booking(
        client_id=client_id,
        user_id=user_id,
        quote_request_id=quote_request_id,
        rate_id=rate_id,
        booking_id_external=booking_id_external,
        confirmation_number=confirmation_number,
        status=BookingStatus.PENDING,
        raw_json=raw_json,
    )
    db.add(db_booking)
    db.commit()
    db.refresh(db_booking)
    return db_booking
