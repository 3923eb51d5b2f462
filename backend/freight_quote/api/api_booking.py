import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..services.booking_resolver import BookingGateway, resolve_booking
from .dependencies import Principal, get_booking_gateway, get_current_principal, get_db

router = APIRouter(tags=["booking"])
logger = logging.getLogger(__name__)


@router.post("/book", response_model=schemas.BookingResponse)
async def create_booking(
    body: schemas.BookingCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway: BookingGateway = Depends(get_booking_gateway),
):
    resolved = await resolve_booking(
        db,
        principal.client_id,
        principal.user_id,
        body.quote_id,
        rate_id=body.rate_id,
        raw_rate=body.rate,
        gateway=gateway,
    )
    booking, rate = resolved.booking, resolved.rate
    return schemas.BookingResponse(
        request_id=str(uuid.uuid4()),
        booking_id=booking.id,
        quote_id=booking.quote_request_id,
        rate_id=rate.id,
        confirmation_number=booking.confirmation_number,
        status=booking.status,
        rate=schemas.BookedRate(
            carrier_name=rate.carrier_name,
            service_name=rate.service_name,
            total_cost=float(rate.total_cost),
            currency=rate.currency,
        ),
    )
