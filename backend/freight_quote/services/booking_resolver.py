"""Turn a quote reference plus a rate reference into a pending booking."""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..crud import crud_booking, crud_quote
from ..crud.crud_audit import record_audit
from ..utils.errors import NotFound, UpstreamTransportError, ValidationError
from .quota import get_or_create_client
from .response_normalizer import normalize_rate

logger = logging.getLogger(__name__)


@dataclass
class GatewayConfirmation:
    booking_id: Optional[str]
    confirmation_number: Optional[str]
    status: Optional[str]
    details: Dict[str, Any]


class BookingGateway:
    """Client for the provider's booking endpoint."""

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None, http: Optional[httpx.AsyncClient] = None):
        self.url = settings.BOOKING_GATEWAY_URL if url is None else url
        self.api_key = settings.BOOKING_GATEWAY_API_KEY if api_key is None else api_key
        self._http = http

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    async def book(self, quote: models.QuoteRequest, rate: models.Rate) -> GatewayConfirmation:
        body = {
            "quoteRequest": quote.request_payload_json,
            "rate": {
                "rateId": rate.provider_rate_id,
                "carrierName": rate.carrier_name,
                "serviceName": rate.service_name,
                "totalCost": float(rate.total_cost),
                "currency": rate.currency,
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self._http is not None:
                resp = await self._http.post(self.url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as http:
                    resp = await http.post(self.url, json=body, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Booking gateway call failed: %s", exc, exc_info=True)
            raise UpstreamTransportError("Failed to create booking with shipping provider") from exc
        if not isinstance(data, dict):
            data = {"response": data}
        return GatewayConfirmation(
            booking_id=data.get("bookingId") or data.get("id"),
            confirmation_number=data.get("confirmationNumber") or data.get("confirmation"),
            status=data.get("status"),
            details=data,
        )


@dataclass
class ResolvedBooking:
    booking: models.Booking
    rate: models.Rate


@dataclass
class LocatedRate:
    quote: models.QuoteRequest
    rate: models.Rate
    unsaved: bool = False


def generate_confirmation_number() -> str:
    return f"CONF-{secrets.token_hex(5).upper()[:9]}"


def _rate_from_raw(quote: models.QuoteRequest, raw_rate: Dict[str, Any]) -> models.Rate:
    normalized = normalize_rate(raw_rate)
    if normalized is None:
        raise ValidationError("Rate payload is not a usable rate", {"rate": "invalid"})
    return models.Rate(
        id=str(uuid.uuid4()),
        quote_request_id=quote.id,
        provider_rate_id=normalized.id,
        mode=normalized.mode,
        carrier_name=normalized.carrier_name,
        service_name=normalized.service_name,
        transit_days=normalized.transit_days,
        total_cost=Decimal(str(normalized.total_cost)),
        currency=normalized.currency,
        raw_json=jsonable_encoder(raw_rate),
    )


def _fallback_quote(client_id: str, user_id: str, raw_rate: Dict[str, Any]) -> models.QuoteRequest:
    """Build a minimal quote for a rate whose original search was never stored.

    The row is not added to the session; it is written together with the
    booking that needs it.
    """
    return models.QuoteRequest(
        id=str(uuid.uuid4()),
        client_id=client_id,
        user_id=user_id,
        modes=[],
        request_payload_json={"source": "booking_fallback", "rate": jsonable_encoder(raw_rate)},
    )


def _stored_rate_for_raw(db: Session, quote: models.QuoteRequest, raw_rate: Dict[str, Any]) -> models.Rate:
    normalized = normalize_rate(raw_rate)
    if normalized is None:
        raise ValidationError("Rate payload is not a usable rate", {"rate": "invalid"})
    rate = crud_quote.find_rate_by_provider_id(db, quote.id, normalized.id)
    if rate is None:
        raise NotFound("rate", normalized.id)
    return rate


def locate_rate(
    db: Session,
    client_id: str,
    user_id: str,
    quote_id: Optional[str],
    rate_id: Optional[str] = None,
    raw_rate: Optional[Dict[str, Any]] = None,
) -> LocatedRate:
    """Resolve the quote and the rate being booked.

    Raises ``NotFound`` when a referenced quote or rate does not resolve for
    this client. A raw rate only stands in for a stored one when no quote is
    referenced at all; those fallback rows come back unsaved.
    """
    if not quote_id:
        if not raw_rate:
            raise NotFound("quote", quote_id)
        quote = _fallback_quote(client_id, user_id, raw_rate)
        return LocatedRate(quote, _rate_from_raw(quote, raw_rate), unsaved=True)

    quote = crud_quote.get_quote_for_client(db, quote_id, client_id)
    if quote is None:
        raise NotFound("quote", quote_id)

    if rate_id:
        rate = crud_quote.get_rate_for_quote(db, quote.id, rate_id)
        if rate is None:
            raise NotFound("rate", rate_id)
        return LocatedRate(quote, rate)
    return LocatedRate(quote, _stored_rate_for_raw(db, quote, raw_rate or {}))


def _write_booking(db: Session, located: LocatedRate, client_id: str, user_id: str, **fields) -> models.Booking:
    new_rows = ()
    if located.unsaved:
        get_or_create_client(db, client_id)
        new_rows = (located.quote, located.rate)
    return crud_booking.create_booking(
        db,
        client_id=client_id,
        user_id=user_id,
        quote_request_id=located.quote.id,
        rate_id=located.rate.id,
        new_rows=new_rows,
        **fields,
    )


async def resolve_booking(
    db: Session,
    client_id: str,
    user_id: str,
    quote_id: Optional[str],
    rate_id: Optional[str] = None,
    raw_rate: Optional[Dict[str, Any]] = None,
    gateway: Optional[BookingGateway] = None,
) -> ResolvedBooking:
    located = await run_in_threadpool(locate_rate, db, client_id, user_id, quote_id, rate_id, raw_rate)
    quote, rate = located.quote, located.rate

    confirmation: Optional[GatewayConfirmation] = None
    if gateway is not None and gateway.configured:
        confirmation = await gateway.book(quote, rate)
    else:
        logger.warning("Booking gateway not configured; issuing a local confirmation number")

    booking = await run_in_threadpool(
        _write_booking,
        db,
        located,
        client_id,
        user_id,
        confirmation_number=(confirmation and confirmation.confirmation_number) or generate_confirmation_number(),
        booking_id_external=confirmation.booking_id if confirmation else None,
        raw_json=confirmation.details if confirmation else None,
    )
    if located.unsaved:
        logger.info("Stored fallback quote %s for unpersisted rate", quote.id)
    await run_in_threadpool(
        record_audit,
        db,
        client_id,
        user_id,
        models.AuditAction.CREATE_BOOKING,
        {"bookingId": booking.id, "quoteRequestId": quote.id, "rateId": rate.id},
    )
    logger.info("Created booking %s for quote %s rate %s", booking.id, quote.id, rate.id)
    return ResolvedBooking(booking=booking, rate=rate)
