import asyncio

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from freight_quote.models import AuditAction, AuditLog, Booking, BookingStatus, QuoteRequest, Rate
from freight_quote.models.base import BaseModel
from freight_quote.schemas import RateSearchRequest
from freight_quote.services.booking_resolver import BookingGateway, locate_rate, resolve_booking
from freight_quote.services.quota import get_or_create_client
from freight_quote.services.quote_persistence import plan_quote, write_quote
from freight_quote.services.response_normalizer import normalize_rates
from freight_quote.utils.errors import NotFound, UpstreamTransportError


def setup_db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    return Session()


def _persisted_plan(db, client_id="acme"):
    get_or_create_client(db, client_id)
    request = RateSearchRequest.model_validate({
        "origin": {"postalCode": "60601"},
        "destination": {"postalCode": "30301"},
        "lines": [{"weight": 500}],
    })
    rates = normalize_rates([
        {"rateId": "p-1", "carrierName": "FedEx", "serviceName": "Ground", "totalCost": 45.99},
        {"rateId": "p-2", "carrierName": "UPS", "totalCost": 52.50},
    ])
    plan = plan_quote(client_id, "u1", request, ["LTL"], rates)
    write_quote(db, plan)
    return plan


def test_books_persisted_rate_with_local_confirmation():
    db = setup_db()
    plan = _persisted_plan(db)
    target = plan.rates[0]

    resolved = asyncio.run(resolve_booking(db, "acme", "u1", plan.quote_id, rate_id=target.internal_id))

    assert resolved.rate.id == target.internal_id
    assert resolved.booking.status == BookingStatus.PENDING
    assert resolved.booking.confirmation_number.startswith("CONF-")
    assert len(resolved.booking.confirmation_number) == len("CONF-") + 9
    audit = db.query(AuditLog).one()
    assert audit.action == AuditAction.CREATE_BOOKING
    assert audit.metadata_json["bookingId"] == resolved.booking.id


def test_unknown_quote_is_not_found_and_writes_nothing():
    db = setup_db()
    with pytest.raises(NotFound) as exc:
        asyncio.run(resolve_booking(db, "acme", "u1", "missing-quote", rate_id="x"))
    assert exc.value.error_code == "QUOTE_NOT_FOUND"
    assert db.query(Booking).count() == 0


def test_quote_of_another_client_is_not_found():
    db = setup_db()
    plan = _persisted_plan(db, client_id="other")
    with pytest.raises(NotFound):
        locate_rate(db, "acme", "u1", plan.quote_id, plan.rates[0].internal_id)


def test_rate_from_another_quote_is_not_found():
    db = setup_db()
    plan = _persisted_plan(db)
    with pytest.raises(NotFound) as exc:
        asyncio.run(resolve_booking(db, "acme", "u1", plan.quote_id, rate_id="p-1"))
    assert exc.value.error_code == "RATE_NOT_FOUND"
    assert db.query(Booking).count() == 0


def test_raw_rate_fallback_when_quote_was_never_stored():
    db = setup_db()
    raw = {"rateId": "p-9", "carrier": "Estes", "total": "210.00"}
    resolved = asyncio.run(resolve_booking(db, "acme", "u1", None, raw_rate=raw))

    assert resolved.rate.carrier_name == "Estes"
    assert float(resolved.rate.total_cost) == 210.0
    quote = db.get(QuoteRequest, resolved.booking.quote_request_id)
    assert quote.request_payload_json["source"] == "booking_fallback"
    assert db.query(Booking).count() == 1


def test_raw_rate_on_stored_quote_reuses_matching_rate():
    db = setup_db()
    plan = _persisted_plan(db)
    raw = {"rateId": "p-2", "carrierName": "UPS", "totalCost": 52.50}
    located = locate_rate(db, "acme", "u1", plan.quote_id, raw_rate=raw)
    assert located.rate.id == plan.rate_id_map["p-2"]
    assert located.unsaved is False
    assert db.query(Rate).count() == 2


def test_raw_rate_not_on_stored_quote_is_not_found():
    db = setup_db()
    plan = _persisted_plan(db)
    raw = {"rateId": "never-quoted", "carrierName": "FedEx", "totalCost": 0.01}
    with pytest.raises(NotFound) as exc:
        asyncio.run(resolve_booking(db, "acme", "u1", plan.quote_id, raw_rate=raw))
    assert exc.value.error_code == "RATE_NOT_FOUND"
    assert db.query(Rate).count() == 2
    assert db.query(Booking).count() == 0


def test_unknown_quote_with_raw_rate_is_not_found():
    db = setup_db()
    raw = {"carrier": "X", "total": 5}
    with pytest.raises(NotFound) as exc:
        asyncio.run(resolve_booking(db, "acme", "u1", "no-such-quote", raw_rate=raw))
    assert exc.value.error_code == "QUOTE_NOT_FOUND"
    assert db.query(QuoteRequest).count() == 0
    assert db.query(Booking).count() == 0


def test_raw_rate_of_another_clients_quote_is_not_found():
    db = setup_db()
    plan = _persisted_plan(db, client_id="other")
    raw = {"rateId": "p-1", "carrierName": "FedEx", "totalCost": 45.99}
    with pytest.raises(NotFound):
        locate_rate(db, "acme", "u1", plan.quote_id, raw_rate=raw)
    assert db.query(QuoteRequest).count() == 1


def test_gateway_confirmation_is_used():
    db = setup_db()
    plan = _persisted_plan(db)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"bookingId": "BK-1", "confirmationNumber": "PRO123", "status": "CONFIRMED"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            gateway = BookingGateway(url="https://gw.test/book", api_key="k", http=http)
            return await resolve_booking(db, "acme", "u1", plan.quote_id, rate_id=plan.rates[0].internal_id, gateway=gateway)

    resolved = asyncio.run(run())
    assert seen["auth"] == "Bearer k"
    assert resolved.booking.confirmation_number == "PRO123"
    assert resolved.booking.booking_id_external == "BK-1"


def test_gateway_failure_creates_no_booking():
    db = setup_db()
    plan = _persisted_plan(db)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "down"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            gateway = BookingGateway(url="https://gw.test/book", api_key="k", http=http)
            await resolve_booking(db, "acme", "u1", plan.quote_id, rate_id=plan.rates[0].internal_id, gateway=gateway)

    with pytest.raises(UpstreamTransportError):
        asyncio.run(run())
    assert db.query(Booking).count() == 0


def test_gateway_failure_on_raw_rate_leaves_no_fallback_rows():
    db = setup_db()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "down"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            gateway = BookingGateway(url="https://gw.test/book", api_key="k", http=http)
            await resolve_booking(db, "acme", "u1", None, raw_rate={"rateId": "p-9", "carrier": "Estes", "total": 210}, gateway=gateway)

    with pytest.raises(UpstreamTransportError):
        asyncio.run(run())
    assert db.query(QuoteRequest).count() == 0
    assert db.query(Rate).count() == 0
    assert db.query(Booking).count() == 0
