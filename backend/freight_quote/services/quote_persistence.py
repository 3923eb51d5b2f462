"""Durable record of a rate search and its rates.

Ids are minted up front by ``plan_quote`` so the response can carry the
quote id and the internal rate ids right away. ``persist_quote`` then runs
detached from the response; if it fails the ids simply never resolve and a
later booking against them gets ``NotFound``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from fastapi.encoders import jsonable_encoder

from ..core.config import settings
from ..database import get_db_session
from ..models import AuditAction, QuoteRequest, Rate
from ..schemas.shipment import RateSearchRequest
from ..utils.errors import PersistenceFailure
from ..crud.crud_audit import record_audit
from .dispatcher import batched
from .response_normalizer import NormalizedRate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedRate:
    internal_id: str
    rate: NormalizedRate


@dataclass
class QuotePlan:
    quote_id: str
    client_id: str
    user_id: str
    modes: List[str]
    request: RateSearchRequest
    rates: List[PlannedRate] = field(default_factory=list)

    @property
    def rate_id_map(self) -> Dict[str, str]:
        """Provider rate id -> internal rate id."""
        return {p.rate.id: p.internal_id for p in self.rates}


def plan_quote(
    client_id: str,
    user_id: str,
    request: RateSearchRequest,
    modes: Sequence[str],
    rates: Sequence[NormalizedRate],
) -> QuotePlan:
    return QuotePlan(
        quote_id=str(uuid.uuid4()),
        client_id=client_id,
        user_id=user_id,
        modes=list(modes),
        request=request,
        rates=[PlannedRate(internal_id=str(uuid.uuid4()), rate=r) for r in rates],
    )


def _rate_row(quote_id: str, planned: PlannedRate) -> Rate:
    rate = planned.rate
    return Rate(
        id=planned.internal_id,
        quote_request_id=quote_id,
        provider_rate_id=rate.id,
        mode=rate.mode,
        carrier_name=rate.carrier_name,
        service_name=rate.service_name,
        transit_days=rate.transit_days,
        total_cost=Decimal(str(rate.total_cost)),
        currency=rate.currency,
        raw_json=jsonable_encoder(dict(rate.raw)),
    )


def write_quote(db, plan: QuotePlan, chunk_size: Optional[int] = None) -> None:
    """Write the quote request, then its rates in chunks of ``chunk_size``.

    Raises ``PersistenceFailure`` when any write fails.
    """
    size = chunk_size or settings.PERSIST_CHUNK_SIZE
    payload = jsonable_encoder(plan.request, by_alias=True)
    try:
        db.add(
            QuoteRequest(
                id=plan.quote_id,
                client_id=plan.client_id,
                user_id=plan.user_id,
                origin_postal=plan.request.origin.postal_code,
                destination_postal=plan.request.destination.postal_code,
                ship_date=plan.request.ship_date,
                modes=list(plan.modes),
                request_payload_json=payload,
            )
        )
        db.commit()
        for chunk in batched(plan.rates, size):
            db.add_all([_rate_row(plan.quote_id, p) for p in chunk])
            db.commit()
    except Exception as exc:
        db.rollback()
        raise PersistenceFailure(f"Could not persist quote {plan.quote_id}: {exc}") from exc


def persist_quote(plan: QuotePlan, session_factory=None, chunk_size: Optional[int] = None) -> bool:
    """Background entry point: write the plan and its audit row, never raise."""
    with get_db_session(session_factory) as db:
        try:
            write_quote(db, plan, chunk_size=chunk_size)
        except PersistenceFailure:
            logger.error("Quote %s not persisted; it cannot be booked", plan.quote_id, exc_info=True)
            return False
        record_audit(
            db,
            plan.client_id,
            plan.user_id,
            AuditAction.GET_RATES,
            {"quoteRequestId": plan.quote_id, "ratesCount": len(plan.rates), "modes": plan.modes},
        )
    logger.info("Persisted quote %s with %d rates", plan.quote_id, len(plan.rates))
    return True
