"""Rate-search pipeline.

normalize request -> quota pre-check -> dispatch per mode -> normalize
responses -> quota commit (only with rates) -> plan persistence.

Persistence and the CRM hand-off are left to the caller to schedule after
the response; nothing here waits on them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ..schemas.shipment import RateSearchRequest
from . import quota
from .dispatcher import UpstreamDispatcher
from .quote_persistence import QuotePlan, plan_quote
from .rate_provider import RateProviderClient
from .request_normalizer import LocationResolver, build_upstream_requests
from .response_normalizer import NoRatesOutcome, NormalizedRate, no_rates_outcome, normalize_rates

logger = logging.getLogger(__name__)


@dataclass
class RateSearchResult:
    plan: QuotePlan
    quota: quota.QuotaSnapshot
    failed_modes: List[str] = field(default_factory=list)

    @property
    def rates(self) -> List[NormalizedRate]:
        return [p.rate for p in self.plan.rates]


async def search_rates(
    db: Session,
    client_id: str,
    user_id: str,
    request: RateSearchRequest,
    provider: RateProviderClient,
    dispatcher: Optional[UpstreamDispatcher] = None,
    resolver: Optional[LocationResolver] = None,
) -> Union[RateSearchResult, NoRatesOutcome]:
    """Run one rate search for ``client_id``.

    Raises ``ValidationError``/``QuotaExhausted`` before any upstream call and
    ``UpstreamTransportError`` when the provider is unreachable.
    """
    upstream_requests = build_upstream_requests(request, resolver=resolver)
    modes = [r.mode for r in upstream_requests]

    pre = await run_in_threadpool(quota.check_quota, db, client_id)

    dispatcher = dispatcher or UpstreamDispatcher(provider)
    dispatched = await dispatcher.dispatch(upstream_requests)

    rates = normalize_rates(dispatched.rates)
    if not rates:
        logger.info("No rates for client %s modes=%s failed=%s", client_id, modes, dispatched.failed_modes)
        return no_rates_outcome(modes, dispatched.failed_modes)

    try:
        snapshot = await run_in_threadpool(quota.commit_quota, db, client_id)
    except Exception:
        # Bookkeeping never blocks a search that produced rates
        logger.warning("Quota commit failed for client %s", client_id, exc_info=True)
        snapshot = pre
    else:
        if not snapshot.committed:
            logger.warning("Client %s returned rates without spending a token (lost race)", client_id)

    plan = plan_quote(client_id, user_id, request, modes, rates)
    logger.info(
        "Rate search client=%s quote=%s modes=%s rates=%d failed=%s",
        client_id,
        plan.quote_id,
        modes,
        len(rates),
        dispatched.failed_modes,
    )
    return RateSearchResult(plan=plan, quota=snapshot, failed_modes=dispatched.failed_modes)
