import logging
import uuid
from typing import Union

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..services.crm_sync import build_rate_summary, push_rate_summary
from ..services.quote_persistence import persist_quote
from ..services.rate_provider import RateProviderClient
from ..services.rate_search import RateSearchResult, search_rates
from .dependencies import Principal, get_current_principal, get_db, get_rate_provider, get_session_factory

router = APIRouter(tags=["rates"])
logger = logging.getLogger(__name__)


def _rate_reads(result: RateSearchResult):
    return [
        schemas.RateRead(
            id=p.internal_id,
            rate_id=p.rate.id,
            mode=p.rate.mode,
            carrier_name=p.rate.carrier_name,
            service_name=p.rate.service_name,
            transit_days=p.rate.transit_days,
            total_cost=p.rate.total_cost,
            currency=p.rate.currency,
        )
        for p in result.plan.rates
    ]


@router.post("/rates", response_model=Union[schemas.RateSearchResponse, schemas.NoRatesResponse])
async def get_rates(
    body: schemas.RateSearchRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    provider: RateProviderClient = Depends(get_rate_provider),
    session_factory=Depends(get_session_factory),
):
    """Search rates across the requested freight modes.

    A search that yields no rates is a normal 200 carrying ``noRates`` and a
    user-facing message; it does not spend a token.
    """
    request_id = str(uuid.uuid4())
    outcome = await search_rates(db, principal.client_id, principal.user_id, body, provider)

    if not isinstance(outcome, RateSearchResult):
        return schemas.NoRatesResponse(
            request_id=request_id,
            user_message=outcome.message,
            modes=outcome.modes,
            failed_modes=outcome.failed_modes,
        )

    # Both run after the response is sent; neither can change it.
    background_tasks.add_task(persist_quote, outcome.plan, session_factory)
    background_tasks.add_task(
        push_rate_summary,
        build_rate_summary(body, outcome.rates, outcome.plan.modes, quote_id=outcome.plan.quote_id),
    )

    return schemas.RateSearchResponse(
        request_id=request_id,
        quote_id=outcome.plan.quote_id,
        rates=_rate_reads(outcome),
        modes=outcome.plan.modes,
        failed_modes=outcome.failed_modes,
        rate_tokens_remaining=outcome.quota.remaining,
        rate_tokens_used=outcome.quota.used,
    )
