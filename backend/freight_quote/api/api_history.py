from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .. import models, schemas
from ..crud import crud_quote
from ..services import quota
from ..utils.errors import NotFound
from .dependencies import Principal, get_current_principal, get_db, require_admin

router = APIRouter(tags=["quotes"])


def _quote_summary(quote: models.QuoteRequest) -> schemas.QuoteSummary:
    return schemas.QuoteSummary(
        id=quote.id,
        user_id=quote.user_id,
        origin_postal=quote.origin_postal,
        destination_postal=quote.destination_postal,
        ship_date=quote.ship_date,
        modes=list(quote.modes or []),
        created_at=quote.created_at,
        rates=[schemas.rate_read_from_row(r) for r in quote.rates],
    )


def _quota_read(snapshot: quota.QuotaSnapshot) -> schemas.QuotaRead:
    return schemas.QuotaRead(
        client_id=snapshot.client_id,
        rate_tokens_remaining=snapshot.remaining,
        rate_tokens_used=snapshot.used,
    )


@router.get("/quotes", response_model=schemas.QuoteList)
def list_quotes(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    origin_postal: Optional[str] = Query(None, alias="originPostal"),
    destination_postal: Optional[str] = Query(None, alias="destinationPostal"),
    carrier: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Quote history for the caller's client, newest first.

    Plain users only see their own searches.
    """
    quotes = crud_quote.list_quotes(
        db,
        principal.client_id,
        user_id=None if principal.is_admin else principal.user_id,
        limit=limit,
        offset=offset,
        origin_postal=origin_postal,
        destination_postal=destination_postal,
        carrier=carrier,
    )
    return schemas.QuoteList(quotes=[_quote_summary(q) for q in quotes], limit=limit, offset=offset)


@router.get("/quotes/{quote_id}", response_model=schemas.QuoteSummary)
def read_quote(
    quote_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    quote = crud_quote.get_quote_for_client(db, quote_id, principal.client_id)
    if quote is None or (not principal.is_admin and quote.user_id != principal.user_id):
        raise NotFound("quote", quote_id)
    return _quote_summary(quote)


@router.get("/quota", response_model=schemas.QuotaRead)
async def read_quota(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    snapshot = await run_in_threadpool(quota.read_quota, db, principal.client_id)
    return _quota_read(snapshot)


@router.post("/quota/top-up", response_model=schemas.QuotaRead)
def top_up_quota(
    body: schemas.QuotaTopUp,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin),
):
    return _quota_read(quota.top_up(db, body.client_id, body.tokens))
