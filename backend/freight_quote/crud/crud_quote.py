from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from .. import models


def get_quote_for_client(db: Session, quote_id: str, client_id: str) -> Optional[models.QuoteRequest]:
    """Return a quote request only if it belongs to ``client_id``."""
    return (
        db.query(models.QuoteRequest)
        .options(selectinload(models.QuoteRequest.rates))
        .filter(
            models.QuoteRequest.id == quote_id,
            models.QuoteRequest.client_id == client_id,
        )
        .first()
    )


def get_rate_for_quote(db: Session, quote_id: str, rate_id: str) -> Optional[models.Rate]:
    return (
        db.query(models.Rate)
        .filter(models.Rate.id == rate_id, models.Rate.quote_request_id == quote_id)
        .first()
    )


def find_rate_by_provider_id(db: Session, quote_id: str, provider_rate_id: str) -> Optional[models.Rate]:
    return (
        db.query(models.Rate)
        .filter(
            models.Rate.quote_request_id == quote_id,
            models.Rate.provider_rate_id == provider_rate_id,
        )
        .first()
    )


def list_quotes(
    db: Session,
    client_id: str,
    user_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    origin_postal: Optional[str] = None,
    destination_postal: Optional[str] = None,
    carrier: Optional[str] = None,
) -> List[models.QuoteRequest]:
    """Newest-first quote history for a client, optionally narrowed to one user."""
    query = (
        db.query(models.QuoteRequest)
        .options(selectinload(models.QuoteRequest.rates))
        .filter(models.QuoteRequest.client_id == client_id)
    )
    if user_id:
        query = query.filter(models.QuoteRequest.user_id == user_id)
    if origin_postal:
        query = query.filter(models.QuoteRequest.origin_postal == origin_postal)
    if destination_postal:
        query = query.filter(models.QuoteRequest.destination_postal == destination_postal)
    if carrier:
        query = query.filter(
            models.QuoteRequest.rates.any(
                func.lower(models.Rate.carrier_name).contains(carrier.strip().lower())
            )
        )
    return (
        query.order_by(models.QuoteRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
