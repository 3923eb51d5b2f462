"""Per-client rate-search allowance.

``check_quota`` is the fail-fast gate run before any upstream call.
``commit_quota`` spends one token after a search produced rates. The spend
is a single conditional UPDATE ... RETURNING, so the database decides which
of several racing requests gets the last token; no read-then-write happens
in Python.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models import Client
from ..utils.errors import QuotaExhausted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaSnapshot:
    client_id: str
    remaining: int
    used: int
    committed: bool = False


def get_or_create_client(db: Session, client_id: str, allowance: Optional[int] = None) -> Client:
    """Return the client row, creating it with the default allowance if absent."""
    # Counters change through bulk UPDATEs; never trust the identity map here
    client = db.get(Client, client_id, populate_existing=True)
    if client is not None:
        return client
    client = Client(
        id=client_id,
        rate_tokens_remaining=settings.DEFAULT_RATE_TOKENS if allowance is None else allowance,
        rate_tokens_used=0,
    )
    db.add(client)
    try:
        db.commit()
    except IntegrityError:
        # Another request created it first
        db.rollback()
        client = db.get(Client, client_id)
    else:
        db.refresh(client)
    return client


def check_quota(db: Session, client_id: str) -> QuotaSnapshot:
    """Raise ``QuotaExhausted`` when the client has no searches left."""
    client = get_or_create_client(db, client_id)
    remaining = client.rate_tokens_remaining or 0
    used = client.rate_tokens_used or 0
    if remaining <= 0:
        logger.info("Quota exhausted for client %s (used=%s)", client_id, used)
        raise QuotaExhausted(client_id, used=used)
    return QuotaSnapshot(client_id=client_id, remaining=remaining, used=used)


def commit_quota(db: Session, client_id: str) -> QuotaSnapshot:
    """Atomically spend one token and return the post-decrement counters.

    ``committed`` is False when no token was left to spend (another request
    won the race); the counters then reflect the current row.
    """
    stmt = (
        update(Client)
        .where(Client.id == client_id, Client.rate_tokens_remaining > 0)
        .values(
            rate_tokens_remaining=Client.rate_tokens_remaining - 1,
            rate_tokens_used=Client.rate_tokens_used + 1,
        )
        .returning(Client.rate_tokens_remaining, Client.rate_tokens_used)
        .execution_options(synchronize_session=False)
    )
    try:
        row = db.execute(stmt).first()
        db.commit()
    except Exception:
        db.rollback()
        raise
    if row is not None:
        return QuotaSnapshot(client_id=client_id, remaining=row[0], used=row[1], committed=True)

    logger.warning("Quota commit for client %s found no remaining tokens", client_id)
    current = db.get(Client, client_id, populate_existing=True)
    if current is None:
        return QuotaSnapshot(client_id=client_id, remaining=0, used=0)
    return QuotaSnapshot(
        client_id=client_id,
        remaining=current.rate_tokens_remaining,
        used=current.rate_tokens_used,
    )


def top_up(db: Session, client_id: str, tokens: int) -> QuotaSnapshot:
    """Add ``tokens`` to a client's remaining allowance."""
    if tokens < 0:
        raise ValueError("tokens must be >= 0")
    get_or_create_client(db, client_id)
    stmt = (
        update(Client)
        .where(Client.id == client_id)
        .values(rate_tokens_remaining=Client.rate_tokens_remaining + tokens)
        .returning(Client.rate_tokens_remaining, Client.rate_tokens_used)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    db.commit()
    return QuotaSnapshot(client_id=client_id, remaining=row[0], used=row[1])


def read_quota(db: Session, client_id: str) -> QuotaSnapshot:
    client = get_or_create_client(db, client_id)
    return QuotaSnapshot(
        client_id=client_id,
        remaining=client.rate_tokens_remaining,
        used=client.rate_tokens_used,
    )
