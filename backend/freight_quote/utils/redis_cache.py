import logging
import os
from typing import Optional

import redis

from freight_quote.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


class _NullRedis:
    """No-op Redis client used when Redis is disabled or unavailable.

    Methods mirror the minimal surface used in this codebase so callers can
    proceed without needing try/except around get_redis_client().
    """

    def get(self, key: str):
        return None

    def setex(self, key: str, expire: int, value: str):
        return None

    def delete(self, key: str):
        return 0

    def close(self):
        return None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        url = (os.getenv("REDIS_URL") or settings.REDIS_URL or "").strip()
        # Allow disabling via empty/none/disabled/false
        if not url or url.lower() in {"none", "disabled", "false", "0"}:
            _redis_client = _NullRedis()  # type: ignore[assignment]
            return _redis_client
        # Conservative socket timeouts so a slow Redis never stalls a search
        _redis_client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=float(os.getenv("REDIS_CONNECT_TIMEOUT", "0.5")),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "0.5")),
        )
    return _redis_client


def close_redis_client() -> None:
    """Close the Redis connection pool if it was created."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


PROVIDER_TOKEN_KEY = "provider:auth_token"


def get_cached_provider_token() -> Optional[str]:
    client = get_redis_client()
    try:
        value = client.get(PROVIDER_TOKEN_KEY)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not read provider token from cache: %s", exc)
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return value or None


def cache_provider_token(token: str, expire: int) -> None:
    client = get_redis_client()
    try:
        client.setex(PROVIDER_TOKEN_KEY, max(1, int(expire)), token)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not cache provider token: %s", exc)


def clear_provider_token() -> None:
    client = get_redis_client()
    try:
        client.delete(PROVIDER_TOKEN_KEY)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not clear provider token: %s", exc)
