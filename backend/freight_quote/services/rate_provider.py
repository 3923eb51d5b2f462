"""HTTP client for the carrier-rate provider.

The provider authenticates with a username/password login that returns a
bearer token (valid ~1h). The token is cached in Redis so every instance and
every request reuses it; a 401 drops the cached token and the call
re-authenticates once.

Without ``RATE_PROVIDER_RATES_URL`` configured the client serves a fixed
development fixture instead of calling out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import settings
from ..utils import redis_cache
from ..utils.errors import UpstreamModeFailure, UpstreamTransportError
from .request_normalizer import UpstreamRateRequest

logger = logging.getLogger(__name__)

DEV_FIXTURE_RATES: tuple = (
    {"rateId": "mock-rate-1", "carrierName": "FedEx", "serviceName": "Ground", "transitDays": 3, "totalCost": 45.99, "currency": "USD"},
    {"rateId": "mock-rate-2", "carrierName": "UPS", "serviceName": "Standard", "transitDays": 2, "totalCost": 52.50, "currency": "USD"},
    {"rateId": "mock-rate-3", "carrierName": "USPS", "serviceName": "Priority Mail", "transitDays": 1, "totalCost": 38.75, "currency": "USD"},
)


def _token_from_login(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    return (
        data.get("token")
        or data.get("access_token")
        or data.get("authToken")
        or nested.get("accessToken")
    )


def extract_rate_list(data: Any) -> List[Dict[str, Any]]:
    """Pull the list of rate records out of a provider response body."""
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if not isinstance(data, dict):
        return []
    for key in ("rates", "results"):
        if isinstance(data.get(key), list):
            return [r for r in data[key] if isinstance(r, dict)]
    inner = data.get("data")
    if isinstance(inner, list):
        return [r for r in inner if isinstance(r, dict)]
    if isinstance(inner, dict):
        nested = extract_rate_list(inner)
        if nested:
            return nested
    # A single rate returned at the root
    if any(k in data for k in ("rateId", "rate_id", "carrierName", "carrier_name", "carrier")):
        return [data]
    logger.warning("Unexpected rate provider response shape: keys=%s", sorted(data.keys()))
    return []


class RateProviderClient:
    def __init__(
        self,
        rates_url: Optional[str] = None,
        login_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token_ttl: Optional[int] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.rates_url = settings.RATE_PROVIDER_RATES_URL if rates_url is None else rates_url
        self.login_url = settings.RATE_PROVIDER_LOGIN_URL if login_url is None else login_url
        self.username = settings.RATE_PROVIDER_USERNAME if username is None else username
        self.password = settings.RATE_PROVIDER_PASSWORD if password is None else password
        self.token_ttl = settings.RATE_PROVIDER_TOKEN_TTL if token_ttl is None else token_ttl
        self._owns_http = http is None
        # No client-wide timeout: per-call deadlines are applied by the dispatcher
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0))

    @property
    def uses_fixture(self) -> bool:
        return not self.rates_url

    @property
    def requires_login(self) -> bool:
        return bool(self.login_url)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "RateProviderClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _login(self) -> str:
        if not self.username or not self.password:
            raise UpstreamTransportError(
                "Rate provider authentication not configured; set RATE_PROVIDER_USERNAME and RATE_PROVIDER_PASSWORD"
            )
        try:
            resp = await self._http.post(
                self.login_url, json={"username": self.username, "password": self.password}
            )
        except httpx.TransportError as exc:
            logger.error("Rate provider login unreachable: %s", exc, exc_info=True)
            raise UpstreamTransportError("Rate provider unreachable") from exc
        if resp.status_code >= 400:
            logger.error("Rate provider login failed with status %s: %s", resp.status_code, resp.text[:500])
            raise UpstreamTransportError(f"Rate provider login failed ({resp.status_code})")
        try:
            token = _token_from_login(resp.json())
        except ValueError as exc:
            raise UpstreamTransportError("Invalid login response from rate provider") from exc
        if not token:
            raise UpstreamTransportError("No authentication token received from rate provider")
        redis_cache.cache_provider_token(token, self.token_ttl)
        return token

    async def get_token(self) -> Optional[str]:
        if not self.requires_login:
            return None
        cached = redis_cache.get_cached_provider_token()
        if cached:
            return cached
        return await self._login()

    async def prepare(self) -> None:
        """Make sure the provider is reachable and authenticated before fan-out.

        Raises ``UpstreamTransportError`` when it is not.
        """
        if self.uses_fixture:
            return
        await self.get_token()

    async def _post(self, request: UpstreamRateRequest, token: Optional[str]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._http.post(self.rates_url, json=dict(request.payload), headers=headers)

    async def fetch_rates(self, request: UpstreamRateRequest) -> List[Dict[str, Any]]:
        """Return raw rate records for one mode.

        Raises ``UpstreamTransportError`` for connect-level failures and
        ``UpstreamModeFailure`` for anything else that went wrong.
        """
        if self.uses_fixture:
            logger.warning("RATE_PROVIDER_RATES_URL not configured, returning fixture rates for %s", request.mode)
            return [dict(r, rateId=f"{r['rateId']}-{request.mode.lower()}") for r in DEV_FIXTURE_RATES]

        token = await self.get_token()
        try:
            resp = await self._post(request, token)
            if resp.status_code == 401 and self.requires_login:
                redis_cache.clear_provider_token()
                token = await self._login()
                resp = await self._post(request, token)
        except httpx.ConnectError as exc:
            raise UpstreamTransportError("Rate provider unreachable") from exc
        except httpx.HTTPError as exc:
            raise UpstreamModeFailure(request.mode, f"transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamModeFailure(request.mode, f"status {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamModeFailure(request.mode, "invalid JSON") from exc
        return extract_rate_list(data)
