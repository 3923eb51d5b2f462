import asyncio

import fakeredis
import httpx
import pytest

from freight_quote.services.rate_provider import RateProviderClient, extract_rate_list
from freight_quote.services.request_normalizer import UpstreamRateRequest
from freight_quote.utils import redis_cache
from freight_quote.utils.errors import UpstreamModeFailure, UpstreamTransportError

LOGIN_URL = "https://provider.test/login"
RATES_URL = "https://provider.test/rates"


@pytest.fixture
def fake_redis(monkeypatch):
    fake = fakeredis.FakeStrictRedis(decode_responses=True)
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: fake)
    return fake


def _request(mode="LTL"):
    return UpstreamRateRequest(mode=mode, payload={"rateTypesList": [mode]})


def _run(handler, coro_fn, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RateProviderClient(
                rates_url=kwargs.get("rates_url", RATES_URL),
                login_url=LOGIN_URL,
                username="svc",
                password="pw",
                token_ttl=60,
                http=http,
            )
            return await coro_fn(client)

    return asyncio.run(run())


def test_logs_in_once_and_caches_token(fake_redis):
    calls = {"login": 0, "rates": 0}

    def handler(request):
        if request.url == LOGIN_URL:
            calls["login"] += 1
            return httpx.Response(200, json={"data": {"accessToken": "tok-1"}})
        calls["rates"] += 1
        assert request.headers["Authorization"] == "Bearer tok-1"
        return httpx.Response(200, json={"data": {"results": [{"rateId": "r1", "totalCost": 10}]}})

    async def two_calls(client):
        first = await client.fetch_rates(_request("LTL"))
        second = await client.fetch_rates(_request("SP"))
        return first, second

    first, second = _run(handler, two_calls)
    assert first == [{"rateId": "r1", "totalCost": 10}]
    assert calls == {"login": 1, "rates": 2}
    assert fake_redis.get(redis_cache.PROVIDER_TOKEN_KEY) == "tok-1"
    assert 0 < fake_redis.ttl(redis_cache.PROVIDER_TOKEN_KEY) <= 60


def test_expired_token_reauthenticates_once(fake_redis):
    fake_redis.setex(redis_cache.PROVIDER_TOKEN_KEY, 60, "stale")
    calls = {"login": 0}

    def handler(request):
        if request.url == LOGIN_URL:
            calls["login"] += 1
            return httpx.Response(200, json={"token": "fresh"})
        if request.headers["Authorization"] == "Bearer stale":
            return httpx.Response(401, json={"error": "expired"})
        return httpx.Response(200, json={"rates": [{"rateId": "r1"}]})

    rates = _run(handler, lambda c: c.fetch_rates(_request()))
    assert rates == [{"rateId": "r1"}]
    assert calls["login"] == 1
    assert fake_redis.get(redis_cache.PROVIDER_TOKEN_KEY) == "fresh"


def test_connect_error_is_transport_failure(fake_redis):
    fake_redis.setex(redis_cache.PROVIDER_TOKEN_KEY, 60, "tok")

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamTransportError):
        _run(handler, lambda c: c.fetch_rates(_request()))


def test_login_unreachable_fails_prepare(fake_redis):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamTransportError):
        _run(handler, lambda c: c.prepare())


def test_server_error_is_mode_failure(fake_redis):
    fake_redis.setex(redis_cache.PROVIDER_TOKEN_KEY, 60, "tok")

    def handler(request):
        return httpx.Response(500, text="oops")

    with pytest.raises(UpstreamModeFailure) as exc:
        _run(handler, lambda c: c.fetch_rates(_request("VOL")))
    assert exc.value.mode == "VOL"


def test_unconfigured_provider_serves_fixture(fake_redis):
    def handler(request):
        raise AssertionError("no network call expected")

    rates = _run(handler, lambda c: c.fetch_rates(_request("SP")), rates_url="")
    assert [r["totalCost"] for r in rates] == [45.99, 52.50, 38.75]
    assert all(r["rateId"].endswith("-sp") for r in rates)


def test_extract_rate_list_shapes():
    assert extract_rate_list([{"a": 1}, "junk"]) == [{"a": 1}]
    assert extract_rate_list({"rates": [{"a": 1}]}) == [{"a": 1}]
    assert extract_rate_list({"results": [{"a": 2}]}) == [{"a": 2}]
    assert extract_rate_list({"data": {"rates": [{"a": 3}]}}) == [{"a": 3}]
    assert extract_rate_list({"data": [{"a": 4}]}) == [{"a": 4}]
    assert extract_rate_list({"rateId": "x", "totalCost": 5}) == [{"rateId": "x", "totalCost": 5}]
    assert extract_rate_list({"status": "ok"}) == []
    assert extract_rate_list(None) == []
