import asyncio

import pytest

from freight_quote.services.dispatcher import UpstreamDispatcher, batched
from freight_quote.services.request_normalizer import UpstreamRateRequest
from freight_quote.utils.errors import UpstreamModeFailure, UpstreamTransportError


class FakeProvider:
    """Records call order and peak concurrency."""

    def __init__(self, delays=None, errors=None, prepare_error=None):
        self.delays = delays or {}
        self.errors = errors or {}
        self.prepare_error = prepare_error
        self.events = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.prepared = False

    async def prepare(self):
        if self.prepare_error:
            raise self.prepare_error
        self.prepared = True

    async def fetch_rates(self, request):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("start", request.mode))
        try:
            await asyncio.sleep(self.delays.get(request.mode, 0.01))
            if request.mode in self.errors:
                raise self.errors[request.mode]
            return [{"rateId": f"r-{request.mode}", "carrierName": "FedEx", "totalCost": 10}]
        finally:
            self.in_flight -= 1
            self.events.append(("end", request.mode))


def _requests(*modes):
    return [UpstreamRateRequest(mode=m, payload={"rateTypesList": [m]}) for m in modes]


MODES = ("LTL", "GUARANTEED", "SP", "VOL", "AIR")


def test_batched_sizes():
    assert [len(b) for b in batched(list(range(5)), 3)] == [3, 2]
    assert list(batched([], 3)) == []
    with pytest.raises(ValueError):
        list(batched([1], 0))


def test_five_modes_run_as_two_sequential_batches():
    provider = FakeProvider()
    result = asyncio.run(UpstreamDispatcher(provider, batch_size=3, constrained=False).dispatch(_requests(*MODES)))

    assert provider.max_in_flight == 3
    starts = [m for kind, m in provider.events if kind == "start"]
    assert starts == list(MODES)
    # Second batch starts only after every call of the first has ended
    first_vol_start = provider.events.index(("start", "VOL"))
    for mode in MODES[:3]:
        assert provider.events.index(("end", mode)) < first_vol_start
    assert len(result.rates) == 5
    assert result.failed_modes == []


def test_single_mode_is_one_call():
    provider = FakeProvider()
    result = asyncio.run(UpstreamDispatcher(provider, constrained=False).dispatch(_requests("LTL")))
    assert provider.events == [("start", "LTL"), ("end", "LTL")]
    assert [r.mode for r in result.rates] == ["LTL"]


def test_timeout_on_one_mode_keeps_the_others():
    provider = FakeProvider(delays={"SP": 1.0})
    dispatcher = UpstreamDispatcher(provider, call_timeout=0.05, constrained=True)
    result = asyncio.run(dispatcher.dispatch(_requests("LTL", "GUARANTEED", "SP")))

    assert result.failed_modes == ["SP"]
    assert sorted(result.succeeded_modes) == ["GUARANTEED", "LTL"]
    assert {r.mode for r in result.rates} == {"LTL", "GUARANTEED"}
    failed = [o for o in result.outcomes if not o.ok][0]
    assert isinstance(failed.error, UpstreamModeFailure)


def test_unconstrained_runtime_has_no_call_deadline():
    dispatcher = UpstreamDispatcher(FakeProvider(), call_timeout=0.05, constrained=False)
    assert dispatcher.call_timeout is None


def test_mode_failures_are_absorbed():
    provider = FakeProvider(errors={"VOL": UpstreamModeFailure("VOL", "status 500"), "AIR": RuntimeError("boom")})
    result = asyncio.run(UpstreamDispatcher(provider, constrained=False).dispatch(_requests(*MODES)))
    assert result.failed_modes == ["VOL", "AIR"]
    assert len(result.rates) == 3


def test_partial_transport_failure_is_not_fatal():
    provider = FakeProvider(errors={"LTL": UpstreamTransportError("unreachable")})
    result = asyncio.run(UpstreamDispatcher(provider, constrained=False).dispatch(_requests("LTL", "SP")))
    assert result.failed_modes == ["LTL"]
    assert [r.mode for r in result.rates] == ["SP"]


def test_transport_failure_on_every_mode_raises():
    errors = {m: UpstreamTransportError("unreachable") for m in MODES}
    provider = FakeProvider(errors=errors)
    with pytest.raises(UpstreamTransportError):
        asyncio.run(UpstreamDispatcher(provider, constrained=False).dispatch(_requests(*MODES)))


def test_unreachable_before_fan_out_raises_without_calls():
    provider = FakeProvider(prepare_error=UpstreamTransportError("login unreachable"))
    with pytest.raises(UpstreamTransportError):
        asyncio.run(UpstreamDispatcher(provider, constrained=False).dispatch(_requests("LTL", "SP")))
    assert provider.events == []
