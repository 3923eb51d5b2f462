"""Fan rate requests out to the provider, one call per freight mode.

Modes are split into fixed-size batches. Batches run one after another and
the calls inside a batch run concurrently, which caps peak upstream load at
the batch size. Under a constrained runtime every call gets its own deadline;
cancelling one call never touches its siblings.

A failing call contributes no rates and is logged. Only a provider that is
unreachable before fan-out (or unreachable for every single call) fails the
whole search.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..utils.errors import UpstreamModeFailure, UpstreamTransportError
from .request_normalizer import UpstreamRateRequest

logger = logging.getLogger(__name__)

BATCH_SIZE = 3


@dataclass(frozen=True)
class RawRate:
    """One provider rate record tagged with the mode that produced it."""

    mode: str
    payload: Dict[str, Any] = field(compare=False)


@dataclass
class ModeOutcome:
    mode: str
    rates: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Exception] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DispatchResult:
    rates: List[RawRate]
    outcomes: List[ModeOutcome]

    @property
    def succeeded_modes(self) -> List[str]:
        return [o.mode for o in self.outcomes if o.ok]

    @property
    def failed_modes(self) -> List[str]:
        return [o.mode for o in self.outcomes if not o.ok]


def batched(items: Sequence[Any], size: int) -> Iterator[Tuple[Any, ...]]:
    """Yield consecutive tuples of at most ``size`` items."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(items), size):
        yield tuple(items[start:start + size])


class UpstreamDispatcher:
    def __init__(
        self,
        provider,
        batch_size: Optional[int] = None,
        call_timeout: Optional[float] = None,
        constrained: Optional[bool] = None,
    ):
        self.provider = provider
        self.batch_size = batch_size or settings.UPSTREAM_BATCH_SIZE or BATCH_SIZE
        constrained = settings.CONSTRAINED_RUNTIME if constrained is None else constrained
        # Unconstrained hosts wait as long as the provider takes
        self.call_timeout = (call_timeout or settings.UPSTREAM_CALL_TIMEOUT) if constrained else None

    async def _call_mode(self, request: UpstreamRateRequest) -> ModeOutcome:
        started = time.perf_counter()
        outcome = ModeOutcome(mode=request.mode)
        try:
            call = self.provider.fetch_rates(request)
            if self.call_timeout:
                outcome.rates = list(await asyncio.wait_for(call, timeout=self.call_timeout))
            else:
                outcome.rates = list(await call)
        except asyncio.TimeoutError:
            outcome.error = UpstreamModeFailure(request.mode, f"timed out after {self.call_timeout}s")
        except (UpstreamModeFailure, UpstreamTransportError) as exc:
            outcome.error = exc
        except Exception as exc:
            outcome.error = UpstreamModeFailure(request.mode, f"unexpected error: {exc}")
            logger.exception("Unexpected failure fetching %s rates", request.mode)
        outcome.elapsed_ms = (time.perf_counter() - started) * 1000.0
        if outcome.ok:
            logger.info("Mode %s returned %d rates in %.0fms", request.mode, len(outcome.rates), outcome.elapsed_ms)
        else:
            logger.warning("Mode %s failed after %.0fms: %s", request.mode, outcome.elapsed_ms, outcome.error)
        return outcome

    async def dispatch(self, requests: Sequence[UpstreamRateRequest]) -> DispatchResult:
        """Run every mode request and merge the rate records into one flat list."""
        await self.provider.prepare()

        outcomes: List[ModeOutcome] = []
        if len(requests) == 1:
            outcomes.append(await self._call_mode(requests[0]))
        else:
            for batch in batched(list(requests), self.batch_size):
                outcomes.extend(await asyncio.gather(*(self._call_mode(r) for r in batch)))

        if outcomes and all(isinstance(o.error, UpstreamTransportError) for o in outcomes):
            raise UpstreamTransportError("Rate provider unreachable")

        merged = [RawRate(mode=o.mode, payload=r) for o in outcomes for r in o.rates]
        return DispatchResult(rates=merged, outcomes=outcomes)
