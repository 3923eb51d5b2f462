"""Map provider rate records onto one canonical rate shape.

Provider field names drift between modes and releases, so each canonical
field is read by probing an ordered list of candidate keys. The first key
holding a usable value wins. Keep the candidate lists here; they are the
whole mapping.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .dispatcher import RawRate
from .request_normalizer import describe_modes

logger = logging.getLogger(__name__)

UNKNOWN_CARRIER = "Unknown"
DEFAULT_SERVICE = "Standard"
DEFAULT_CURRENCY = "USD"

ID_FIELDS: Tuple[str, ...] = ("id", "rateId", "rate_id", "quoteId", "quote_id", "quoteNumber")
CARRIER_FIELDS: Tuple[str, ...] = (
    # explicit name fields
    "carrierName", "carrier_name",
    # generic carrier fields
    "carrier", "carrierCode", "carrier_code", "scac",
    # company / provider fields
    "companyName", "company_name", "company", "providerName", "provider",
)
SERVICE_FIELDS: Tuple[str, ...] = (
    "serviceName", "service_name", "service", "serviceLevel", "service_level", "serviceType", "rateType",
)
COST_FIELDS: Tuple[str, ...] = (
    "totalCost", "total_cost", "total", "totalCharge", "total_charge", "cost", "price", "amount",
)
TRANSIT_FIELDS: Tuple[str, ...] = (
    "transitDays", "transit_days", "transitTime", "transit_time", "estimatedDays", "days",
)
CURRENCY_FIELDS: Tuple[str, ...] = ("currency", "currencyCode", "currency_code")

# Keys that may appear on a provider "no rate for this carrier" placeholder.
EMPTY_MARKER_KEYS = frozenset({
    "error", "errors", "errorCode", "error_code", "errorMessage", "error_message",
    "message", "status", "mode",
})
_ERROR_KEYS = ("error", "errors", "errorCode", "error_code", "errorMessage", "error_message")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class NormalizedRate:
    id: str
    carrier_name: str
    service_name: str
    total_cost: float
    transit_days: Optional[int] = None
    currency: str = DEFAULT_CURRENCY
    mode: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass
class NoRatesOutcome:
    """Zero rates survived normalization; a normal result, not an error."""

    modes: List[str]
    message: str
    failed_modes: List[str] = field(default_factory=list)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def probe(record: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    """Return the first usable value among ``candidates``, else None."""
    for key in candidates:
        value = record.get(key)
        if isinstance(value, Mapping):
            # {"carrier": {"name": "FedEx"}} style nesting
            value = value.get("name") or value.get("value")
        if _present(value):
            return value
    return None


def parse_money(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    match = _NUMBER_RE.search(str(value).replace(",", ""))
    if not match:
        return None
    try:
        return float(Decimal(match.group(0)))
    except InvalidOperation:
        return None


def parse_days(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _NUMBER_RE.search(str(value))
    return int(float(match.group(0))) if match else None


def is_empty_rate_marker(record: Mapping[str, Any]) -> bool:
    """True for records that only say "no rate here" (e.g. ``{"error": "NO_RATES"}``)."""
    if not record:
        return True
    keys = set(record.keys())
    return keys <= EMPTY_MARKER_KEYS and any(_present(record.get(k)) for k in _ERROR_KEYS)


def normalize_rate(record: Mapping[str, Any], mode: Optional[str] = None) -> Optional[NormalizedRate]:
    """Normalize one record, or return None when it should be discarded."""
    if not isinstance(record, Mapping) or is_empty_rate_marker(record):
        return None

    raw_cost = probe(record, COST_FIELDS)
    cost = parse_money(raw_cost)
    if cost is None:
        if raw_cost is not None:
            logger.warning("Unparseable rate cost %r; defaulting to 0", raw_cost)
        cost = 0.0
    if cost < 0:
        logger.warning("Discarding rate with negative cost %r", raw_cost)
        return None

    rate_id = probe(record, ID_FIELDS)
    currency = probe(record, CURRENCY_FIELDS)
    return NormalizedRate(
        id=str(rate_id) if rate_id is not None else str(uuid.uuid4()),
        carrier_name=str(probe(record, CARRIER_FIELDS) or UNKNOWN_CARRIER).strip(),
        service_name=str(probe(record, SERVICE_FIELDS) or DEFAULT_SERVICE).strip(),
        total_cost=round(cost, 2),
        transit_days=parse_days(probe(record, TRANSIT_FIELDS)),
        currency=str(currency).strip().upper() if currency else DEFAULT_CURRENCY,
        mode=mode or record.get("mode"),
        raw=dict(record),
    )


RateInput = Union[RawRate, NormalizedRate, Mapping[str, Any]]


def normalize_rates(records: Iterable[RateInput]) -> List[NormalizedRate]:
    """Normalize, filter and sort (ascending cost, stable) a flat rate list.

    Already-normalized rates pass through unchanged, so re-applying this to
    its own output is a no-op.
    """
    out: List[NormalizedRate] = []
    for item in records:
        if isinstance(item, NormalizedRate):
            out.append(item)
            continue
        if isinstance(item, RawRate):
            rate = normalize_rate(item.payload, item.mode)
        else:
            rate = normalize_rate(item)
        if rate is not None:
            out.append(rate)
    return sorted(out, key=lambda r: r.total_cost)


def no_rates_message(modes: Sequence[str]) -> str:
    if modes:
        lead = f"No rates found for {describe_modes(modes)}."
    else:
        lead = "No rates found for your request."
    return (
        f"{lead} Try adjusting the ship date, freight class, dimensions "
        "or selecting a different service type."
    )


def no_rates_outcome(modes: Sequence[str], failed_modes: Sequence[str] = ()) -> NoRatesOutcome:
    return NoRatesOutcome(modes=list(modes), message=no_rates_message(modes), failed_modes=list(failed_modes))
