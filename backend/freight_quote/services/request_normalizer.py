"""Translate an inbound shipment description into provider rate requests.

The provider takes one request per freight mode (``rateTypesList`` always
holds a single code), so ``build_upstream_requests`` returns one
``UpstreamRateRequest`` per canonical mode, all sharing the same shipment
fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from ..core.config import settings
from ..schemas.shipment import Location, RateSearchRequest, ShipmentLine
from ..utils.errors import ValidationError
from .freight_class import calculate_freight_class, to_imperial

logger = logging.getLogger(__name__)

# Canonical mode codes in display/dispatch order.
SUPPORTED_MODES: Tuple[str, ...] = ("LTL", "GUARANTEED", "SP", "VOL", "AIR")
DEFAULT_MODES: Tuple[str, ...] = ("LTL", "GUARANTEED", "SP", "VOL")

MODE_ALIASES: Dict[str, frozenset] = {
    "LTL": frozenset({"LTL", "STANDARD_LTL", "STANDARD LTL"}),
    "GUARANTEED": frozenset({"GUARANTEED", "GUARANTEED LTL", "GUARANTEED_LTL"}),
    "SP": frozenset({"SP", "SMALL PACKAGE", "SMALL_PACKAGE", "PARCEL"}),
    "VOL": frozenset({"VOL", "VOLUME", "VOLUME QUOTE", "VOLUME_QUOTE", "VOLUME LTL"}),
    "AIR": frozenset({"AIR", "INTL_LTL", "AIR FREIGHT"}),
}

# Form values meaning "no preference".
ALL_MODE_TOKENS = frozenset({"", "ALL", "PLEASE SELECT", "ANY"})

MODE_LABELS: Dict[str, str] = {
    "LTL": "LTL",
    "GUARANTEED": "Guaranteed LTL",
    "SP": "Small Package",
    "VOL": "Volume",
    "AIR": "Air",
}

# The provider only prices palletized freight through this integration.
PROVIDER_PALLET_CODE = "PLT"


@dataclass(frozen=True)
class UpstreamRateRequest:
    mode: str
    payload: Mapping[str, Any] = field(compare=False)


def canonical_mode(raw: Any) -> Optional[str]:
    """Return the canonical code for ``raw``, "ALL" for no-preference, else None."""
    value = str(raw or "").strip().upper()
    if value in ALL_MODE_TOKENS:
        return "ALL"
    for code, aliases in MODE_ALIASES.items():
        if value in aliases:
            return code
    return None


def normalize_modes(raw_modes: Iterable[Any]) -> Tuple[str, ...]:
    """Collapse requested mode strings into a canonical, ordered mode set.

    Never raises: blank, "ALL"-like and entirely unrecognized input all fall
    back to ``DEFAULT_MODES``. Unrecognized entries mixed with recognized ones
    are dropped.
    """
    raw_list = list(raw_modes or [])
    if not raw_list:
        return DEFAULT_MODES
    recognized = set()
    for raw in raw_list:
        code = canonical_mode(raw)
        if code == "ALL":
            return DEFAULT_MODES
        if code is None:
            logger.warning("Unsupported freight mode %r; ignoring", raw)
            continue
        recognized.add(code)
    if not recognized:
        logger.warning("No supported freight modes in %r; falling back to defaults", raw_list)
        return DEFAULT_MODES
    return tuple(m for m in SUPPORTED_MODES if m in recognized)


def describe_modes(modes: Iterable[str]) -> str:
    return ", ".join(MODE_LABELS.get(m, m) for m in modes)


# ─── Location substitution ────────────────────────────────────────────────────

LocationResolver = Callable[[Location], Tuple[str, str]]


def placeholder_resolver(location: Location) -> Tuple[str, str]:
    """Fill blank city/state with provider-accepted placeholder tokens.

    Known accuracy gap: the provider may hold no data for placeholder-keyed
    lanes, so some valid searches come back empty.
    """
    city = (location.city or "").strip() or settings.LOCATION_PLACEHOLDER_CITY
    state = (location.state or "").strip() or settings.LOCATION_PLACEHOLDER_STATE
    return city, state


_LOCATION_RESOLVERS: Dict[str, LocationResolver] = {"placeholder": placeholder_resolver}


def register_location_resolver(name: str, resolver: LocationResolver) -> None:
    """Register a city/state resolver selectable through ``LOCATION_RESOLVER``.

    A postal-code lookup can replace the placeholder strategy this way.
    """
    _LOCATION_RESOLVERS[name] = resolver


def get_location_resolver(name: Optional[str] = None) -> LocationResolver:
    key = (name or settings.LOCATION_RESOLVER or "placeholder").strip().lower()
    resolver = _LOCATION_RESOLVERS.get(key)
    if resolver is None:
        logger.warning("Unknown location resolver %r; using placeholders", key)
        return placeholder_resolver
    return resolver


# ─── Shipment lines ───────────────────────────────────────────────────────────

def line_freight_class(line: ShipmentLine) -> float:
    """Given class if present, else computed from per-piece weight and dimensions."""
    if line.freight_class is not None:
        return float(line.freight_class)
    if not line.has_dimensions:
        return 0.0
    weight = line.weight
    if line.weight_type.value == "total" and line.quantity:
        weight = weight / line.quantity
    weight, (length, width, height) = to_imperial(
        weight, line.weight_unit.value, (line.length, line.width, line.height), line.dim_unit.value
    )
    return calculate_freight_class(weight, length, width, height)


def _round(value: Optional[float]) -> float:
    return round(float(value or 0), 2)


def build_freight_info(line: ShipmentLine) -> Dict[str, Any]:
    weight, (length, width, height) = to_imperial(
        line.weight, line.weight_unit.value, (line.length, line.width, line.height), line.dim_unit.value
    )
    info: Dict[str, Any] = {
        "qty": line.quantity,
        "dimType": PROVIDER_PALLET_CODE,
        "weight": _round(weight),
        "weightType": line.weight_type.value,
        "length": _round(length),
        "width": _round(width),
        "height": _round(height),
        "hazmat": line.hazmat,
        "class": line_freight_class(line),
    }
    if line.description:
        info["description"] = line.description
    if line.stackable:
        info["stack"] = True
        info["stackAmount"] = line.stack_count
    if line.hazmat and line.hazmat_detail is not None:
        detail = line.hazmat_detail
        info.update({
            k: v
            for k, v in {
                "unNumber": detail.un_number,
                "hazardClass": detail.hazard_class,
                "packingGroup": detail.packing_group,
                "properShippingName": detail.proper_shipping_name,
                "emergencyContact": detail.emergency_contact,
                "emergencyPhone": detail.emergency_phone,
            }.items()
            if v
        })
    return info


def _check_request(request: RateSearchRequest) -> None:
    errors: Dict[str, str] = {}
    if not request.origin.postal_code.strip():
        errors["origin.postalCode"] = "required"
    if not request.destination.postal_code.strip():
        errors["destination.postalCode"] = "required"
    if errors:
        raise ValidationError("Invalid shipment description", errors)


def build_upstream_requests(
    request: RateSearchRequest,
    resolver: Optional[LocationResolver] = None,
) -> Tuple[UpstreamRateRequest, ...]:
    """Return one provider request per canonical mode."""
    _check_request(request)
    resolve = resolver or get_location_resolver()
    origin_city, origin_state = resolve(request.origin)
    dest_city, dest_state = resolve(request.destination)

    base = {
        "originCity": origin_city,
        "originState": origin_state,
        "originZipcode": request.origin.postal_code.strip(),
        "originCountry": request.origin.country_code,
        "destinationCity": dest_city,
        "destinationState": dest_state,
        "destinationZipcode": request.destination.postal_code.strip(),
        "destinationCountry": request.destination.country_code,
        "UOM": "US",
        "pickupDate": request.ship_date.isoformat() if request.ship_date else "",
        "freightInfo": [build_freight_info(line) for line in request.lines],
    }
    return tuple(
        UpstreamRateRequest(mode=mode, payload=MappingProxyType({**base, "rateTypesList": [mode]}))
        for mode in normalize_modes(request.modes)
    )
