"""Density-based freight class lookup.

Weights are pounds and dimensions inches; volume is converted to cubic feet
before dividing. Callers working in metric convert first (see
``to_imperial``).
"""

from __future__ import annotations

from typing import Optional

CUBIC_INCHES_PER_CUBIC_FOOT = 1728
LB_PER_KG = 2.20462
IN_PER_CM = 1 / 2.54

UNCLASSIFIED = 0.0

# (minimum density in lb/ft³, class), checked top-down.
DENSITY_CLASS_TABLE: tuple[tuple[float, float], ...] = (
    (50, 50),
    (35, 55),
    (30, 60),
    (22.5, 65),
    (15, 70),
    (13.5, 77.5),
    (12, 85),
    (10.5, 92.5),
    (9, 100),
    (8, 110),
    (7, 125),
    (6, 150),
    (5, 175),
    (4, 200),
    (3, 250),
    (2, 300),
    (1, 400),
)
LOWEST_DENSITY_CLASS = 500.0


def class_for_density(density: float) -> float:
    """Return the freight class for a density in lb/ft³."""
    if density <= 0:
        return UNCLASSIFIED
    for threshold, freight_class in DENSITY_CLASS_TABLE:
        if density >= threshold:
            return float(freight_class)
    return LOWEST_DENSITY_CLASS


def calculate_freight_class(
    weight: Optional[float],
    length: Optional[float],
    width: Optional[float],
    height: Optional[float],
) -> float:
    """Return the freight class for one handling unit, or 0 when unclassifiable."""
    if not weight or not length or not width or not height:
        return UNCLASSIFIED
    volume_cuft = (length * width * height) / CUBIC_INCHES_PER_CUBIC_FOOT
    if volume_cuft <= 0:
        return UNCLASSIFIED
    return class_for_density(weight / volume_cuft)


def to_imperial(weight: float, weight_unit: str, dims: tuple, dim_unit: str) -> tuple[float, tuple]:
    """Convert weight to pounds and each of ``dims`` to inches."""
    if str(weight_unit).upper() == "KG":
        weight = weight * LB_PER_KG
    if str(dim_unit).upper() == "CM":
        dims = tuple(d * IN_PER_CM if d is not None else None for d in dims)
    return weight, dims


def format_class(freight_class: float) -> str:
    """Render a class the way rate sheets print it (``77.5``, ``100``)."""
    if float(freight_class).is_integer():
        return str(int(freight_class))
    return str(freight_class)
