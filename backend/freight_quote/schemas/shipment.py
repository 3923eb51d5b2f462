from __future__ import annotations

import enum
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # Accept both camelCase (browser forms) and snake_case (scripts, tests)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class PackagingType(str, enum.Enum):
    PALLET = "pallet"
    CARTON = "carton"
    DRUM = "drum"


class WeightUnit(str, enum.Enum):
    LB = "LB"
    KG = "KG"


class DimensionUnit(str, enum.Enum):
    IN = "IN"
    CM = "CM"


class WeightType(str, enum.Enum):
    EACH = "each"
    TOTAL = "total"


class Location(_CamelModel):
    country_code: str = Field(default="US", min_length=2, max_length=2)
    postal_code: str = Field(min_length=1)
    state: Optional[str] = None
    city: Optional[str] = None

    @field_validator("country_code", mode="before")
    def upper_country(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class HazmatDetail(_CamelModel):
    un_number: Optional[str] = None
    hazard_class: Optional[str] = None
    packing_group: Optional[str] = None
    proper_shipping_name: Optional[str] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None


class ShipmentLine(_CamelModel):
    quantity: int = Field(default=1, ge=1)
    packaging_type: PackagingType = PackagingType.PALLET
    weight: float = Field(ge=0)
    weight_unit: WeightUnit = WeightUnit.LB
    weight_type: WeightType = WeightType.EACH
    length: Optional[float] = Field(default=None, ge=0)
    width: Optional[float] = Field(default=None, ge=0)
    height: Optional[float] = Field(default=None, ge=0)
    dim_unit: DimensionUnit = DimensionUnit.IN
    stackable: bool = False
    stack_count: int = Field(default=1, ge=1)
    hazmat: bool = False
    hazmat_detail: Optional[HazmatDetail] = None
    freight_class: Optional[float] = Field(default=None, ge=0, le=500)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("packaging_type", mode="before")
    def lower_packaging(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            # Provider codes from older forms
            return {"plt": "pallet", "ctn": "carton", "drm": "drum"}.get(v, v)
        return v

    @model_validator(mode="after")
    def dimensions_all_or_none(self) -> "ShipmentLine":
        dims = (self.length, self.width, self.height)
        present = [d is not None for d in dims]
        if any(present) and not all(present):
            raise ValueError("length, width and height must be given together")
        return self

    @property
    def has_dimensions(self) -> bool:
        return self.length is not None and self.width is not None and self.height is not None


class Contact(_CamelModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company: Optional[str] = None


class RateSearchRequest(_CamelModel):
    """Inbound shipment description for a rate search."""

    origin: Location
    destination: Location
    ship_date: Optional[date] = None
    lines: List[ShipmentLine] = Field(min_length=1)
    modes: List[str] = Field(default_factory=list)
    contact: Optional[Contact] = None

    @field_validator("modes", mode="before")
    def coerce_modes(cls, v):
        # A single select box posts a bare string
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v
