"""
Cart and incoming-update models.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .inventory import METHOD_MAX_LENGTH, NAME_MAX_LENGTH, VENDOR_MAX_LENGTH


def parse_number(value: Any, default: float) -> float:
    """
    Lenient numeric parsing for user and model supplied values.

    Missing, unparsable, NaN and zero values collapse to ``default``.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or number == 0:
        return default
    return number


class SuggestedCartItem(BaseModel):
    """One admitted line of the transient suggested cart."""

    name: str = Field(..., max_length=NAME_MAX_LENGTH)
    quantity: float = Field(..., gt=0.0)
    cost: float = Field(..., ge=0.0)
    vendor: str = Field(..., max_length=VENDOR_MAX_LENGTH)
    reason: str = ""


class ItemUpdate(BaseModel):
    """A purchase or restock fed into the apply-updates routine."""

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: float = Field(default=1.0, gt=0.0)
    cost: float = Field(default=0.0, ge=0.0)
    vendor: str = Field(default="Unknown", max_length=VENDOR_MAX_LENGTH)
    method: Optional[str] = Field(default=None, max_length=METHOD_MAX_LENGTH)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("quantity", mode="before")
    @classmethod
    def parse_quantity(cls, v: Any) -> float:
        return parse_number(v, 1.0)

    @field_validator("cost", mode="before")
    @classmethod
    def parse_cost(cls, v: Any) -> float:
        return parse_number(v, 0.0)

    @field_validator("vendor", mode="before")
    @classmethod
    def default_vendor(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Unknown"
        return v.strip() if isinstance(v, str) else v
