"""
Structured output of the prediction service.

Field aliases match the camelCase keys of the response schemas sent to the
model.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .cart import ItemUpdate
from .inventory import NAME_MAX_LENGTH, VENDOR_MAX_LENGTH


class CartSuggestion(BaseModel):
    """An item the model recommends buying."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity_to_buy: float = Field(..., alias="quantityToBuy", gt=0.0)
    reason: str = ""
    vendor: Optional[str] = Field(default=None, max_length=VENDOR_MAX_LENGTH)


class InventoryForecast(BaseModel):
    """Predicted run-out date for one inventory item."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    predicted_run_out_date: date = Field(..., alias="predictedRunOutDate")


class PredictionResult(BaseModel):
    """Forecasts plus cart suggestions from one prediction run."""

    suggested_cart: List[CartSuggestion] = Field(default_factory=list)
    inventory_forecasts: List[InventoryForecast] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.suggested_cart and not self.inventory_forecasts


class ExtractedReceiptItem(BaseModel):
    """A line item read from a receipt image."""

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: float = Field(..., gt=0.0)
    cost: float = Field(..., ge=0.0)
    vendor: str = Field(default="Unknown", max_length=VENDOR_MAX_LENGTH)

    def to_update(self, method: str) -> ItemUpdate:
        return ItemUpdate(
            name=self.name,
            quantity=self.quantity,
            cost=self.cost,
            vendor=self.vendor,
            method=method,
        )
