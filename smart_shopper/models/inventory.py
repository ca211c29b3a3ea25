"""
Inventory data models.

Defines data structures for household inventory items and purchase history.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Column limits shared by stored documents and the inputs that feed them
NAME_MAX_LENGTH = 200
VENDOR_MAX_LENGTH = 100
METHOD_MAX_LENGTH = 50


class InventoryItem(BaseModel):
    """Represents a single item in household inventory."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Milk",
                "quantity": 1,
                "unit": "gallon",
                "restock_level": 2,
                "daily_use": 0.2,
                "predicted_run_out_date": "2025-12-15"
            }
        }
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: float = Field(default=0.0, ge=0.0)
    unit: str = Field(default="units", max_length=20)
    restock_level: float = Field(default=1.0, ge=0.0)
    daily_use: float = Field(default=0.05, ge=0.0)  # units per day
    last_used: datetime = Field(default_factory=datetime.now)
    predicted_run_out_date: Optional[date] = None

    def is_low_stock(self) -> bool:
        """Check if item is below its restock level."""
        return self.quantity < self.restock_level

    def days_until_run_out(self, today: Optional[date] = None) -> Optional[int]:
        """Days from today until the predicted run-out date, if forecast."""
        if self.predicted_run_out_date is None:
            return None
        today = today or date.today()
        return (self.predicted_run_out_date - today).days

    def forecast_display(self, today: Optional[date] = None) -> str:
        """Short forecast label for the inventory table."""
        days = self.days_until_run_out(today)
        if days is None:
            return "Running AI forecast..."
        return f"{days} days ({self.predicted_run_out_date.isoformat()})"


class PurchaseHistoryEntry(BaseModel):
    """A single purchase, appended to the history log."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    item: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: float = Field(..., ge=0.0)
    vendor: str = Field(default="Unknown", max_length=VENDOR_MAX_LENGTH)
    cost: float = Field(default=0.0, ge=0.0)
    date: datetime = Field(default_factory=datetime.now)
    method: str = Field(default="Agent Input", max_length=METHOD_MAX_LENGTH)


def normalize_name(name: Optional[str]) -> str:
    """Normalise an item name for case-insensitive matching."""
    return (name or "").lower()
