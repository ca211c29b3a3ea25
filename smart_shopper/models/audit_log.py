"""
Audit log data models.

Defines data structures for agent action logging and transparency.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""
    # Inventory actions
    INVENTORY_DELETION = "Inventory Deletion"
    INPUT_PROCESSED = "Input Processed"

    # Forecast actions
    FORECAST_UPDATE = "Forecast Update"
    FORECASTING_BLOCKED = "Forecasting Blocked"
    CART_BUILT = "Cart Built"

    # Purchase actions
    PURCHASE_AUTO = "Purchase Executed (Auto)"
    PURCHASE_SIMULATED = "Purchase Executed (Simulated)"

    # Settings
    CONFIG_UPDATE = "Config Update"


class AuditLogEntry(BaseModel):
    """Represents a single audit log entry."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    action: str
    details: str = ""

    def to_readable_string(self) -> str:
        """Convert log entry to human-readable string."""
        timestamp_str = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        base = f"[{timestamp_str}] {self.action}"
        if self.details:
            base += f" - {self.details}"
        return base
