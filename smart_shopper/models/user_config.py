"""
Per-user agent configuration.
"""

from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

from .inventory import VENDOR_MAX_LENGTH

UNKNOWN_VENDOR = "Unknown"

VendorName = Annotated[str, Field(min_length=1, max_length=VENDOR_MAX_LENGTH)]


class UserConfig(BaseModel):
    """Budget and vendor policy for the autonomous agent."""

    spend_cap_monthly: float = Field(default=500.0, ge=0.0)
    current_month_spend: float = Field(default=0.0, ge=0.0)
    vendor_allowlist: List[VendorName] = Field(default_factory=list)

    @property
    def default_vendor(self) -> str:
        """First allowed vendor, used when a suggestion names none."""
        return self.vendor_allowlist[0] if self.vendor_allowlist else UNKNOWN_VENDOR

    def resolve_vendor(self, vendor: Optional[str] = None) -> str:
        """Keep an allowed vendor, otherwise fall back to the default."""
        if vendor and vendor in self.vendor_allowlist:
            return vendor
        return self.default_vendor

    def remaining_budget(self) -> float:
        return max(0.0, self.spend_cap_monthly - self.current_month_spend)
