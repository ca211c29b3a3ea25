"""
Forecast service: run-out forecasts and suggested-cart building.

Runs the prediction service over the current inventory and history, merges
the returned run-out dates into inventory and admits suggested purchases
into the cart under the monthly spend cap.
"""

import random
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from ..database.db_manager import DatabaseManager
from ..models import (
    AuditAction,
    CartSuggestion,
    InventoryForecast,
    InventoryItem,
    PurchaseHistoryEntry,
    SuggestedCartItem,
    UserConfig,
    normalize_name,
)
from ..utils import AuditLogger, get_logger
from .gemini_client import GeminiClient

PriceFunction = Callable[[float], float]


def simulated_price(quantity: float) -> float:
    """Simulated line price: 5 to 10 per unit."""
    return quantity * (random.random() * 5 + 5)


@dataclass
class ForecastOutcome:
    """Result of one forecast-and-cart run."""

    cart: List[SuggestedCartItem] = field(default_factory=list)
    total_cost: float = 0.0
    forecasts_returned: int = 0
    forecasts_applied: int = 0
    blocked: List[str] = field(default_factory=list)
    forecasts_committed: bool = True
    skipped: bool = False


def merge_forecasts(
    forecasts: List[InventoryForecast],
    inventory: List[InventoryItem]
) -> Dict[str, date]:
    """
    Map forecasts onto inventory ids by case-insensitive name.

    Names with no match in inventory are dropped.

    Returns:
        item id -> predicted run-out date
    """
    by_name = {normalize_name(item.name): item for item in inventory if item.name}
    merged: Dict[str, date] = {}
    for forecast in forecasts:
        item = by_name.get(normalize_name(forecast.name))
        if item is not None:
            merged[item.id] = forecast.predicted_run_out_date
    return merged


def admit_suggestions(
    suggestions: List[CartSuggestion],
    config: UserConfig,
    price_fn: PriceFunction = simulated_price,
) -> Tuple[List[SuggestedCartItem], float, List[str]]:
    """
    Greedy spend-cap admission in the order the model returned suggestions.

    A line is admitted while committed monthly spend plus the running cart
    total plus its own cost stays within the cap; a rejected line does not
    stop admission of later, cheaper lines.

    Returns:
        (admitted cart, cart total, names of blocked suggestions)
    """
    cart: List[SuggestedCartItem] = []
    blocked: List[str] = []
    total = 0.0

    for suggestion in suggestions:
        cost = round(price_fn(suggestion.quantity_to_buy), 2)
        if round(config.current_month_spend + total + cost, 2) <= config.spend_cap_monthly:
            cart.append(SuggestedCartItem(
                name=suggestion.name,
                quantity=suggestion.quantity_to_buy,
                cost=cost,
                vendor=config.resolve_vendor(suggestion.vendor),
                reason=suggestion.reason,
            ))
            total = round(total + cost, 2)
        else:
            blocked.append(suggestion.name)

    return cart, total, blocked


class ForecastService:
    """Service for AI run-out forecasts and cart suggestions."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        user_id: str,
        client: GeminiClient,
        audit_logger: Optional[AuditLogger] = None,
        price_fn: PriceFunction = simulated_price,
        max_suggestions: int = 5,
    ) -> None:
        """
        Initialize forecast service.

        Args:
            db_manager: Database manager instance
            user_id: Owner of the inventory
            client: Prediction service client
            audit_logger: Audit trail writer (created if omitted)
            price_fn: Line price simulation
            max_suggestions: Upper bound on suggested items per run
        """
        self.db_manager = db_manager
        self.user_id = user_id
        self.client = client
        self.audit_logger = audit_logger or AuditLogger(db_manager)
        self.price_fn = price_fn
        self.max_suggestions = max_suggestions
        self.logger = get_logger("forecast_service")

    def run_forecast(
        self,
        inventory: List[InventoryItem],
        history: List[PurchaseHistoryEntry],
        config: UserConfig,
    ) -> ForecastOutcome:
        """
        Forecast run-out dates and build the suggested cart.

        Args:
            inventory: Current inventory
            history: Recent purchase history, newest first
            config: Spend cap and vendor allowlist

        Returns:
            ForecastOutcome; ``skipped`` is set when there is no inventory
        """
        safe_inventory = [item for item in inventory if item.name and item.name.strip()]
        if not safe_inventory:
            self.logger.info("Forecasting stopped: no inventory items available to analyze")
            return ForecastOutcome(skipped=True)

        prediction = self.client.predict(
            safe_inventory,
            history,
            vendors=config.vendor_allowlist,
            max_suggestions=self.max_suggestions,
        )

        outcome = ForecastOutcome(forecasts_returned=len(prediction.inventory_forecasts))
        outcome.forecasts_applied, outcome.forecasts_committed = self._commit_forecasts(
            prediction.inventory_forecasts, safe_inventory
        )

        cart, total, blocked = admit_suggestions(prediction.suggested_cart, config, self.price_fn)
        for name in blocked:
            self.audit_logger.log_action(
                self.user_id,
                AuditAction.FORECASTING_BLOCKED.value,
                {"item": name, "reason": "Spend Cap Exceeded"},
            )

        outcome.cart = cart
        outcome.total_cost = total
        outcome.blocked = blocked

        self.audit_logger.log_action(
            self.user_id,
            AuditAction.CART_BUILT.value,
            {"count": len(cart), "total": f"{total:.2f}"},
        )
        self.logger.info(f"Cart built: {len(cart)} items, total ${total:.2f}, {len(blocked)} blocked")
        return outcome

    def _commit_forecasts(
        self,
        forecasts: List[InventoryForecast],
        inventory: List[InventoryItem]
    ) -> Tuple[int, bool]:
        merged = merge_forecasts(forecasts, inventory)

        batch = self.db_manager.batch()
        for item_id, run_out in merged.items():
            batch.set_predicted_run_out_date(self.user_id, item_id, run_out)

        try:
            batch.commit()
        except sqlite3.Error as e:
            self.logger.error(f"Batch update error for forecasts: {e}", exc_info=True)
            return 0, False

        self.audit_logger.log_action(
            self.user_id,
            AuditAction.FORECAST_UPDATE.value,
            {"count": len(forecasts), "source": "AI Behavioral Analysis"},
        )
        return len(merged), True
