"""
Cart service for autonomous checkout.

Commits the suggested cart as a simulated purchase: history records,
inventory restock and monthly spend, all in one batch.
"""

import time
from datetime import datetime
from typing import Callable, List, Optional

from ..database.db_manager import DatabaseManager
from ..models import (
    AuditAction,
    InventoryItem,
    PurchaseHistoryEntry,
    SuggestedCartItem,
    UserConfig,
    normalize_name,
)
from ..utils import AuditLogger, get_logger

CHECKOUT_METHOD = "Agent Auto"


def cart_total(cart: List[SuggestedCartItem]) -> float:
    return round(sum(item.cost for item in cart), 2)


class CartService:
    """Service for executing the suggested cart without human approval."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        user_id: str,
        audit_logger: Optional[AuditLogger] = None,
        delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize cart service.

        Args:
            db_manager: Database manager instance
            user_id: Owner of the cart
            audit_logger: Audit trail writer (created if omitted)
            delay_seconds: Simulated transaction delay
            sleep: Delay function
        """
        self.db_manager = db_manager
        self.user_id = user_id
        self.audit_logger = audit_logger or AuditLogger(db_manager)
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.logger = get_logger("cart_service")

    def checkout(
        self,
        cart: List[SuggestedCartItem],
        inventory: List[InventoryItem],
        config: UserConfig,
    ) -> float:
        """
        Execute a simulated purchase of every cart line.

        Each line is logged to history and restocks the matching inventory
        item (clearing its forecast); the total is added to the month's
        spend. Lines with no matching inventory item are only logged.

        Args:
            cart: Suggested cart
            inventory: Current inventory snapshot
            config: Current user config

        Returns:
            Total purchased

        Raises:
            sqlite3.Error: If the purchase batch cannot be committed
            pydantic.ValidationError: If a cart line cannot be recorded
        """
        if not cart:
            return 0.0

        total = cart_total(cart)
        now = datetime.now()
        by_name = {normalize_name(item.name): item for item in inventory if item.name}
        batch = self.db_manager.batch()

        for line in cart:
            batch.add_history(
                self.user_id,
                PurchaseHistoryEntry(
                    item=line.name,
                    quantity=line.quantity,
                    vendor=line.vendor,
                    cost=line.cost,
                    date=now,
                    method=CHECKOUT_METHOD,
                ),
            )

            key = normalize_name(line.name)
            existing = by_name.get(key)
            if existing is None:
                self.logger.warning(f"Purchased '{line.name}' has no inventory item; history only")
                continue

            restocked = existing.model_copy(update={
                "quantity": existing.quantity + line.quantity,
                "last_used": now,
                "predicted_run_out_date": None,
            })
            by_name[key] = restocked
            batch.set_inventory_item(self.user_id, restocked)

        batch.update_user_config(
            self.user_id,
            current_month_spend=round(config.current_month_spend + total, 2),
        )

        self.audit_logger.log_action(self.user_id, AuditAction.PURCHASE_AUTO.value, {"total": f"{total:.2f}"})
        if self.delay_seconds:
            self.sleep(self.delay_seconds)
        batch.commit()

        self.audit_logger.log_action(
            self.user_id,
            AuditAction.PURCHASE_SIMULATED.value,
            {"total": f"{total:.2f}", "items": [line.name for line in cart]},
        )
        self.logger.info(f"Purchase executed for {self.user_id}: {len(cart)} lines, ${total:.2f}")
        return total
