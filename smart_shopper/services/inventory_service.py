"""
Inventory service for managing household items.

Handles manual edits, deletion, first-use seeding and the apply-updates
routine that turns purchases into history records and restocks.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from ..database.db_manager import DatabaseManager
from ..models import (
    AuditAction,
    InventoryItem,
    ItemUpdate,
    PurchaseHistoryEntry,
    UserConfig,
    normalize_name,
    parse_number,
)
from ..utils import AuditLogger, get_logger

DEFAULT_UPDATE_METHOD = "Agent Input"


class InventoryItemNotFound(LookupError):
    """Raised when an inventory id does not exist for the user."""


def initial_config() -> UserConfig:
    return UserConfig(
        spend_cap_monthly=500,
        current_month_spend=150,
        vendor_allowlist=["Amazon", "Walmart"],
    )


def initial_inventory(now: Optional[datetime] = None) -> List[InventoryItem]:
    """Starter household inventory for a new user."""
    now = now or datetime.now()
    return [
        InventoryItem(id="1", name="Coffee Beans", quantity=0.5, unit="bags",
                      restock_level=1, daily_use=0.1, last_used=now - timedelta(days=3)),
        InventoryItem(id="2", name="Toilet Paper", quantity=4, unit="rolls",
                      restock_level=8, daily_use=0.5, last_used=now - timedelta(days=7)),
        InventoryItem(id="3", name="Milk", quantity=1, unit="gallon",
                      restock_level=2, daily_use=0.2, last_used=now),
        InventoryItem(id="4", name="Dish Soap", quantity=1, unit="bottle",
                      restock_level=1, daily_use=0.05, last_used=now - timedelta(days=30)),
    ]


def initial_history(now: Optional[datetime] = None) -> List[PurchaseHistoryEntry]:
    """Starter purchase history for a new user."""
    now = now or datetime.now()
    return [
        PurchaseHistoryEntry(item="Toilet Paper", quantity=12, vendor="Amazon", cost=25.50,
                             date=now - timedelta(days=30), method="Auto"),
        PurchaseHistoryEntry(item="Milk", quantity=3, vendor="Walmart", cost=12.00,
                             date=now - timedelta(days=10), method="Manual"),
    ]


class InventoryService:
    """Service for managing one user's inventory items and history."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        user_id: str,
        audit_logger: Optional[AuditLogger] = None
    ) -> None:
        """
        Initialize inventory service.

        Args:
            db_manager: Database manager instance
            user_id: Owner of the inventory
            audit_logger: Audit trail writer (created if omitted)
        """
        self.db_manager = db_manager
        self.user_id = user_id
        self.logger = get_logger("inventory_service")
        self.audit_logger = audit_logger or AuditLogger(db_manager)

    def initialize_user_data(self) -> bool:
        """
        Seed config, inventory and history on first use.

        Returns:
            True if seed data was written, False if the user already exists
        """
        if self.db_manager.get_user_config(self.user_id) is not None:
            self.logger.info(f"Existing data found for {self.user_id}")
            return False

        self.logger.info(f"First time user {self.user_id} detected. Seeding initial data...")
        now = datetime.now()
        batch = self.db_manager.batch()
        batch.set_user_config(self.user_id, initial_config())
        for item in initial_inventory(now):
            batch.set_inventory_item(self.user_id, item)
        for entry in initial_history(now):
            batch.add_history(self.user_id, entry)
        batch.commit()
        return True

    def get_all_items(self) -> List[InventoryItem]:
        return self.db_manager.get_inventory(self.user_id)

    def get_item(self, item_id: str) -> InventoryItem:
        """
        Get an inventory item by ID.

        Raises:
            InventoryItemNotFound: If the id is unknown
        """
        item = self.db_manager.get_inventory_item(self.user_id, item_id)
        if item is None:
            raise InventoryItemNotFound(item_id)
        return item

    @staticmethod
    def find_by_name(name: str, inventory: Iterable[InventoryItem]) -> Optional[InventoryItem]:
        """Case-insensitive lookup of an item by name."""
        key = normalize_name(name)
        for item in inventory:
            if normalize_name(item.name) == key:
                return item
        return None

    def update_item(self, item: Union[InventoryItem, Dict[str, Any]]) -> InventoryItem:
        """
        Save a manual edit of an inventory item.

        Missing or unparsable fields get defaults; the AI forecast is always
        cleared so the next forecast run recomputes it.

        Args:
            item: Edited item or raw form values

        Returns:
            The stored item
        """
        data = item.model_dump() if isinstance(item, InventoryItem) else dict(item)

        sanitized = InventoryItem(
            id=data.get("id") or str(uuid.uuid4()),
            name=data.get("name"),
            quantity=max(0.0, parse_number(data.get("quantity"), 0.0)),
            unit=data.get("unit") or "units",
            restock_level=parse_number(data.get("restock_level"), 1.0),
            daily_use=parse_number(data.get("daily_use"), 0.05),
            last_used=data.get("last_used") or datetime.now(),
            predicted_run_out_date=None,
        )

        self.db_manager.set_inventory_item(self.user_id, sanitized)
        self.logger.info(f"Inventory updated for: {sanitized.name} ({sanitized.id})")
        return sanitized

    def adjust_quantity(self, item_id: str, delta: float) -> InventoryItem:
        """
        Step an item's quantity up or down, never below zero.

        Raises:
            InventoryItemNotFound: If the id is unknown
        """
        item = self.get_item(item_id)
        return self.update_item(
            item.model_copy(update={
                "quantity": max(0.0, item.quantity + delta),
                "last_used": datetime.now(),
            })
        )

    def delete_item(self, item_id: str) -> bool:
        """
        Delete an inventory item.

        Returns:
            True if an item was removed
        """
        deleted = self.db_manager.delete_inventory_item(self.user_id, item_id)
        if deleted:
            self.logger.info(f"Item with ID {item_id} deleted successfully.")
            self.audit_logger.log_action(self.user_id, AuditAction.INVENTORY_DELETION.value, {"itemId": item_id})
        return deleted

    def apply_updates(
        self,
        updates: List[ItemUpdate],
        inventory: Optional[List[InventoryItem]] = None
    ) -> List[InventoryItem]:
        """
        Record purchases and restock inventory in one atomic batch.

        Each update appends a history record. An existing item (matched by
        case-insensitive name) gains the purchased quantity and loses its
        forecast; an unknown name becomes a new item with restock level 2x
        and daily use quantity/30.

        Args:
            updates: Incoming purchases
            inventory: Current inventory snapshot (read from the store if omitted)

        Returns:
            Inventory rows written by the batch

        Raises:
            sqlite3.Error: If the batch cannot be committed
        """
        if not updates:
            return []

        if inventory is None:
            inventory = self.get_all_items()

        now = datetime.now()
        by_name: Dict[str, InventoryItem] = {normalize_name(i.name): i for i in inventory if i.name}
        written: Dict[str, InventoryItem] = {}
        batch = self.db_manager.batch()

        for update in updates:
            batch.add_history(
                self.user_id,
                PurchaseHistoryEntry(
                    item=update.name,
                    quantity=update.quantity,
                    vendor=update.vendor,
                    cost=update.cost,
                    date=now,
                    method=update.method or DEFAULT_UPDATE_METHOD,
                ),
            )

            key = normalize_name(update.name)
            existing = by_name.get(key)
            if existing:
                item = existing.model_copy(update={
                    "quantity": existing.quantity + update.quantity,
                    "last_used": now,
                    "predicted_run_out_date": None,
                })
            else:
                item = InventoryItem(
                    name=update.name,
                    quantity=update.quantity,
                    unit="units" if update.quantity > 1 else "unit",
                    restock_level=update.quantity * 2,
                    daily_use=update.quantity / 30,
                    last_used=now,
                    predicted_run_out_date=None,
                )

            # Later updates in the same batch build on this row
            by_name[key] = item
            written[item.id] = item
            batch.set_inventory_item(self.user_id, item)

        batch.commit()

        self.audit_logger.log_action(
            self.user_id,
            AuditAction.INPUT_PROCESSED.value,
            {"source": updates[0].method, "items": [u.name for u in updates]},
        )
        self.logger.info(f"Processed {len(updates)} item update(s) for {self.user_id}")
        return list(written.values())
