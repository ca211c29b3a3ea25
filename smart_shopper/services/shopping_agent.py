"""
Shopping agent: per-user application state and workflow orchestration.

Holds the state tree the dashboard renders (inventory, history, config,
audit log, suggested cart and status strings), keeps it synchronised with
the document store and runs the input, forecast and checkout workflows in
fully autonomous mode.
"""

import math
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..config import ConfigManager, get_config_manager
from ..database.db_manager import Collection, DatabaseManager
from ..ingestion import ReceiptImage, ReceiptImageError
from ..models import (
    AuditAction,
    AuditLogEntry,
    InventoryItem,
    ItemUpdate,
    PurchaseHistoryEntry,
    SuggestedCartItem,
    UserConfig,
)
from ..utils import AuditLogger, get_logger
from .cart_service import CartService, cart_total
from .forecast_service import ForecastOutcome, ForecastService, PriceFunction, simulated_price
from .gemini_client import GeminiClient
from .inventory_service import InventoryService, initial_config

MANUAL_METHOD = "Manual Input"
VISION_METHOD = "Vision OCR"


class ShoppingAgent:
    """
    One user's shopping agent session.

    Workflows are serialised per agent; nested calls (a forecast re-run
    after restocking) re-enter the same lock.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        user_id: str,
        client: Optional[GeminiClient] = None,
        config: Optional[ConfigManager] = None,
        price_fn: PriceFunction = simulated_price,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        """
        Initialize the agent.

        Args:
            db_manager: Document store
            user_id: Owner of the session
            client: Prediction service client (built from config if omitted)
            config: Configuration manager (global instance if omitted)
            price_fn: Simulated line pricing
            sleep: Delay function for the simulated checkout
        """
        self.db_manager = db_manager
        self.user_id = user_id
        self.config = config or get_config_manager()
        self.logger = get_logger("shopping_agent")
        self.audit_logger = AuditLogger(db_manager)
        self.client = client or GeminiClient()

        self.history_limit = self.config.get("agent.history_limit", 100)
        self.audit_log_limit = self.config.get("agent.audit_log_limit", 50)

        self.inventory_service = InventoryService(db_manager, user_id, self.audit_logger)
        self.forecast_service = ForecastService(
            db_manager,
            user_id,
            self.client,
            self.audit_logger,
            price_fn=price_fn,
            max_suggestions=self.config.get("agent.max_suggestions", 5),
        )
        cart_kwargs: Dict[str, Any] = {"delay_seconds": self.config.get("agent.checkout_delay_seconds", 1.5)}
        if sleep is not None:
            cart_kwargs["sleep"] = sleep
        self.cart_service = CartService(db_manager, user_id, self.audit_logger, **cart_kwargs)

        # Synchronised with the store
        self.inventory: List[InventoryItem] = []
        self.purchase_history: List[PurchaseHistoryEntry] = []
        self.user_config: UserConfig = initial_config()
        self.audit_log: List[AuditLogEntry] = []

        # Session state
        self.suggested_cart: List[SuggestedCartItem] = []
        self.cart_status = "Idle"
        self.log_message = ""
        self.pending_delete_id: Optional[str] = None
        self.is_processing = False

        self._lock = threading.RLock()
        self._depth = 0
        self._unsubscribers: List[Callable[[], None]] = []

    # Lifecycle

    def start(self, auto_forecast: Optional[bool] = None) -> "ShoppingAgent":
        """
        Seed first-time users, subscribe to the store and run the initial forecast.

        Args:
            auto_forecast: Override ``agent.auto_forecast_on_start``
        """
        try:
            if self.inventory_service.initialize_user_data():
                self.log_message = "Initial data setup complete. Loading agent..."
            else:
                self.log_message = "Existing data found. Loading agent..."
        except sqlite3.Error as e:
            self.logger.error(f"Error initializing user data: {e}", exc_info=True)
            self.log_message = "Error initializing user data. Check logs."

        self._subscribe()

        if auto_forecast is None:
            auto_forecast = self.config.get("agent.auto_forecast_on_start", True)
        if auto_forecast and self.needs_forecast():
            self.run_forecasting()
        return self

    def stop(self) -> None:
        """Remove all store subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _subscribe(self) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.db_manager.subscribe(self.user_id, Collection.INVENTORY, self._on_inventory),
            self.db_manager.subscribe(self.user_id, Collection.PURCHASE_HISTORY, self._on_history),
            self.db_manager.subscribe(self.user_id, Collection.USER_CONFIG, self._on_config),
            self.db_manager.subscribe(self.user_id, Collection.AUDIT_LOG, self._on_audit_log),
        ]

    def _on_inventory(self, items: List[InventoryItem]) -> None:
        self.inventory = items

    def _on_history(self, entries: List[PurchaseHistoryEntry]) -> None:
        self.purchase_history = entries[:self.history_limit]

    def _on_config(self, config: Optional[UserConfig]) -> None:
        if config is not None:
            self.user_config = config

    def _on_audit_log(self, entries: List[AuditLogEntry]) -> None:
        self.audit_log = entries[:self.audit_log_limit]

    @contextmanager
    def _processing(self):
        with self._lock:
            self._depth += 1
            self.is_processing = True
            try:
                yield
            finally:
                self._depth -= 1
                self.is_processing = self._depth > 0

    # Forecasting

    def needs_forecast(self) -> bool:
        """Whether a forecast run is due after loading data."""
        if not self.inventory or not self.purchase_history:
            return False
        missing = any(item.predicted_run_out_date is None for item in self.inventory)
        return not self.suggested_cart or missing

    def run_forecasting(self) -> Optional[ForecastOutcome]:
        """
        Forecast run-out dates and rebuild the suggested cart.

        Returns:
            ForecastOutcome, or None when there is no inventory to analyze
        """
        with self._processing():
            if not self.inventory:
                self.log_message = "Forecasting stopped: No inventory items available to analyze."
                self.cart_status = "Idle (Inventory Empty)"
                return None

            self.cart_status = "Running AI prediction engine for forecast and cart..."
            self.log_message = "Updating inventory with AI-driven run-out dates..."

            outcome = self.forecast_service.run_forecast(
                self.inventory,
                self.purchase_history,
                self.user_config,
            )
            if outcome.skipped:
                self.log_message = "Forecasting stopped: No inventory items available to analyze."
                self.cart_status = "Idle (Inventory Empty)"
                return outcome

            if outcome.forecasts_committed:
                self.log_message = f"AI forecasts updated for {outcome.forecasts_applied} item(s)."
            else:
                self.log_message = "Error saving AI forecasts. Check logs."

            self.suggested_cart = outcome.cart
            self.cart_status = f"Cart built: {len(outcome.cart)} items. Total: ${outcome.total_cost:.2f}."
            return outcome

    # Inputs

    def process_updates(self, updates: List[Union[ItemUpdate, Dict[str, Any]]]) -> bool:
        """
        Apply purchases/restocks, then re-run the forecast.

        Entries that fail validation are dropped.

        Returns:
            True if the batch was committed
        """
        parsed: List[ItemUpdate] = []
        for update in updates:
            if isinstance(update, ItemUpdate):
                parsed.append(update)
                continue
            try:
                parsed.append(ItemUpdate.model_validate(update))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid item update {update!r}: {e.error_count()} error(s)")

        if not parsed:
            return False

        with self._processing():
            self.log_message = f"Processing {len(parsed)} incoming item update(s) and logging history..."
            try:
                self.inventory_service.apply_updates(parsed, self.inventory)
            except (sqlite3.Error, ValidationError) as e:
                self.logger.error(f"Batch commit error: {e}", exc_info=True)
                self.log_message = "Error processing batch updates. Check logs."
                return False

            self.run_forecasting()
            self.log_message = f"Successfully processed {len(parsed)} item(s). Inventory and History updated."
            return True

    def add_item_manually(self, name: Any, quantity: Any, cost: Any, vendor: Any = None) -> bool:
        """
        Log a single purchase typed in by the user.

        Returns:
            True if the item was recorded
        """
        try:
            quantity = float(quantity)
            cost = float(cost)
        except (TypeError, ValueError):
            quantity = cost = math.nan

        if (
            not isinstance(name, str) or not name.strip()
            or math.isnan(quantity) or quantity <= 0
            or math.isnan(cost) or cost < 0
        ):
            self.log_message = "Please enter valid item name, quantity, and cost."
            return False

        try:
            update = ItemUpdate(
                name=name.strip(),
                quantity=quantity,
                cost=cost,
                vendor=vendor or self.user_config.default_vendor,
                method=MANUAL_METHOD,
            )
        except ValidationError as e:
            self.logger.warning(f"Rejected manual item {name!r}: {e.error_count()} error(s)")
            self.log_message = "Please enter valid item name, quantity, and cost."
            return False
        return self.process_updates([update])

    def process_receipt_image(self, data: bytes, mime_type: str, filename: Optional[str] = None) -> int:
        """
        Extract purchases from a receipt image and apply them.

        Returns:
            Number of extracted items applied
        """
        try:
            image = ReceiptImage(data=data, mime_type=mime_type, filename=filename)
        except ReceiptImageError as e:
            self.log_message = str(e)
            return 0

        with self._processing():
            self.log_message = f"Uploading and sending image ({filename or 'receipt'}) to Vision API for OCR..."
            extracted = self.client.extract_receipt_items(image.to_base64(), image.mime_type)

            if not extracted:
                self.log_message = "Vision API failed to extract items from the receipt. Check logs for details."
                return 0

            try:
                updates = [item.to_update(VISION_METHOD) for item in extracted]
            except ValidationError as e:
                self.logger.error(f"Receipt items could not be converted: {e}", exc_info=True)
                self.log_message = "Error processing batch updates. Check logs."
                return 0

            applied = self.process_updates(updates)
            return len(extracted) if applied else 0

    # Cart

    def checkout(self) -> bool:
        """
        Execute the suggested cart without confirmation.

        Returns:
            True if the purchase was committed
        """
        cart = self.suggested_cart
        if not cart:
            return False

        with self._processing():
            # A concurrent checkout already bought this cart
            if self.suggested_cart is not cart:
                return False

            self.cart_status = "Agent is fully Autonomous. Executing Purchase..."
            try:
                total = self.cart_service.checkout(cart, self.inventory, self.user_config)
            except (sqlite3.Error, ValidationError) as e:
                self.logger.error(f"Checkout batch commit error: {e}", exc_info=True)
                self.log_message = "Error during purchase execution. Check logs."
                return False

            self.suggested_cart = []
            self.cart_status = f"Purchase Complete! Total: ${total:.2f}."
            self.run_forecasting()
            return True

    def dismiss_cart(self) -> None:
        self.suggested_cart = []

    # Inventory edits

    def update_item(self, item: Union[InventoryItem, Dict[str, Any]]) -> InventoryItem:
        """Save a manual inventory edit and clear any pending delete."""
        saved = self.inventory_service.update_item(item)
        self.log_message = f"Inventory updated for: {saved.name}"
        self.pending_delete_id = None
        return saved

    def increment_item(self, item_id: str) -> InventoryItem:
        saved = self.inventory_service.adjust_quantity(item_id, 1)
        self.log_message = f"Inventory updated for: {saved.name}"
        self.pending_delete_id = None
        return saved

    def decrement_item(self, item_id: str) -> InventoryItem:
        saved = self.inventory_service.adjust_quantity(item_id, -1)
        self.log_message = f"Inventory updated for: {saved.name}"
        self.pending_delete_id = None
        return saved

    def request_delete(self, item_id: str) -> None:
        self.pending_delete_id = item_id

    def cancel_delete(self) -> None:
        self.pending_delete_id = None

    def delete_item(self, item_id: str) -> bool:
        """
        Delete an inventory item and clear the pending confirmation.

        Returns:
            True if the item existed and was removed
        """
        with self._processing():
            try:
                deleted = self.inventory_service.delete_item(item_id)
            except sqlite3.Error as e:
                self.logger.error(f"Error deleting inventory item: {e}", exc_info=True)
                self.log_message = "Error deleting item. Check logs."
                return False
            finally:
                self.pending_delete_id = None

            if deleted:
                self.log_message = f"Item with ID {item_id} deleted successfully."
            return deleted

    # Settings

    def update_config(self, **fields: Any) -> UserConfig:
        """
        Merge settings into the user config.

        Raises:
            ValueError: On unknown or invalid fields
        """
        self.db_manager.merge_user_config(self.user_id, **fields)
        merged = self.user_config.model_copy(update=fields)
        self.log_message = "Configuration saved successfully."
        self.audit_logger.log_action(self.user_id, AuditAction.CONFIG_UPDATE.value, merged.model_dump())
        return self.user_config

    def set_spend_cap(self, value: Any) -> UserConfig:
        try:
            cap = float(value)
        except (TypeError, ValueError):
            cap = 0.0
        return self.update_config(spend_cap_monthly=0.0 if math.isnan(cap) else cap)

    def toggle_vendor(self, vendor: str) -> UserConfig:
        """Add a vendor to the allowlist, or remove it if present."""
        allowlist = list(self.user_config.vendor_allowlist)
        if vendor in allowlist:
            allowlist.remove(vendor)
        else:
            allowlist.append(vendor)
        return self.update_config(vendor_allowlist=allowlist)

    # Views

    def state(self) -> Dict[str, Any]:
        """Serializable snapshot of the whole state tree."""
        inventory = []
        for item in self.inventory:
            row = item.model_dump(mode="json")
            row["forecast_display"] = item.forecast_display()
            row["low_stock"] = item.is_low_stock()
            inventory.append(row)

        return {
            "user_id": self.user_id,
            "inventory": inventory,
            "purchase_history": [entry.model_dump(mode="json") for entry in self.purchase_history],
            "user_config": self.user_config.model_dump(mode="json"),
            "remaining_budget": self.user_config.remaining_budget(),
            "audit_log": [entry.model_dump(mode="json") for entry in self.audit_log],
            "suggested_cart": [line.model_dump(mode="json") for line in self.suggested_cart],
            "cart_total": cart_total(self.suggested_cart),
            "cart_status": self.cart_status,
            "log_message": self.log_message,
            "pending_delete_id": self.pending_delete_id,
            "is_processing": self.is_processing,
        }
