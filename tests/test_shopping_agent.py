"""
Tests for the per-user shopping agent workflows and state tree.
"""

import json
import sqlite3
import threading
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakePredictionClient, fixed_price, milk_prediction
from smart_shopper.models import ExtractedReceiptItem, ItemUpdate, PredictionResult, SuggestedCartItem
from smart_shopper.services import ShoppingAgent


class TestShoppingAgent:

    @pytest.fixture(autouse=True)
    def setup(self, db_manager, isolated_config):
        self.db = db_manager
        self.client = FakePredictionClient(prediction=milk_prediction(date(2030, 1, 15)))
        self.sleep = MagicMock()
        self.agent = ShoppingAgent(
            db_manager,
            "alice",
            client=self.client,
            config=isolated_config,
            price_fn=fixed_price(5.0),
            sleep=self.sleep,
        )
        yield
        self.agent.stop()

    def milk(self):
        return next(item for item in self.agent.inventory if item.name == "Milk")

    def test_start_seeds_and_auto_forecasts(self):
        self.agent.start()

        assert [item.name for item in self.agent.inventory] == ["Coffee Beans", "Dish Soap", "Milk", "Toilet Paper"]
        assert len(self.agent.purchase_history) == 2
        assert self.agent.user_config.current_month_spend == 150
        assert len(self.client.predict_calls) == 1
        assert self.agent.cart_status == "Cart built: 1 items. Total: $10.00."
        assert self.milk().predicted_run_out_date == date(2030, 1, 15)
        assert self.agent.is_processing is False

    def test_start_without_auto_forecast(self):
        self.agent.start(auto_forecast=False)

        assert self.client.predict_calls == []
        assert self.agent.cart_status == "Idle"

    def test_audit_log_is_synced(self):
        self.agent.start()

        actions = [entry.action for entry in self.agent.audit_log]
        assert "Cart Built" in actions
        assert "Forecast Update" in actions

    def test_forecast_with_empty_inventory(self):
        self.agent.start(auto_forecast=False)
        for item in list(self.agent.inventory):
            self.agent.delete_item(item.id)

        assert self.agent.run_forecasting() is None
        assert self.agent.log_message == "Forecasting stopped: No inventory items available to analyze."
        assert self.agent.cart_status == "Idle (Inventory Empty)"
        assert self.client.predict_calls == []

    def test_checkout_milk_example(self):
        self.agent.start()

        assert self.agent.checkout() is True

        assert self.milk().quantity == 3
        assert self.agent.user_config.current_month_spend == 160
        self.sleep.assert_not_called()
        # The forecast re-runs after the purchase and rebuilds the cart
        assert len(self.client.predict_calls) == 2
        assert self.agent.cart_status.startswith("Cart built:")

    def test_checkout_reports_completion_before_reforecast(self):
        self.agent.start()
        statuses = []
        original = self.agent.run_forecasting

        def spy():
            statuses.append(self.agent.cart_status)
            return original()

        self.agent.run_forecasting = spy
        self.agent.checkout()

        assert statuses == ["Purchase Complete! Total: $10.00."]

    def test_checkout_failure(self):
        self.agent.start()

        with patch.object(self.agent.cart_service, "checkout", side_effect=sqlite3.Error("locked")):
            assert self.agent.checkout() is False

        assert self.agent.log_message == "Error during purchase execution. Check logs."
        assert len(self.agent.suggested_cart) == 1

    def test_concurrent_checkouts_buy_once(self):
        self.agent.start()
        started = threading.Event()
        release = threading.Event()

        def slow_sleep(_):
            started.set()
            release.wait(5)

        # The follow-up forecast suggests nothing new
        self.client.prediction = PredictionResult()
        self.agent.cart_service.delay_seconds = 1
        self.agent.cart_service.sleep = slow_sleep
        results = []

        first = threading.Thread(target=lambda: results.append(self.agent.checkout()))
        first.start()
        started.wait(5)
        second = threading.Thread(target=lambda: results.append(self.agent.checkout()))
        second.start()
        release.set()
        first.join(5)
        second.join(5)

        assert sorted(results) == [False, True]
        assert self.agent.user_config.current_month_spend == 160

    def test_checkout_with_unrecordable_line(self):
        self.agent.start(auto_forecast=False)
        self.agent.suggested_cart = [
            SuggestedCartItem.model_construct(name="Milk", quantity=2, cost=10.0, vendor="V" * 120, reason="")
        ]

        assert self.agent.checkout() is False

        assert self.agent.log_message == "Error during purchase execution. Check logs."
        assert self.agent.user_config.current_month_spend == 150
        assert "Purchase Executed (Auto)" not in [entry.action for entry in self.agent.audit_log]

    def test_empty_cart_checkout_is_ignored(self):
        self.agent.start(auto_forecast=False)
        assert self.agent.checkout() is False

    def test_dismiss_cart(self):
        self.agent.start()
        self.agent.dismiss_cart()
        assert self.agent.suggested_cart == []

    def test_manual_input(self):
        self.agent.start(auto_forecast=False)

        assert self.agent.add_item_manually(" Milk ", "2", "6.50") is True

        assert self.milk().quantity == 3
        entry = self.agent.purchase_history[0]
        assert (entry.item, entry.method, entry.vendor) == ("Milk", "Manual Input", "Amazon")
        assert len(self.client.predict_calls) == 1

    @pytest.mark.parametrize("name,quantity,cost", [
        ("", 1, 1),
        ("Milk", 0, 1),
        ("Milk", "abc", 1),
        ("Milk", 1, -2),
        (None, 1, 1),
    ])
    def test_manual_input_validation(self, name, quantity, cost):
        self.agent.start(auto_forecast=False)

        assert self.agent.add_item_manually(name, quantity, cost) is False
        assert self.agent.log_message == "Please enter valid item name, quantity, and cost."

    def test_manual_input_rejects_long_vendor(self):
        self.agent.start(auto_forecast=False)

        assert self.agent.add_item_manually("Eggs", 1, 2.0, vendor="V" * 150) is False

        assert self.agent.log_message == "Please enter valid item name, quantity, and cost."
        assert len(self.agent.purchase_history) == 2
        assert self.client.predict_calls == []

    def test_process_updates_unrecordable_entry(self):
        self.agent.start(auto_forecast=False)
        update = ItemUpdate.model_construct(name="Eggs", quantity=1.0, cost=2.0, vendor="V" * 150, method=None)

        assert self.agent.process_updates([update]) is False

        assert self.agent.log_message == "Error processing batch updates. Check logs."
        assert all(item.name != "Eggs" for item in self.agent.inventory)

    def test_process_updates_drops_long_names(self):
        self.agent.start(auto_forecast=False)

        assert self.agent.process_updates([{"name": "N" * 250}]) is False
        assert len(self.agent.purchase_history) == 2

    def test_receipt_with_unusable_items(self):
        self.agent.start(auto_forecast=False)
        self.client.receipt_items = [
            ExtractedReceiptItem.model_construct(name="N" * 250, quantity=1.0, cost=1.0, vendor="Target")
        ]

        assert self.agent.process_receipt_image(b"\x89PNG", "image/png") == 0
        assert self.agent.log_message == "Error processing batch updates. Check logs."
        assert len(self.agent.purchase_history) == 2

    def test_process_updates_status(self):
        self.agent.start(auto_forecast=False)
        self.client.prediction = PredictionResult()

        self.agent.process_updates([{"name": "Eggs", "quantity": 12, "cost": 4}])

        assert self.agent.log_message == "Successfully processed 1 item(s). Inventory and History updated."
        assert any(item.name == "Eggs" for item in self.agent.inventory)

    def test_process_updates_commit_failure(self):
        self.agent.start(auto_forecast=False)

        with patch.object(self.agent.inventory_service, "apply_updates", side_effect=sqlite3.Error("locked")):
            assert self.agent.process_updates([{"name": "Eggs"}]) is False

        assert self.agent.log_message == "Error processing batch updates. Check logs."
        assert self.client.predict_calls == []

    def test_receipt_upload(self):
        self.agent.start(auto_forecast=False)
        self.client.receipt_items = [ExtractedReceiptItem(name="Eggs", quantity=12, cost=4.5, vendor="Target")]

        assert self.agent.process_receipt_image(b"\x89PNG", "image/png", "receipt.png") == 1

        entry = self.agent.purchase_history[0]
        assert (entry.item, entry.vendor, entry.method) == ("Eggs", "Target", "Vision OCR")
        assert self.client.receipt_calls == [("iVBORw==", "image/png")]

    def test_receipt_rejects_non_images(self):
        self.agent.start(auto_forecast=False)

        assert self.agent.process_receipt_image(b"%PDF", "application/pdf") == 0
        assert self.agent.log_message == "Error: Please upload a valid image file (JPEG or PNG)."
        assert self.client.receipt_calls == []

    def test_receipt_extraction_failure(self):
        self.agent.start(auto_forecast=False)

        assert self.agent.process_receipt_image(b"\xff\xd8", "image/jpeg") == 0
        assert self.agent.log_message == "Vision API failed to extract items from the receipt. Check logs for details."

    def test_manual_edit_clears_pending_delete(self):
        self.agent.start(auto_forecast=False)
        self.agent.request_delete("3")

        self.agent.increment_item("3")

        assert self.agent.pending_delete_id is None
        assert self.agent.log_message == "Inventory updated for: Milk"
        assert self.milk().quantity == 2

    def test_delete_flow(self):
        self.agent.start(auto_forecast=False)
        self.agent.request_delete("4")
        assert self.agent.pending_delete_id == "4"
        self.agent.cancel_delete()
        assert self.agent.pending_delete_id is None

        self.agent.request_delete("4")
        assert self.agent.delete_item("4") is True

        assert self.agent.pending_delete_id is None
        assert all(item.id != "4" for item in self.agent.inventory)
        assert self.agent.audit_log[0].action == "Inventory Deletion"

    def test_update_config_merges_and_audits(self):
        self.agent.start(auto_forecast=False)

        self.agent.set_spend_cap("750")

        assert self.agent.user_config.spend_cap_monthly == 750
        assert self.agent.user_config.vendor_allowlist == ["Amazon", "Walmart"]
        assert self.agent.log_message == "Configuration saved successfully."
        entry = self.agent.audit_log[0]
        assert entry.action == "Config Update"
        assert json.loads(entry.details)["spend_cap_monthly"] == 750

    def test_toggle_vendor(self):
        self.agent.start(auto_forecast=False)

        self.agent.toggle_vendor("Amazon")
        assert self.agent.user_config.vendor_allowlist == ["Walmart"]
        self.agent.toggle_vendor("Target")
        assert self.agent.user_config.vendor_allowlist == ["Walmart", "Target"]

    def test_toggle_rejects_long_vendor(self):
        self.agent.start(auto_forecast=False)

        with pytest.raises(ValueError):
            self.agent.toggle_vendor("V" * 120)
        assert self.agent.user_config.vendor_allowlist == ["Amazon", "Walmart"]

    def test_invalid_config_is_rejected(self):
        self.agent.start(auto_forecast=False)

        with pytest.raises(ValueError):
            self.agent.update_config(spend_cap_monthly=-5)
        assert self.agent.user_config.spend_cap_monthly == 500

    def test_state_tree(self):
        self.agent.start()

        state = self.agent.state()

        assert state["user_id"] == "alice"
        assert state["cart_total"] == 10.0
        milk = next(row for row in state["inventory"] if row["name"] == "Milk")
        assert milk["low_stock"] is True
        assert milk["predicted_run_out_date"] == "2030-01-15"
        assert milk["forecast_display"].endswith("(2030-01-15)")
        assert state["user_config"]["vendor_allowlist"] == ["Amazon", "Walmart"]
