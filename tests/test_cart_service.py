"""
Tests for autonomous checkout.
"""

import json
import sqlite3
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from smart_shopper.models import InventoryItem, SuggestedCartItem, UserConfig
from smart_shopper.services import CartService
from smart_shopper.services.cart_service import cart_total


class TestCartService:

    @pytest.fixture(autouse=True)
    def setup(self, db_manager):
        self.db = db_manager
        self.config = UserConfig(spend_cap_monthly=500, current_month_spend=150, vendor_allowlist=["Amazon"])
        self.db.batch().set_user_config("alice", self.config).commit()
        self.milk = InventoryItem(
            id="milk", name="Milk", quantity=1, restock_level=2, predicted_run_out_date=date(2030, 1, 1)
        )
        self.db.set_inventory_item("alice", self.milk)
        self.sleep = MagicMock()
        self.service = CartService(self.db, "alice", delay_seconds=1.5, sleep=self.sleep)
        self.cart = [SuggestedCartItem(name="Milk", quantity=2, cost=10.0, vendor="Amazon", reason="Low stock")]

    def test_checkout_restocks_and_updates_spend(self):
        total = self.service.checkout(self.cart, [self.milk], self.config)

        assert total == 10.0
        milk = self.db.get_inventory_item("alice", "milk")
        assert milk.quantity == 3
        assert milk.predicted_run_out_date is None
        assert self.db.get_user_config("alice").current_month_spend == 160.0
        self.sleep.assert_called_once_with(1.5)

    def test_history_records_agent_purchase(self):
        self.service.checkout(self.cart, [self.milk], self.config)

        entry = self.db.get_purchase_history("alice")[0]
        assert (entry.item, entry.quantity, entry.vendor, entry.cost, entry.method) == (
            "Milk", 2, "Amazon", 10.0, "Agent Auto"
        )

    def test_unknown_item_is_history_only(self):
        cart = self.cart + [SuggestedCartItem(name="Batteries", quantity=4, cost=20.0, vendor="Amazon")]

        total = self.service.checkout(cart, [self.milk], self.config)

        assert total == 30.0
        assert [item.name for item in self.db.get_inventory("alice")] == ["Milk"]
        assert sorted(e.item for e in self.db.get_purchase_history("alice")) == ["Batteries", "Milk"]

    def test_purchase_is_audited_before_and_after(self):
        self.service.checkout(self.cart, [self.milk], self.config)

        entries = list(reversed(self.db.get_audit_log("alice")))
        assert [entry.action for entry in entries] == [
            "Purchase Executed (Auto)",
            "Purchase Executed (Simulated)",
        ]
        assert json.loads(entries[1].details) == {"total": "10.00", "items": ["Milk"]}

    def test_empty_cart_is_a_no_op(self):
        assert self.service.checkout([], [self.milk], self.config) == 0.0
        assert self.db.get_audit_log("alice") == []
        self.sleep.assert_not_called()

    def test_commit_failure_leaves_store_untouched(self):
        with patch("smart_shopper.database.db_manager.WriteBatch.commit", side_effect=sqlite3.Error("disk full")):
            with pytest.raises(sqlite3.Error):
                self.service.checkout(self.cart, [self.milk], self.config)

        assert self.db.get_inventory_item("alice", "milk").quantity == 1
        assert self.db.get_user_config("alice").current_month_spend == 150

    def test_unrecordable_line_fails_before_any_audit(self):
        cart = [SuggestedCartItem.model_construct(name="Milk", quantity=2, cost=10.0, vendor="V" * 120, reason="")]

        with pytest.raises(ValidationError):
            self.service.checkout(cart, [self.milk], self.config)

        assert self.db.get_audit_log("alice") == []
        assert self.db.get_purchase_history("alice") == []
        self.sleep.assert_not_called()


def test_cart_total_rounds():
    cart = [
        SuggestedCartItem(name="A", quantity=1, cost=0.1, vendor="Unknown"),
        SuggestedCartItem(name="B", quantity=1, cost=0.2, vendor="Unknown"),
    ]
    assert cart_total(cart) == 0.3
