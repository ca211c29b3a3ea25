"""
Tests for inventory seeding, manual edits and the apply-updates routine.
"""

import json
from datetime import date

import pytest

from smart_shopper.models import InventoryItem, ItemUpdate
from smart_shopper.services import InventoryItemNotFound, InventoryService


class TestSeeding:

    @pytest.fixture(autouse=True)
    def setup(self, db_manager):
        self.db = db_manager
        self.service = InventoryService(db_manager, "alice")

    def test_first_use_seeds_everything(self):
        assert self.service.initialize_user_data() is True

        names = [item.name for item in self.service.get_all_items()]
        assert names == ["Coffee Beans", "Dish Soap", "Milk", "Toilet Paper"]
        assert len(self.db.get_purchase_history("alice")) == 2

        config = self.db.get_user_config("alice")
        assert config.spend_cap_monthly == 500
        assert config.current_month_spend == 150
        assert config.vendor_allowlist == ["Amazon", "Walmart"]

    def test_existing_user_is_not_reseeded(self):
        self.service.initialize_user_data()
        self.service.delete_item("1")

        assert self.service.initialize_user_data() is False
        assert len(self.service.get_all_items()) == 3


class TestApplyUpdates:
    """Purchases turn into history records and restocks."""

    @pytest.fixture(autouse=True)
    def setup(self, db_manager):
        self.db = db_manager
        self.service = InventoryService(db_manager, "alice")
        self.milk = InventoryItem(
            id="milk",
            name="Milk",
            quantity=1,
            unit="gallon",
            restock_level=2,
            predicted_run_out_date=date(2030, 1, 1),
        )
        self.db.set_inventory_item("alice", self.milk)

    def test_restock_adds_quantity_and_clears_forecast(self):
        self.service.apply_updates([ItemUpdate(name="MILK", quantity=3, cost=9.0, vendor="Walmart")])

        milk = self.service.get_item("milk")
        assert milk.quantity == 4
        assert milk.predicted_run_out_date is None
        assert milk.unit == "gallon"

    def test_new_item_defaults(self):
        written = self.service.apply_updates([ItemUpdate(name="Eggs", quantity=12, cost=4.0)])

        assert len(written) == 1
        eggs = written[0]
        assert eggs.restock_level == 24
        assert eggs.daily_use == pytest.approx(12 / 30)
        assert eggs.unit == "units"
        assert eggs.predicted_run_out_date is None

    def test_single_new_item_uses_singular_unit(self):
        written = self.service.apply_updates([ItemUpdate(name="Kettle", quantity=1)])
        assert written[0].unit == "unit"
        assert written[0].restock_level == 2

    def test_every_update_is_logged_to_history(self):
        self.service.apply_updates([
            ItemUpdate(name="Milk", quantity=1, cost=3.0, vendor="Walmart", method="Manual Input"),
            ItemUpdate(name="Bread", quantity=2, cost=5.0),
        ])

        history = self.db.get_purchase_history("alice")
        assert sorted(entry.item for entry in history) == ["Bread", "Milk"]
        methods = {entry.item: entry.method for entry in history}
        assert methods == {"Milk": "Manual Input", "Bread": "Agent Input"}

    def test_repeated_names_in_one_batch_accumulate(self):
        self.service.apply_updates([
            ItemUpdate(name="Apples", quantity=2),
            ItemUpdate(name="apples", quantity=3),
            ItemUpdate(name="Milk", quantity=1),
            ItemUpdate(name="milk", quantity=1),
        ])

        apples = [item for item in self.service.get_all_items() if item.name.lower() == "apples"]
        assert len(apples) == 1
        assert apples[0].quantity == 5
        assert self.service.get_item("milk").quantity == 3

    def test_input_processed_is_audited(self):
        self.service.apply_updates([ItemUpdate(name="Eggs", quantity=6, method="Vision OCR")])

        entry = self.db.get_audit_log("alice")[0]
        assert entry.action == "Input Processed"
        assert json.loads(entry.details) == {"source": "Vision OCR", "items": ["Eggs"]}

    def test_empty_updates_do_nothing(self):
        assert self.service.apply_updates([]) == []
        assert self.db.get_purchase_history("alice") == []


class TestManualEdits:

    @pytest.fixture(autouse=True)
    def setup(self, db_manager):
        self.db = db_manager
        self.service = InventoryService(db_manager, "alice")
        self.db.set_inventory_item(
            "alice",
            InventoryItem(id="soap", name="Dish Soap", quantity=1, predicted_run_out_date=date(2030, 1, 1)),
        )

    def test_update_sanitises_values(self):
        saved = self.service.update_item({
            "name": "Paper Towels",
            "quantity": "-3",
            "restock_level": "abc",
            "daily_use": None,
        })

        assert saved.id
        assert saved.quantity == 0
        assert saved.unit == "units"
        assert saved.restock_level == 1.0
        assert saved.daily_use == 0.05

    def test_update_clears_forecast(self):
        item = self.service.get_item("soap")
        saved = self.service.update_item(item.model_copy(update={"quantity": 2}))

        assert saved.predicted_run_out_date is None
        assert self.service.get_item("soap").quantity == 2

    def test_decrement_floors_at_zero(self):
        self.service.adjust_quantity("soap", -1)
        item = self.service.adjust_quantity("soap", -1)
        assert item.quantity == 0

    def test_unknown_item_raises(self):
        with pytest.raises(InventoryItemNotFound):
            self.service.adjust_quantity("missing", 1)

    def test_delete_is_audited(self):
        assert self.service.delete_item("soap") is True

        entry = self.db.get_audit_log("alice")[0]
        assert entry.action == "Inventory Deletion"
        assert json.loads(entry.details) == {"itemId": "soap"}

    def test_find_by_name_is_case_insensitive(self):
        inventory = self.service.get_all_items()
        assert InventoryService.find_by_name("dish SOAP", inventory).id == "soap"
        assert InventoryService.find_by_name("Soap", inventory) is None
