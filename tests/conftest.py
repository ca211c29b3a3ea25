"""
Shared fixtures for Smart Shopper tests.
"""

from datetime import date
from typing import List, Optional

import pytest

from smart_shopper.config import get_config_manager, reset_config_manager
from smart_shopper.database import create_database_manager
from smart_shopper.models import ExtractedReceiptItem, PredictionResult
from smart_shopper.utils import reset_loggers


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration and logs at a temporary directory."""
    monkeypatch.setenv("SMART_SHOPPER_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    reset_config_manager()
    reset_loggers()

    config = get_config_manager()
    config.set("logging.dir", str(tmp_path / "logs"))
    config.set("database.path", str(tmp_path / "app.db"))
    config.set("agent.checkout_delay_seconds", 0)

    yield config

    reset_config_manager()
    reset_loggers()


@pytest.fixture
def db_manager(tmp_path):
    """Fresh document store with schema applied."""
    return create_database_manager(str(tmp_path / "test.db"))


class FakePredictionClient:
    """Stands in for GeminiClient with canned results."""

    def __init__(
        self,
        prediction: Optional[PredictionResult] = None,
        receipt_items: Optional[List[ExtractedReceiptItem]] = None,
    ) -> None:
        self.prediction = prediction or PredictionResult()
        self.receipt_items = receipt_items or []
        self.predict_calls = []
        self.receipt_calls = []

    def predict(self, inventory, history, vendors=None, max_suggestions=5):
        self.predict_calls.append({
            "inventory": list(inventory),
            "history": list(history),
            "vendors": vendors,
            "max_suggestions": max_suggestions,
        })
        return self.prediction

    def extract_receipt_items(self, base64_image, mime_type):
        self.receipt_calls.append((base64_image, mime_type))
        return list(self.receipt_items)


@pytest.fixture
def fake_client():
    return FakePredictionClient()


def milk_prediction(run_out: date = date(2030, 1, 15)) -> PredictionResult:
    """Prediction asking for two units of milk."""
    return PredictionResult.model_validate({
        "suggested_cart": [{"name": "Milk", "quantityToBuy": 2, "reason": "Low stock"}],
        "inventory_forecasts": [{"name": "milk", "predictedRunOutDate": run_out.isoformat()}],
    })


def fixed_price(unit_price: float = 5.0):
    return lambda quantity: quantity * unit_price
