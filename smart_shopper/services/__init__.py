"""
Business logic services for Smart Shopper.
"""

from .cart_service import CartService
from .forecast_service import ForecastOutcome, ForecastService
from .gemini_client import GeminiClient, PredictionServiceError
from .inventory_service import InventoryItemNotFound, InventoryService
from .shopping_agent import ShoppingAgent

__all__ = [
    "CartService",
    "ForecastOutcome",
    "ForecastService",
    "GeminiClient",
    "PredictionServiceError",
    "InventoryItemNotFound",
    "InventoryService",
    "ShoppingAgent",
]
