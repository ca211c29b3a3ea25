"""
Data models for Smart Shopper.

This module exports all data models for easy import.
"""

from .audit_log import AuditAction, AuditLogEntry
from .cart import ItemUpdate, SuggestedCartItem, parse_number
from .inventory import InventoryItem, PurchaseHistoryEntry, normalize_name
from .prediction import (
    CartSuggestion,
    ExtractedReceiptItem,
    InventoryForecast,
    PredictionResult,
)
from .user_config import UNKNOWN_VENDOR, UserConfig

__all__ = [
    # Inventory models
    "InventoryItem",
    "PurchaseHistoryEntry",
    "normalize_name",
    # Config
    "UserConfig",
    "UNKNOWN_VENDOR",
    # Cart models
    "SuggestedCartItem",
    "ItemUpdate",
    "parse_number",
    # Prediction service output
    "CartSuggestion",
    "InventoryForecast",
    "PredictionResult",
    "ExtractedReceiptItem",
    # Audit log models
    "AuditLogEntry",
    "AuditAction",
]
