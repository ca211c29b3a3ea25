"""
Utility functions for Smart Shopper.
"""

from .logger import (
    AuditLogger,
    ShopperLogger,
    get_logger,
    reset_loggers,
)

__all__ = [
    "ShopperLogger",
    "AuditLogger",
    "get_logger",
    "reset_loggers",
]
