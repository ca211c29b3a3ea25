"""
Data ingestion components for Smart Shopper.
"""

from .receipt_extraction import ReceiptImage, ReceiptImageError

__all__ = [
    "ReceiptImage",
    "ReceiptImageError",
]
