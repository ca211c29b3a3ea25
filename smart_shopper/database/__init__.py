"""
Persistence layer for Smart Shopper.
"""

from .db_manager import Collection, DatabaseManager, WriteBatch, create_database_manager

__all__ = ["Collection", "DatabaseManager", "WriteBatch", "create_database_manager"]
