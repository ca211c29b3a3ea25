#!/usr/bin/env python3
"""
Database initialization script.

Creates the Smart Shopper database and seeds starter data for a user.
"""

import argparse
import sqlite3
import sys

from smart_shopper.config import get_config_manager
from smart_shopper.database.db_manager import create_database_manager
from smart_shopper.services import InventoryService
from smart_shopper.utils import get_logger

TABLES = ["inventory", "purchase_history", "user_config", "audit_log"]


def main() -> None:
    """Initialize the database."""
    logger = get_logger("init_db")
    config = get_config_manager()

    parser = argparse.ArgumentParser(description="Create the Smart Shopper database and seed a user")
    parser.add_argument(
        '--db',
        default=config.get("database.path", "data/smart_shopper.db"),
        help='Path to database file'
    )
    parser.add_argument(
        '--user',
        default=config.get("agent.default_user_id", "local-user"),
        help='User id to seed'
    )
    parser.add_argument(
        '--api-key',
        help='Store the Gemini API key in the encrypted credential store'
    )
    args = parser.parse_args()

    if args.api_key:
        config.set_provider_api_key(args.api_key)
        logger.info("Provider API key saved to the encrypted credential store")

    logger.info("=" * 60)
    logger.info("Smart Shopper Database Initialization")
    logger.info("=" * 60)
    logger.info(f"Creating database at: {args.db}")

    try:
        db_manager = create_database_manager(args.db)

        logger.info("Verifying database tables:")
        for table in TABLES:
            if db_manager.table_exists(table):
                logger.info(f"  ✓ {table}")
            else:
                logger.warning(f"  ✗ {table} - NOT FOUND")

        seeded = InventoryService(db_manager, args.user).initialize_user_data()
        if seeded:
            logger.info(f"Seeded starter inventory, history and config for {args.user}")
        else:
            logger.info(f"User {args.user} already has data; nothing seeded")

        logger.info("=" * 60)
        logger.info("Database initialization complete!")
        logger.info("=" * 60)

    except sqlite3.Error as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
