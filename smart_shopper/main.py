#!/usr/bin/env python3
"""
Main entry point for Smart Shopper.

Autonomous household replenishment agent served over HTTP.
"""

import sqlite3
import sys
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from . import __version__
from .api import create_app
from .config import get_config_manager
from .database import DatabaseManager, create_database_manager
from .utils import get_logger


class SmartShopperApplication:
    """Main application controller."""

    def __init__(self) -> None:
        """Initialize the application."""
        self.logger = get_logger("smart_shopper")
        self.config = get_config_manager()
        self.db_manager: Optional[DatabaseManager] = None
        self.app: Optional[FastAPI] = None

    def initialize(self) -> bool:
        """
        Initialize application components.

        Returns:
            True if initialization successful
        """
        self.logger.info("=" * 60)
        self.logger.info("Smart Shopper - Autonomous Replenishment Agent")
        self.logger.info(f"Version {__version__}")
        self.logger.info("=" * 60)

        db_path = self.config.get("database.path", "data/smart_shopper.db")
        self.logger.info(f"Connecting to database: {db_path}")

        try:
            self.db_manager = create_database_manager(db_path)
        except (OSError, sqlite3.Error) as e:
            self.logger.error(f"Initialization failed: {e}", exc_info=True)
            return False

        if not self.config.get_provider_api_key():
            env_name = self.config.get("llm.api_key_env", "GEMINI_API_KEY")
            self.logger.warning(f"No provider API key configured; set {env_name} to enable AI features")

        self.app = create_app(self.db_manager)
        self.logger.info("Application initialized successfully")
        return True

    def run(self) -> int:
        """
        Run the HTTP server.

        Returns:
            Exit code
        """
        host = self.config.get("server.host", "0.0.0.0")
        port = self.config.get("server.port", 8000)
        self.logger.info(f"Starting server on {host}:{port}")
        uvicorn.run(self.app, host=host, port=port)
        return 0


def main() -> int:
    """Main entry point."""
    load_dotenv()

    application = SmartShopperApplication()
    if not application.initialize():
        return 1
    return application.run()


if __name__ == "__main__":
    sys.exit(main())
