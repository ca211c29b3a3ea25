"""
Logging infrastructure for Smart Shopper.

Provides structured logging with file rotation and audit trail integration.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..config.config_manager import get_config_manager
from ..models.audit_log import AuditLogEntry

ROOT_LOGGER_NAME = "smart_shopper"


class ShopperLogger:
    """
    Application logger for Smart Shopper.

    Configures the package root logger with file and console output; named
    component loggers propagate into it.
    """

    def __init__(
        self,
        name: str = ROOT_LOGGER_NAME,
        log_dir: Optional[str] = None,
        log_file: str = "smart_shopper.log"
    ) -> None:
        """
        Initialize logger.

        Args:
            name: Logger name
            log_dir: Directory for log files (defaults to ``logging.dir``)
            log_file: Log file name
        """
        config = get_config_manager()
        self.name = name
        self.log_dir = Path(log_dir or config.get("logging.dir", "logs"))
        self.log_file = self.log_dir / log_file

        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_level = config.get("logging.level", "INFO")
        self.max_file_size_mb = config.get("logging.max_file_size_mb", 10)
        self.backup_count = config.get("logging.backup_count", 5)

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers.clear()

        self.file_formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        self.console_formatter = logging.Formatter(
            fmt='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

        self._setup_file_handler()
        self._setup_console_handler()

    def _setup_file_handler(self) -> None:
        """Set up rotating file handler."""
        max_bytes = self.max_file_size_mb * 1024 * 1024

        file_handler = RotatingFileHandler(
            self.log_file,
            maxBytes=max_bytes,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)  # File gets all logs
        file_handler.setFormatter(self.file_formatter)

        self.logger.addHandler(file_handler)

    def _setup_console_handler(self) -> None:
        """Set up console handler."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, self.log_level))
        console_handler.setFormatter(self.console_formatter)

        self.logger.addHandler(console_handler)

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """
        Get a component logger.

        Args:
            name: Component name, nested under the package logger

        Returns:
            logging.Logger instance
        """
        if not name or name == self.name:
            return self.logger
        return self.logger.getChild(name)


class AuditLogger:
    """
    Audit logger that writes to the per-user audit log collection.

    Every action is mirrored to the file log.
    """

    def __init__(self, db_manager=None) -> None:
        """
        Initialize audit logger.

        Args:
            db_manager: Database manager instance (optional)
        """
        self.db_manager = db_manager
        self.file_logger = get_logger("audit")

    def log_action(
        self,
        user_id: str,
        action: str,
        details: Union[str, Dict[str, Any], None] = None,
    ) -> Optional[AuditLogEntry]:
        """
        Log an action to the audit trail.

        Args:
            user_id: Owner of the audit log
            action: Human-readable action name
            details: Free text or a dict (stored JSON-encoded)

        Returns:
            The stored entry, or None if it could not be persisted
        """
        if details is None:
            details = {}
        entry = AuditLogEntry(
            action=str(action),
            details=details if isinstance(details, str) else json.dumps(details),
        )

        self.file_logger.info(f"AUDIT [{user_id}]: {entry.action} - {entry.details}")

        if not self.db_manager:
            return entry

        try:
            self.db_manager.add_audit_entry(user_id, entry)
        except Exception as e:
            self.file_logger.error(f"Failed to write audit log to database: {e}")
            return None
        return entry


# Global logger instance
_logger: Optional[ShopperLogger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get application logger.

    Args:
        name: Optional component name (defaults to the package logger)

    Returns:
        Logger instance
    """
    global _logger
    if _logger is None:
        _logger = ShopperLogger()
    return _logger.get_logger(name)


def reset_loggers() -> None:
    """Reset global logger instances (mainly for testing)."""
    global _logger
    _logger = None
