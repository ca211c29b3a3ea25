"""
Configuration management for Smart Shopper.

Handles application settings and secure credential storage.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet

CONFIG_DIR_ENV = "SMART_SHOPPER_CONFIG_DIR"
PROVIDER_KEY_CREDENTIAL = "gemini_api_key"


class ConfigManager:
    """
    Manages application configuration and settings.

    Provides secure storage for sensitive data like the provider API key.
    """

    def __init__(self, config_dir: Optional[str] = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory for configuration files (defaults to
                $SMART_SHOPPER_CONFIG_DIR or "config")
        """
        self.config_dir = Path(config_dir or os.getenv(CONFIG_DIR_ENV, "config"))
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Configuration file paths
        self.config_file = self.config_dir / "app_config.json"
        self.credentials_file = self.config_dir / "credentials.enc"
        self.key_file = self.config_dir / ".key"

        # In-memory configuration
        self.config: Dict[str, Any] = {}
        self.credentials: Dict[str, Any] = {}

        self._init_encryption()
        self.load_config()

    def _init_encryption(self) -> None:
        """Initialize encryption for credentials."""
        if self.key_file.exists():
            with open(self.key_file, 'rb') as f:
                self.encryption_key = f.read()
        else:
            self.encryption_key = Fernet.generate_key()
            with open(self.key_file, 'wb') as f:
                f.write(self.encryption_key)
            if os.name != 'nt':
                os.chmod(self.key_file, 0o600)

        self.cipher = Fernet(self.encryption_key)

    def load_config(self) -> None:
        """Load configuration from files."""
        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                stored = json.load(f)
            # Keys added in newer versions fall back to their defaults
            self.config = _deep_merge(self._get_default_config(), stored)
        else:
            self.config = self._get_default_config()
            self.save_config()

        if self.credentials_file.exists():
            with open(self.credentials_file, 'rb') as f:
                encrypted_data = f.read()
            decrypted_data = self.cipher.decrypt(encrypted_data)
            self.credentials = json.loads(decrypted_data.decode())

    def save_config(self) -> None:
        """Save configuration to file."""
        with open(self.config_file, 'w') as f:
            json.dump(self.config, f, indent=2)

    def save_credentials(self) -> None:
        """Save encrypted credentials to file."""
        json_data = json.dumps(self.credentials).encode()
        encrypted_data = self.cipher.encrypt(json_data)

        with open(self.credentials_file, 'wb') as f:
            f.write(encrypted_data)

        if os.name != 'nt':
            os.chmod(self.credentials_file, 0o600)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "app_version": "0.1.0",
            "database": {
                "path": "data/smart_shopper.db"
            },
            "logging": {
                "level": "INFO",
                "dir": "logs",
                "max_file_size_mb": 10,
                "backup_count": 5
            },
            "llm": {
                "model": "gemini-2.5-flash-preview-09-2025",
                "proxy_url": "http://localhost:8000/api/gemini",
                "base_url": "https://generativelanguage.googleapis.com/v1beta/models",
                "api_key_env": "GEMINI_API_KEY",
                "max_retries": 5,
                "timeout_seconds": 60
            },
            "agent": {
                "default_user_id": "local-user",
                "history_limit": 100,
                "audit_log_limit": 50,
                "max_suggestions": 5,
                "checkout_delay_seconds": 1.5,
                "auto_forecast_on_start": True
            },
            "server": {
                "host": "0.0.0.0",
                "port": 8000
            }
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key (supports dot notation, e.g., "database.path")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def set(self, key: str, value: Any, save: bool = True) -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
            save: Whether to save immediately
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

        if save:
            self.save_config()

    def get_credential(self, key: str) -> Optional[str]:
        """Get encrypted credential."""
        return self.credentials.get(key)

    def set_credential(self, key: str, value: str, save: bool = True) -> None:
        """
        Set encrypted credential.

        Args:
            key: Credential key
            value: Credential value
            save: Whether to save immediately
        """
        self.credentials[key] = value
        if save:
            self.save_credentials()

    def get_provider_api_key(self) -> Optional[str]:
        """
        Get the language-model provider API key.

        The environment variable named by ``llm.api_key_env`` wins over the
        encrypted credential store.

        Returns:
            API key or None if not configured
        """
        env_name = self.get("llm.api_key_env", "GEMINI_API_KEY")
        return os.getenv(env_name) or self.get_credential(PROVIDER_KEY_CREDENTIAL)

    def set_provider_api_key(self, api_key: str) -> None:
        """Store the provider API key in the encrypted credential store."""
        self.set_credential(PROVIDER_KEY_CREDENTIAL, api_key)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Global configuration instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """
    Get global configuration manager instance.

    Returns:
        ConfigManager instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def reset_config_manager() -> None:
    """Reset global configuration manager (mainly for testing)."""
    global _config_manager
    _config_manager = None
