"""Configuration management for pmpnat.

Configuration is assembled from defaults, explicit overrides and ``PMPNAT_*``
environment variables, then validated through the Pydantic models. There is
no configuration file.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from pmpnat.models import Config
from pmpnat.utils.exceptions import ConfigurationError
from pmpnat.utils.logging_config import setup_logging

# Global configuration instance
_config_manager: ConfigManager | None = None

_ENV_MAPPING: dict[str, str] = {
    "PMPNAT_LOG_LEVEL": "observability.log_level",
    "PMPNAT_LOG_FILE": "observability.log_file",
    "PMPNAT_STRUCTURED_LOGGING": "observability.structured_logging",
    "PMPNAT_LOG_CORRELATION_ID": "observability.log_correlation_id",
}


class ConfigManager:
    """Builds and holds the validated configuration."""

    def __init__(
        self,
        overrides: dict[str, Any] | None = None,
        *,
        configure_logging: bool = True,
    ):
        """Initialize configuration manager.

        Args:
            overrides: Nested dict of values applied before the environment
            configure_logging: Apply the observability section to ``logging``

        """
        self.overrides = overrides or {}
        self.config = self._load_config()
        if configure_logging:
            setup_logging(self.config.observability)

    def _load_config(self) -> Config:
        """Load configuration from overrides and environment."""
        config_data = self._merge_config({}, self.overrides)
        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        for env_var, config_path in _ENV_MAPPING.items():
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue
            section, key = config_path.split(".", 1)
            env_config.setdefault(section, {})[key] = self._parse_env_value(env_value)
            logging.debug("Config override from %s", env_var)

        return env_config

    @staticmethod
    def _parse_env_value(value: str) -> bool | str:
        """Parse an environment value, recognising booleans."""
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        return value

    def _merge_config(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        result = dict(base)
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result


def get_config() -> Config:
    """Get the global configuration, creating it on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(
    overrides: dict[str, Any] | None = None,
    *,
    configure_logging: bool = True,
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(overrides, configure_logging=configure_logging)
    return _config_manager


def reset_config() -> None:
    """Drop the global configuration manager."""
    global _config_manager
    _config_manager = None
