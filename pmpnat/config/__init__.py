"""Configuration package for pmpnat."""

from pmpnat.config.config import ConfigManager, get_config, init_config, reset_config

__all__ = ["ConfigManager", "get_config", "init_config", "reset_config"]
