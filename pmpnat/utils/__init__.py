"""Shared utilities and infrastructure."""

from __future__ import annotations

from pmpnat.utils.exceptions import (
    ConfigurationError,
    NetworkError,
    PmpNatError,
    PmpNatTimeoutError,
    ProtocolError,
    ValidationError,
)
from pmpnat.utils.logging_config import get_logger, setup_logging

__all__ = [
    # Exceptions
    "ConfigurationError",
    "NetworkError",
    "PmpNatError",
    "PmpNatTimeoutError",
    "ProtocolError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
]
