"""Exception hierarchy for pmpnat.

Provides the base error types shared by the NAT layer, the configuration
layer and the logging helpers.
"""

from __future__ import annotations

from typing import Any


class PmpNatError(Exception):
    """Base exception for all pmpnat errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize pmpnat error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(PmpNatError):
    """Network-related errors."""


class ProtocolError(PmpNatError):
    """Wire protocol errors reported by the gateway."""


class ValidationError(PmpNatError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class PmpNatTimeoutError(PmpNatError):
    """Timeout errors."""
