"""NAT traversal exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pmpnat.utils.exceptions import (
    NetworkError,
    PmpNatTimeoutError,
    ProtocolError,
)

if TYPE_CHECKING:  # pragma: no cover
    from pmpnat.nat.port_mapping import Mapping


class NATError(NetworkError):
    """Base exception for NAT traversal errors."""


class NATPMPError(NATError, ProtocolError):
    """Gateway answered with a non-success result code."""

    def __init__(self, result_code: int, description: str):
        """Initialize with the gateway's result code and its description."""
        super().__init__(
            f"NAT-PMP error {result_code}: {description}",
            {"result_code": result_code},
        )
        self.result_code = result_code
        self.description = description


class NATPMPTimeoutError(NATError, PmpNatTimeoutError):
    """No response was accepted before the exchange deadline."""


class NATOperationNotSupportedError(NATError):
    """Operation has no NAT-PMP equivalent."""


class MappingError(NATError):
    """A create or delete mapping operation failed.

    ``cause`` holds the underlying failure: a :class:`NATPMPError`, a
    :class:`NATPMPTimeoutError`, the ``OSError`` raised by the socket, or the
    :class:`~pmpnat.utils.exceptions.ValidationError` for a mapping that
    cannot be encoded.
    """

    def __init__(self, verb: str, mapping: Mapping, cause: BaseException):
        """Initialize mapping error."""
        protocol = getattr(mapping.protocol, "value", mapping.protocol)
        super().__init__(
            f"Failed to {verb} portmap "
            f"(protocol={protocol}, private port={mapping.private_port})",
            {
                "verb": verb,
                "protocol": protocol,
                "private_port": mapping.private_port,
                "cause": str(cause),
            },
        )
        self.verb = verb
        self.protocol = mapping.protocol
        self.private_port = mapping.private_port
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        """Whether the operation failed because the deadline elapsed."""
        return isinstance(self.cause, NATPMPTimeoutError)

    @property
    def result_code(self) -> int | None:
        """Gateway result code when the failure was a protocol error."""
        if isinstance(self.cause, NATPMPError):
            return self.cause.result_code
        return None
