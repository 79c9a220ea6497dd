"""pmpnat - NAT-PMP port mapping client.

Create and delete port mappings on a NAT-PMP (RFC 6886) gateway and query
its public address, using asyncio.
"""

from __future__ import annotations

from pmpnat.nat import (
    Mapping,
    MappingError,
    NATError,
    NATOperationNotSupportedError,
    NATPMPDevice,
    NATPMPError,
    NATPMPTimeoutError,
    NATProtocol,
)

__version__ = "0.1.0"

__all__ = [
    "Mapping",
    "MappingError",
    "NATError",
    "NATOperationNotSupportedError",
    "NATPMPDevice",
    "NATPMPError",
    "NATPMPTimeoutError",
    "NATProtocol",
    "__version__",
]
