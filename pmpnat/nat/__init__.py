"""NAT-PMP port mapping.

Provides a client for the NAT Port Mapping Protocol (RFC 6886): creating and
deleting port mappings on a gateway and querying its public address.
"""

from pmpnat.nat.device import NATPMPDevice
from pmpnat.nat.exceptions import (
    MappingError,
    NATError,
    NATOperationNotSupportedError,
    NATPMPError,
    NATPMPTimeoutError,
)
from pmpnat.nat.port_mapping import Mapping, MappingRegistry, NATProtocol

__all__ = [
    "Mapping",
    "MappingError",
    "MappingRegistry",
    "NATError",
    "NATOperationNotSupportedError",
    "NATPMPDevice",
    "NATPMPError",
    "NATPMPTimeoutError",
    "NATProtocol",
]
