"""Port mapping value object and active mapping registry."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

MAX_PORT = 0xFFFF
MAX_LIFETIME = 0xFFFFFFFF


class NATProtocol(str, Enum):
    """Transport protocol of a port mapping."""

    TCP = "tcp"
    UDP = "udp"


@dataclass
class Mapping:
    """A private-port to public-port translation held by the gateway.

    ``public_port`` is the requested public port until a create exchange is
    accepted, after which it holds the port the gateway actually assigned.
    ``expiration`` stays ``None`` until then.
    """

    protocol: NATProtocol
    private_port: int
    public_port: int = 0
    lifetime: int = 7200  # seconds
    expiration: float | None = None
    description: str = ""

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check protocol, port and lifetime ranges.

        Fields may be reassigned after construction, so the encoder calls
        this again before a mapping goes on the wire.

        Raises:
            ValueError: A field is out of range

        """
        self.protocol = NATProtocol(self.protocol)
        for name in ("private_port", "public_port"):
            value = getattr(self, name)
            if not 0 <= value <= MAX_PORT:
                msg = f"{name} must be in range 0-{MAX_PORT}, got {value}"
                raise ValueError(msg)
        if not 0 <= self.lifetime <= MAX_LIFETIME:
            msg = f"lifetime must be in range 0-{MAX_LIFETIME}, got {self.lifetime}"
            raise ValueError(msg)

    @property
    def key(self) -> tuple[NATProtocol, int]:
        """Registry key: protocol and private port."""
        return (self.protocol, self.private_port)

    def is_expired(self, now: float | None = None) -> bool:
        """Whether the gateway-reported lifetime has run out."""
        if self.expiration is None:
            return False
        return self.expiration < (time.time() if now is None else now)


class MappingRegistry:
    """Active mappings created through one device.

    Higher-level trackers read this to know what the device currently holds.
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self.mappings: dict[tuple[NATProtocol, int], Mapping] = {}
        self.logger = logging.getLogger(__name__)

    def register(self, mapping: Mapping) -> None:
        """Record a mapping the gateway accepted."""
        self.mappings[mapping.key] = mapping
        self.logger.debug(
            "Registered port mapping: %s:%s", mapping.protocol.value, mapping.private_port
        )

    def unregister(self, mapping: Mapping) -> bool:
        """Forget a mapping.

        Returns:
            True if mapping was removed, False if not found

        """
        if self.mappings.pop(mapping.key, None) is None:
            return False
        self.logger.debug(
            "Unregistered port mapping: %s:%s",
            mapping.protocol.value,
            mapping.private_port,
        )
        return True

    def get(self, protocol: NATProtocol, private_port: int) -> Mapping | None:
        """Get a registered mapping by protocol and private port."""
        return self.mappings.get((NATProtocol(protocol), private_port))

    def get_all(self) -> list[Mapping]:
        """Get all registered mappings."""
        return list(self.mappings.values())

    def cleanup_expired(self, now: float | None = None) -> list[Mapping]:
        """Drop mappings whose expiration has passed.

        Returns:
            The mappings that were removed

        """
        expired = [m for m in self.mappings.values() if m.is_expired(now)]
        for mapping in expired:
            del self.mappings[mapping.key]
            self.logger.info(
                "Cleaned up expired mapping: %s:%s",
                mapping.protocol.value,
                mapping.private_port,
            )
        return expired

    def __contains__(self, mapping: object) -> bool:
        return isinstance(mapping, Mapping) and mapping.key in self.mappings

    def __iter__(self) -> Iterator[Mapping]:
        return iter(list(self.mappings.values()))

    def __len__(self) -> int:
        return len(self.mappings)
