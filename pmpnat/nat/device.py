"""NAT-PMP gateway device: the public mapping operations."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pmpnat.nat.exceptions import (
    MappingError,
    NATError,
    NATOperationNotSupportedError,
    NATPMPTimeoutError,
)
from pmpnat.nat.natpmp import NAT_PMP_OPERATION_TIMEOUT, NAT_PMP_PORT
from pmpnat.nat.port_mapping import Mapping, MappingRegistry, NATProtocol
from pmpnat.nat.retry import RetransmitController
from pmpnat.nat.transport import (
    Endpoint,
    request_port_mapping,
    request_public_address,
)
from pmpnat.utils.exceptions import PmpNatError
from pmpnat.utils.logging_config import log_exception, set_correlation_id

T = TypeVar("T")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class NATPMPDevice:
    """A gateway found to speak NAT-PMP.

    The gateway, local and public addresses come from discovery and are fixed
    for the lifetime of the device, except that :meth:`refresh_external_ip`
    replaces the cached public address.

    Exchanges against one device run one at a time: NAT-PMP responses carry
    no transaction identifier, so overlapping requests could not be told
    apart.
    """

    def __init__(
        self,
        gateway_ip: str | IPAddress,
        local_address: str | IPAddress,
        public_address: str | IPAddress,
        *,
        timeout: float = NAT_PMP_OPERATION_TIMEOUT,
        controller: RetransmitController | None = None,
    ) -> None:
        """Initialize device.

        Args:
            gateway_ip: Address of the NAT-PMP gateway
            local_address: Address of the local interface facing the gateway
            public_address: Public address the gateway reported at discovery
            timeout: Absolute deadline per operation in seconds
            controller: Retransmission schedule (default: RFC 6886 cadence)

        """
        self.gateway_ip = ipaddress.ip_address(gateway_ip)
        self.local_address = ipaddress.ip_address(local_address)
        self._public_address = ipaddress.ip_address(public_address)
        self._host_endpoint: Endpoint = (str(self.gateway_ip), NAT_PMP_PORT)
        self.timeout = timeout
        self.controller = controller
        self.registry = MappingRegistry()
        self.last_seen: float | None = None
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    @property
    def host_endpoint(self) -> Endpoint:
        """Gateway (address, port) requests are sent to."""
        return self._host_endpoint

    @property
    def public_address(self) -> IPAddress:
        """Cached public address of the gateway."""
        return self._public_address

    async def create_port_mapping(self, mapping: Mapping) -> Mapping:
        """Create ``mapping`` on the gateway.

        On success ``mapping`` holds the assigned public port and expiration
        and is added to :attr:`registry`.

        Raises:
            MappingError: The gateway refused, timed out, the socket failed
                or a field of ``mapping`` is out of range

        """
        await self._map(mapping, create=True)
        self.registry.register(mapping)
        return mapping

    async def delete_port_mapping(self, mapping: Mapping) -> Mapping:
        """Delete ``mapping`` from the gateway and from :attr:`registry`.

        Raises:
            MappingError: The gateway refused, timed out, the socket failed
                or a field of ``mapping`` is out of range

        """
        await self._map(mapping, create=False)
        self.registry.unregister(mapping)
        return mapping

    async def get_external_ip(self) -> IPAddress:
        """Return the cached public address.

        No request is sent; use :meth:`refresh_external_ip` for that.
        """
        try:
            return await asyncio.wait_for(
                self._cached_public_address(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            msg = "Timeout getting external IP"
            raise NATPMPTimeoutError(msg) from None

    async def refresh_external_ip(self) -> IPAddress:
        """Ask the gateway for its public address and cache the answer.

        Raises:
            NATError: The gateway refused, timed out or the socket failed

        """
        try:
            address, epoch = await self._run(
                lambda: request_public_address(
                    self.host_endpoint,
                    timeout=self.timeout,
                    controller=self.controller,
                )
            )
        except OSError as e:
            msg = f"Error getting external IP from {self.gateway_ip}: {e}"
            raise NATError(msg) from e

        self._public_address = address
        self.last_seen = time.time()
        self.logger.info(
            "Gateway %s reports public address %s (epoch: %s s)",
            self.gateway_ip,
            address,
            epoch,
        )
        return address

    async def get_all_mappings(self) -> list[Mapping]:
        """NAT-PMP cannot list mappings; always raises."""
        msg = "NAT-PMP does not support listing port mappings"
        raise NATOperationNotSupportedError(msg)

    async def get_specific_mapping(self, protocol: NATProtocol, port: int) -> Mapping:
        """NAT-PMP cannot look up a mapping; always raises."""
        msg = "NAT-PMP does not specify a way to get a specific port map"
        raise NATOperationNotSupportedError(
            msg, {"protocol": getattr(protocol, "value", protocol), "port": port}
        )

    async def _cached_public_address(self) -> IPAddress:
        return self._public_address

    async def _map(self, mapping: Mapping, create: bool) -> None:
        verb = "create" if create else "delete"
        try:
            await self._run(
                lambda: request_port_mapping(
                    self.host_endpoint,
                    mapping,
                    create,
                    timeout=self.timeout,
                    controller=self.controller,
                )
            )
        except (PmpNatError, OSError) as e:
            error = MappingError(verb, mapping, e)
            log_exception(self.logger, e, error.message)
            raise error from e
        self.last_seen = time.time()

    async def _run(self, exchange: Callable[[], Awaitable[T]]) -> T:
        """Run one exchange in its own task, after any in-flight exchange.

        ``exchange`` is only called once the lock is held.
        """

        async def _isolated() -> T:
            set_correlation_id()
            return await exchange()

        async with self._lock:
            return await asyncio.create_task(_isolated())

    def __str__(self) -> str:
        last_seen = (
            time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.last_seen))
            if self.last_seen is not None
            else "never"
        )
        return (
            f"Gateway: {self.gateway_ip}\n"
            f"Local Address: {self.local_address}\n"
            f"Public IP: {self._public_address}\n"
            f"Last Seen: {last_seen}"
        )
