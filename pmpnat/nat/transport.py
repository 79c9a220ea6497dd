"""UDP request/response exchange with a NAT-PMP gateway.

Every exchange opens its own datagram endpoint, connected to the gateway, and
closes it on every exit path. A sender task retransmits the request on the
:class:`RetransmitController` schedule while the endpoint's protocol callback
decodes incoming datagrams; the first valid one resolves the exchange.

NAT-PMP has no transaction identifier. The first well-formed response on the
socket is taken as the answer, so callers must not run overlapping exchanges
against the same gateway (:class:`pmpnat.nat.device.NATPMPDevice` serializes
them).
"""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from pmpnat.nat.exceptions import NATPMPError, NATPMPTimeoutError
from pmpnat.nat.natpmp import (
    NAT_PMP_OPERATION_TIMEOUT,
    NATPMPResponse,
    decode_port_mapping_response,
    decode_public_address_response,
    encode_port_mapping_request,
    encode_public_address_request,
)
from pmpnat.nat.retry import RetransmitController

if TYPE_CHECKING:  # pragma: no cover
    from pmpnat.nat.port_mapping import Mapping

logger = logging.getLogger(__name__)

T = TypeVar("T")

Endpoint = tuple[str, int]


class NATPMPDatagramProtocol(asyncio.DatagramProtocol):
    """Datagram protocol feeding an exchange."""

    def __init__(self, exchange: NATPMPExchange) -> None:
        """Initialize protocol handler."""
        self.exchange = exchange

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Handle incoming UDP datagram."""
        self.exchange.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        """Handle UDP error (e.g. ICMP port unreachable)."""
        self.exchange.handle_error(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        """Handle endpoint shutdown."""
        if exc is not None:
            self.exchange.handle_error(exc)


class NATPMPExchange(Generic[T]):
    """A single request/response exchange over a private UDP socket."""

    def __init__(
        self,
        gateway: Endpoint,
        decoder: Callable[[bytes], T | None],
        controller: RetransmitController | None = None,
    ) -> None:
        """Initialize exchange.

        Args:
            gateway: Gateway (host, port)
            decoder: Turns a datagram into a result, returns None for
                datagrams to ignore and raises for protocol failures
            controller: Retransmission schedule

        """
        self.gateway = gateway
        self.decoder = decoder
        self.controller = controller or RetransmitController()
        self.transport: asyncio.DatagramTransport | None = None
        self.response: asyncio.Future[T] | None = None
        self.logger = logging.getLogger(__name__)

    async def open(self) -> None:
        """Create the UDP endpoint."""
        loop = asyncio.get_running_loop()
        self.response = loop.create_future()
        self.transport, _protocol = await loop.create_datagram_endpoint(
            lambda: NATPMPDatagramProtocol(self),
            remote_addr=self.gateway,
        )

    def close(self) -> None:
        """Close the UDP endpoint."""
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    async def __aenter__(self) -> NATPMPExchange[T]:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def handle_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        """Decode a datagram and resolve the exchange if it is an answer."""
        if self.response is None or self.response.done():
            return
        try:
            decoded = self.decoder(data)
        except NATPMPError as e:
            self.logger.debug("Gateway %s rejected request: %s", addr[0], e)
            self.response.set_exception(e)
            return
        if decoded is None:
            self.logger.debug("Ignoring %d-byte datagram from %s", len(data), addr[0])
            return
        self.response.set_result(decoded)

    def handle_error(self, exc: BaseException) -> None:
        """Fail the exchange with a transport fault."""
        if self.response is not None and not self.response.done():
            self.logger.debug("UDP error talking to %s: %s", self.gateway[0], exc)
            self.response.set_exception(exc)

    def _send(self, payload: bytes) -> None:
        if self.transport is None:
            msg = "Exchange endpoint is closed"
            raise ConnectionError(msg)
        self.transport.sendto(payload)

    def _on_sender_done(self, task: asyncio.Task[int]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.handle_error(exc)

    async def request(self, payload: bytes) -> T:
        """Send ``payload`` on the retry schedule and wait for the answer."""
        if self.response is None:
            msg = "Exchange is not open"
            raise RuntimeError(msg)

        sender = asyncio.create_task(
            self.controller.run(lambda: self._send(payload), self.response)
        )
        sender.add_done_callback(self._on_sender_done)
        try:
            return await self.response
        finally:
            if not sender.done():
                sender.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sender


async def send_request(
    gateway: Endpoint,
    payload: bytes,
    decoder: Callable[[bytes], T | None],
    *,
    timeout: float = NAT_PMP_OPERATION_TIMEOUT,
    controller: RetransmitController | None = None,
) -> T:
    """Run one exchange under an absolute deadline.

    Raises:
        NATPMPError: Gateway answered with a failure
        NATPMPTimeoutError: Nothing acceptable arrived within ``timeout``
        OSError: Socket failure

    """

    async def _run() -> T:
        async with NATPMPExchange(gateway, decoder, controller) as exchange:
            return await exchange.request(payload)

    try:
        return await asyncio.wait_for(_run(), timeout=timeout)
    except asyncio.TimeoutError:
        msg = f"No NAT-PMP response from {gateway[0]}:{gateway[1]} within {timeout:.1f}s"
        raise NATPMPTimeoutError(msg, {"gateway": gateway[0], "timeout": timeout}) from None


async def request_port_mapping(
    gateway: Endpoint,
    mapping: Mapping,
    create: bool,
    *,
    timeout: float = NAT_PMP_OPERATION_TIMEOUT,
    controller: RetransmitController | None = None,
) -> NATPMPResponse:
    """Create or delete ``mapping`` on the gateway.

    An accepted create response with a nonzero lifetime writes the assigned
    public port, the protocol and the expiration into ``mapping``. A zero
    lifetime acknowledges a deletion and leaves ``mapping`` untouched, as does
    every delete exchange.
    """
    response = await send_request(
        gateway,
        encode_port_mapping_request(mapping, create),
        decode_port_mapping_response,
        timeout=timeout,
        controller=controller,
    )

    if not create or response.lifetime == 0:
        logger.info(
            "Deleted %s port mapping for private port %s",
            mapping.protocol.value,
            mapping.private_port,
        )
        return response

    # TODO: reject responses whose private port differs from the request
    mapping.public_port = response.public_port
    mapping.protocol = response.protocol
    mapping.expiration = time.time() + response.lifetime
    logger.info(
        "Mapped %s port %s -> %s (lifetime: %s s)",
        response.protocol.value,
        response.private_port,
        response.public_port,
        response.lifetime,
    )
    return response


async def request_public_address(
    gateway: Endpoint,
    *,
    timeout: float = NAT_PMP_OPERATION_TIMEOUT,
    controller: RetransmitController | None = None,
) -> tuple[ipaddress.IPv4Address, int]:
    """Ask the gateway for its public address.

    Returns:
        Tuple of (external_ip, epoch)

    """
    return await send_request(
        gateway,
        encode_public_address_request(),
        decode_public_address_response,
        timeout=timeout,
        controller=controller,
    )
