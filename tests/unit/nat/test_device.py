"""Unit tests for NATPMPDevice, the public NAT-PMP operations."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
from unittest.mock import AsyncMock, patch

import pytest
from natpmp_fakes import echo_responder, mapping_response, public_address_response

from pmpnat.nat.device import NATPMPDevice
from pmpnat.nat.exceptions import (
    MappingError,
    NATError,
    NATOperationNotSupportedError,
    NATPMPError,
    NATPMPTimeoutError,
)
from pmpnat.nat.natpmp import (
    NAT_PMP_OPERATION_TIMEOUT,
    NAT_PMP_PORT,
    RESULT_DESCRIPTIONS,
    NATPMPOpcode,
    NATPMPResult,
)
from pmpnat.nat.port_mapping import Mapping, NATProtocol
from pmpnat.utils.exceptions import ValidationError

pytestmark = [pytest.mark.unit, pytest.mark.nat]


@pytest.fixture
def device(fake_gateway, fast_controller, monkeypatch):
    """Device pointed at the loopback gateway."""
    monkeypatch.setattr("pmpnat.nat.device.NAT_PMP_PORT", fake_gateway.port)
    return NATPMPDevice(
        "127.0.0.1",
        "127.0.0.1",
        "203.0.113.1",
        timeout=0.5,
        controller=fast_controller,
    )


def test_device_endpoint_uses_server_port():
    """Test the gateway endpoint uses the well-known NAT-PMP port."""
    device = NATPMPDevice("192.168.1.1", "192.168.1.10", "203.0.113.1")

    assert device.host_endpoint == ("192.168.1.1", NAT_PMP_PORT)
    assert device.gateway_ip == ipaddress.IPv4Address("192.168.1.1")
    assert device.local_address == ipaddress.IPv4Address("192.168.1.10")
    assert device.public_address == ipaddress.IPv4Address("203.0.113.1")
    assert device.timeout == NAT_PMP_OPERATION_TIMEOUT
    assert device.last_seen is None


def test_device_rejects_invalid_address():
    """Test addresses are validated."""
    with pytest.raises(ValueError):
        NATPMPDevice("not-an-ip", "192.168.1.10", "203.0.113.1")


def test_device_str():
    """Test the device summary."""
    device = NATPMPDevice("192.168.1.1", "192.168.1.10", "203.0.113.1")

    text = str(device)

    assert "Gateway: 192.168.1.1" in text
    assert "Local Address: 192.168.1.10" in text
    assert "Public IP: 203.0.113.1" in text
    assert "Last Seen: never" in text


@pytest.mark.asyncio
async def test_create_port_mapping(device, fake_gateway):
    """Test creating a mapping updates and registers it."""
    fake_gateway.responder = echo_responder(public_offset=1000)
    mapping = Mapping(NATProtocol.UDP, 1234, public_port=1234, lifetime=3600)

    before = time.time()
    result = await device.create_port_mapping(mapping)

    assert result is mapping
    assert mapping.public_port == 2234
    assert mapping.expiration is not None
    assert mapping.expiration == pytest.approx(time.time() + 3600, abs=5)
    assert mapping.expiration >= before + 3600
    assert mapping in device.registry
    assert device.last_seen is not None


@pytest.mark.asyncio
async def test_delete_port_mapping(device, fake_gateway):
    """Test deleting a mapping unregisters it without touching its fields."""
    fake_gateway.responder = echo_responder(public_offset=1000)
    mapping = Mapping(NATProtocol.TCP, 6881, lifetime=3600)
    await device.create_port_mapping(mapping)
    public_port, expiration = mapping.public_port, mapping.expiration

    fake_gateway.responder = lambda _req: [
        mapping_response(NATPMPOpcode.TCP_MAPPING_REQUEST, 6881, 0, 0)
    ]
    await device.delete_port_mapping(mapping)

    assert mapping not in device.registry
    assert mapping.public_port == public_port
    assert mapping.expiration == expiration
    # The delete request zeroes the public port and passes the lifetime through
    assert fake_gateway.requests[-1][6:8] == b"\x00\x00"


@pytest.mark.asyncio
async def test_create_protocol_failure(device, fake_gateway, caplog):
    """Test a refused create raises MappingError carrying the result code."""
    fake_gateway.responder = lambda _req: [
        mapping_response(
            NATPMPOpcode.TCP_MAPPING_REQUEST,
            6881,
            0,
            0,
            result=NATPMPResult.NOT_AUTHORIZED,
        )
    ]
    mapping = Mapping(NATProtocol.TCP, 6881, lifetime=3600)

    with caplog.at_level(logging.ERROR, logger="pmpnat"):
        with pytest.raises(MappingError) as exc_info:
            await device.create_port_mapping(mapping)

    error = exc_info.value
    assert error.verb == "create"
    assert error.protocol is NATProtocol.TCP
    assert error.private_port == 6881
    assert not error.timed_out
    assert error.result_code == NATPMPResult.NOT_AUTHORIZED
    assert isinstance(error.cause, NATPMPError)
    assert error.cause.description == RESULT_DESCRIPTIONS[NATPMPResult.NOT_AUTHORIZED]
    assert error.__cause__ is error.cause
    assert "Failed to create portmap (protocol=tcp, private port=6881)" in str(error)
    assert "Failed to create portmap" in caplog.text
    assert mapping.public_port == 0
    assert mapping.expiration is None
    assert mapping not in device.registry


@pytest.mark.asyncio
async def test_create_timeout(device, fake_gateway):
    """Test a silent gateway fails with a timeout distinct from protocol failure."""
    mapping = Mapping(NATProtocol.UDP, 6881, lifetime=3600)

    with pytest.raises(MappingError) as exc_info:
        await device.create_port_mapping(mapping)

    error = exc_info.value
    assert error.timed_out
    assert isinstance(error.cause, NATPMPTimeoutError)
    assert error.result_code is None
    assert mapping.public_port == 0
    assert mapping.expiration is None
    assert len(device.registry) == 0


@pytest.mark.asyncio
async def test_delete_failure_keeps_registration(device, fake_gateway):
    """Test a failed delete raises with the delete verb and keeps the mapping registered."""
    fake_gateway.responder = echo_responder()
    mapping = Mapping(NATProtocol.TCP, 6881, lifetime=3600)
    await device.create_port_mapping(mapping)

    fake_gateway.responder = lambda _req: [
        mapping_response(
            NATPMPOpcode.TCP_MAPPING_REQUEST,
            6881,
            0,
            0,
            result=NATPMPResult.NETWORK_FAILURE,
        )
    ]
    with pytest.raises(MappingError) as exc_info:
        await device.delete_port_mapping(mapping)

    assert exc_info.value.verb == "delete"
    assert "Failed to delete portmap" in str(exc_info.value)
    assert mapping in device.registry


@pytest.mark.asyncio
async def test_create_transport_fault(device):
    """Test a socket failure is wrapped with the original cause preserved."""
    mapping = Mapping(NATProtocol.TCP, 6881)
    fault = OSError("Network is unreachable")

    with patch(
        "pmpnat.nat.transport.NATPMPExchange.open", AsyncMock(side_effect=fault)
    ):
        with pytest.raises(MappingError) as exc_info:
            await device.create_port_mapping(mapping)

    assert exc_info.value.cause is fault
    assert not exc_info.value.timed_out


@pytest.mark.asyncio
async def test_concurrent_operations_are_serialized(device, fake_gateway):
    """Test overlapping operations on one device each get their own answer."""
    fake_gateway.responder = echo_responder(public_offset=100)
    mappings = [Mapping(NATProtocol.TCP, port, lifetime=60) for port in (1000, 2000, 3000)]

    await asyncio.gather(*(device.create_port_mapping(m) for m in mappings))

    assert [m.public_port for m in mappings] == [1100, 2100, 3100]
    assert len(device.registry) == 3


@pytest.mark.asyncio
async def test_get_external_ip_returns_cached_address(device, fake_gateway):
    """Test the cached public address is returned without network I/O."""
    address = await device.get_external_ip()

    assert address == ipaddress.IPv4Address("203.0.113.1")
    assert fake_gateway.requests == []


@pytest.mark.asyncio
async def test_get_external_ip_timeout(device):
    """Test the cached lookup is bounded by the same deadline."""

    async def never_returns():
        await asyncio.sleep(10)

    device.timeout = 0.05
    with patch.object(device, "_cached_public_address", never_returns):
        with pytest.raises(NATPMPTimeoutError):
            await device.get_external_ip()


@pytest.mark.asyncio
async def test_refresh_external_ip(device, fake_gateway):
    """Test a fresh query overwrites the cached public address."""
    fake_gateway.responder = lambda _req: [public_address_response("198.51.100.9")]

    address = await device.refresh_external_ip()

    assert address == ipaddress.IPv4Address("198.51.100.9")
    assert await device.get_external_ip() == address
    assert device.last_seen is not None


@pytest.mark.asyncio
async def test_refresh_external_ip_failure(device, fake_gateway):
    """Test a refused address query leaves the cache alone."""
    fake_gateway.responder = lambda _req: [
        public_address_response("0.0.0.0", result=NATPMPResult.NETWORK_FAILURE)  # noqa: S104
    ]

    with pytest.raises(NATPMPError):
        await device.refresh_external_ip()

    assert device.public_address == ipaddress.IPv4Address("203.0.113.1")


@pytest.mark.asyncio
async def test_refresh_external_ip_transport_fault(device):
    """Test socket failures during the address query surface as NATError."""
    with patch(
        "pmpnat.nat.transport.NATPMPExchange.open",
        AsyncMock(side_effect=OSError("boom")),
    ):
        with pytest.raises(NATError) as exc_info:
            await device.refresh_external_ip()

    assert isinstance(exc_info.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_get_all_mappings_not_supported(device):
    """Test listing mappings is reported as unsupported, never as empty."""
    with pytest.raises(NATOperationNotSupportedError):
        await device.get_all_mappings()


@pytest.mark.asyncio
async def test_get_specific_mapping_not_supported(device, fake_gateway):
    """Test looking up a mapping is reported as unsupported."""
    fake_gateway.responder = echo_responder()
    await device.create_port_mapping(Mapping(NATProtocol.TCP, 6881, lifetime=60))

    with pytest.raises(NATOperationNotSupportedError):
        await device.get_specific_mapping(NATProtocol.TCP, 6881)


@pytest.mark.asyncio
async def test_get_specific_mapping_unknown_protocol(device):
    """Test an unknown protocol still reports the operation as unsupported."""
    with pytest.raises(NATOperationNotSupportedError) as exc_info:
        await device.get_specific_mapping("sctp", 1)

    assert exc_info.value.details == {"protocol": "sctp", "port": 1}


@pytest.mark.asyncio
async def test_create_with_lifetime_changed_out_of_range(device, fake_gateway):
    """Test a field reassigned out of range fails as MappingError before sending."""
    fake_gateway.responder = echo_responder()
    mapping = Mapping(NATProtocol.TCP, 1)
    mapping.lifetime = -1

    with pytest.raises(MappingError) as exc_info:
        await device.create_port_mapping(mapping)

    assert isinstance(exc_info.value.cause, ValidationError)
    assert not exc_info.value.timed_out
    assert fake_gateway.requests == []
    assert mapping not in device.registry


@pytest.mark.asyncio
async def test_delete_with_bad_protocol(device, fake_gateway):
    """Test a mapping whose protocol was replaced by junk fails as MappingError."""
    mapping = Mapping(NATProtocol.UDP, 6881)
    mapping.protocol = "sctp"  # type: ignore[assignment]

    with pytest.raises(MappingError) as exc_info:
        await device.delete_port_mapping(mapping)

    assert "Failed to delete portmap (protocol=sctp, private port=6881)" in str(
        exc_info.value
    )
    assert isinstance(exc_info.value.cause, ValidationError)
    assert fake_gateway.requests == []


@pytest.mark.asyncio
async def test_exchange_not_started_when_cancelled_waiting_for_lock(device):
    """Test a caller cancelled while queued never starts its exchange."""
    started = []

    async def exchange():
        started.append(1)

    await device._lock.acquire()
    try:
        waiter = asyncio.create_task(device._run(exchange))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
    finally:
        device._lock.release()

    assert started == []
    assert not device._lock.locked()
