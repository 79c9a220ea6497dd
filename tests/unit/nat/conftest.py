"""Fixtures for NAT-PMP tests."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from natpmp_fakes import FakeGateway

from pmpnat.nat.retry import RetransmitController
from pmpnat.utils.backoff import ExponentialBackoff


@pytest_asyncio.fixture
async def fake_gateway():
    """Start a loopback NAT-PMP gateway."""
    loop = asyncio.get_running_loop()
    transport, gateway = await loop.create_datagram_endpoint(
        FakeGateway,
        local_addr=("127.0.0.1", 0),
    )
    try:
        yield gateway
    finally:
        transport.close()


@pytest.fixture
def fast_controller():
    """Retransmit schedule short enough for tests."""
    return RetransmitController(
        max_attempts=4,
        backoff=ExponentialBackoff(base_delay=0.01, max_delay=0.05),
    )
