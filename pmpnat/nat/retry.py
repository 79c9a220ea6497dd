"""Retransmission cadence for NAT-PMP requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pmpnat.nat.natpmp import NAT_PMP_RETRY_ATTEMPTS, NAT_PMP_RETRY_DELAY
from pmpnat.utils.backoff import ExponentialBackoff

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF = ExponentialBackoff(
    base_delay=NAT_PMP_RETRY_DELAY,
    multiplier=2.0,
    max_delay=float("inf"),
)


class RetransmitController:
    """Resends one request on an exponential schedule.

    The controller only governs when datagrams go out. It never looks at
    responses; it stops early once ``done`` is resolved by the receiver.
    """

    def __init__(
        self,
        max_attempts: int = NAT_PMP_RETRY_ATTEMPTS,
        backoff: ExponentialBackoff = DEFAULT_BACKOFF,
    ) -> None:
        """Initialize controller.

        Args:
            max_attempts: Number of datagrams sent at most
            backoff: Delay policy; the wait after attempt ``n`` (1-based) is
                ``backoff.next_delay(n)``, i.e. the base delay doubled once
                per attempt already made

        """
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.backoff = backoff

    async def run(self, send: Callable[[], None], done: asyncio.Future[Any]) -> int:
        """Send until ``done`` resolves or the attempts run out.

        Returns:
            Number of datagrams sent

        """
        attempt = 0
        for delay in self.backoff.delays(self.max_attempts):
            if done.done():
                break
            send()
            attempt += 1
            logger.debug(
                "NAT-PMP request sent (attempt %d/%d), waiting %.2fs",
                attempt,
                self.max_attempts,
                delay,
            )
            await asyncio.wait((done,), timeout=delay)
        return attempt
