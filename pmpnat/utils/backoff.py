"""Backoff policy for request retransmission."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class ExponentialBackoff:
    """Deterministic exponential backoff.

    ``next_delay(n)`` is ``base_delay * multiplier**n``, capped at
    ``max_delay``.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0

    def next_delay(self, retries: int) -> float:
        """Delay after ``retries`` attempts (negative counts as zero)."""
        return min(self.base_delay * (self.multiplier ** max(0, retries)), self.max_delay)

    def delays(self, attempts: int, *, start: int = 1) -> Iterator[float]:
        """Yield the delay following each of ``attempts`` sends."""
        for retries in range(start, start + attempts):
            yield self.next_delay(retries)
