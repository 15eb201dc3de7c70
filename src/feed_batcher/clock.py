"""
Clock abstraction used for backoff and rate limiting.

Swapping the clock lets tests run retry schedules instantly while still
observing every requested sleep.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from time import monotonic
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...

    def utc_now(self) -> datetime:
        ...


class MonotonicClock:
    """Real clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)
