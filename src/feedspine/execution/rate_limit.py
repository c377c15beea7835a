"""Rate limiting -- minimum spacing between upstream calls.

Manifesto:
Upstream vendors publish quotas as "N requests per minute". Exceeding them
earns 429s or bans, so each fetcher paces its own calls *before* they leave
the process.

ARCHITECTURE
────────────
::

    SpacingRateLimiter
      interval = 60 / rate_per_minute
      next_slot           ─ earliest time the next call may start
      reserve()           ─ claim a slot, return how long to wait (no await)
      acquire()           ─ reserve + sleep until the slot
      estimated_wait()    ─ queueing delay a new caller would face

Callers that arrive early are delayed, never rejected. Whether the delay is
acceptable is the caller's decision: ``ResilientFetcher`` refuses work when
``estimated_wait()`` exceeds its timeout budget.

Example::

    limiter = SpacingRateLimiter.per_minute(120)   # one call per 0.5s
    await limiter.acquire()
    response = await client.get(url)

Tags:
    feedspine, execution, rate-limit, throttle
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class SpacingRateLimiter:
    """Enforce a minimum interval between consecutive calls.

    Attributes:
        interval: Seconds between the starts of two calls
        clock: Monotonic time source (seconds)
        sleep: Awaitable sleep used by :meth:`acquire`
    """

    interval: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    _next_slot: float = field(default=float("-inf"), init=False)

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ValueError("interval must be >= 0")

    @classmethod
    def per_minute(cls, rate_per_minute: float, **kwargs: Any) -> SpacingRateLimiter:
        """Build a limiter allowing ``rate_per_minute`` calls per minute."""
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be > 0")
        return cls(interval=60.0 / rate_per_minute, **kwargs)

    def estimated_wait(self) -> float:
        """Seconds a call reserving now would wait for its slot."""
        return max(0.0, self._next_slot - self.clock())

    def reserve(self) -> float:
        """Claim the next free slot and return the wait until it starts."""
        now = self.clock()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.interval
        return slot - now

    async def acquire(self) -> float:
        """Wait for the next free slot. Returns the seconds waited."""
        wait = self.reserve()
        if wait > 0:
            await self.sleep(wait)
        return wait


__all__ = ["SpacingRateLimiter"]
