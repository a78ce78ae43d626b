"""
Token bucket throttling outbound decision calls.

Decision collection stays sequential; the bucket spaces the external calls
so that every match in the process shares one request budget.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from decision_gateway import config


class TokenBucket:
    def __init__(
        self,
        rate: float = config.DECISION_RATE,
        capacity: float = config.DECISION_BURST,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = self.capacity
        self._updated = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def acquire(self) -> float:
        """Wait until a token is available; returns the seconds spent waiting."""
        waited = 0.0
        while not self.try_acquire():
            delay = (1 - self._tokens) / self.rate
            await self._sleep(delay)
            waited += delay
        return waited
