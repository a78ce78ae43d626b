"""
Per-provider cooldown windows opened after rate-limit failures.

One breaker instance is shared by every match in the process, so a provider
resting for one arena is skipped by all of them.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from decision_gateway import config

LOGGER = logging.getLogger("decision_gateway.circuit_breaker")


class CircuitBreaker:
    def __init__(
        self,
        cooldown: float = config.PROVIDER_COOLDOWN,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.cooldown = float(cooldown)
        self._clock = clock or time.monotonic
        self._open_until: Dict[str, float] = {}

    def is_open(self, provider: str) -> bool:
        until = self._open_until.get(provider)
        if until is None:
            return False
        if self._clock() >= until:
            del self._open_until[provider]
            LOGGER.info("Provider %s cooldown elapsed", provider)
            return False
        return True

    def trip(self, provider: str, reason: str = "") -> None:
        self._open_until[provider] = self._clock() + self.cooldown
        LOGGER.warning(
            "Provider %s rate limited, resting for %.0fs: %s",
            provider,
            self.cooldown,
            reason,
        )

    def reset(self, provider: Optional[str] = None) -> None:
        if provider is None:
            self._open_until.clear()
        else:
            self._open_until.pop(provider, None)

    def remaining(self, provider: str) -> float:
        until = self._open_until.get(provider)
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def snapshot(self) -> Dict[str, float]:
        return {name: self.remaining(name) for name in list(self._open_until)}
