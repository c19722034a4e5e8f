"""Randomized pre-handler delay against response-time probing."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable


class TimingDelay:
    """Waits a uniform random time in [min_ms, max_ms] before the handler runs."""

    def __init__(
        self,
        min_ms: int = 100,
        max_ms: int = 500,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_ms < min_ms:
            raise ValueError(f"max_ms ({max_ms}) must be >= min_ms ({min_ms})")
        self._min_ms = min_ms
        self._max_ms = max_ms
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay(self) -> float:
        """Pick the next delay in seconds."""
        return self._rng.uniform(self._min_ms, self._max_ms) / 1000

    async def wait(self) -> float:
        delay = self.next_delay()
        await self._sleep(delay)
        return delay
