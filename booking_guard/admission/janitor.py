"""Periodic eviction of stale admission counters."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Sweepable(Protocol):
    def sweep(self, now: float | None = None) -> int: ...


class Janitor:
    """Sweeps every registered store on a fixed interval.

    Each store evicts by its own window, so a 24 hour phone record is kept for
    its full window even though the sweep runs hourly.
    """

    DEFAULT_INTERVAL_SECONDS = 3600

    def __init__(
        self,
        stores: dict[str, Sweepable],
        interval_seconds: float | None = None,
    ) -> None:
        self._stores = stores
        self.interval_seconds = interval_seconds or self.DEFAULT_INTERVAL_SECONDS
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: float | None = None) -> dict[str, int]:
        """Run one pass over all stores.

        Returns:
            Mapping of store name to number of records removed.
        """
        removed = {name: store.sweep(now) for name, store in self._stores.items()}
        if any(removed.values()):
            logger.info("Janitor evicted stale counters: %s", removed)
        return removed

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Janitor sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
