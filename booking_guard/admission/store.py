"""In-memory fixed-window attempt counters.

One store instance tracks one kind of key (client IP key, phone number) with
a single window duration. Records are advisory and lost on restart.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from booking_guard.models import WindowDecision


@dataclass
class AttemptRecord:
    count: int
    window_start: float


class FixedWindowStore:
    """Fixed-window counter per key with LRU-bounded size.

    A window opens on the first attempt from a key and stays open for
    ``window_seconds``. Inside the window, attempts are allowed until the
    count reaches the cap; denied attempts are not counted. Once the window
    has elapsed the next attempt opens a fresh one, so a client may burst
    again right after a boundary.
    """

    DEFAULT_MAX_ENTRIES = 50_000

    def __init__(
        self,
        window_seconds: float,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._max_entries = max_entries or self.DEFAULT_MAX_ENTRIES
        self._clock = clock
        self._records: OrderedDict[str, AttemptRecord] = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def get(self, key: str) -> AttemptRecord | None:
        return self._records.get(key)

    def record_and_check(self, key: str, cap: int) -> WindowDecision:
        """Count an attempt for ``key`` and decide whether it may proceed."""
        now = self._clock()
        record = self._records.get(key)

        if record is None:
            self._make_room(now)
            record = AttemptRecord(count=1, window_start=now)
            self._records[key] = record
            return self._decision(True, record)

        self._records.move_to_end(key)

        if now - record.window_start >= self.window_seconds:
            record.count = 1
            record.window_start = now
            return self._decision(True, record)

        if record.count >= cap:
            return self._decision(False, record)

        record.count += 1
        return self._decision(True, record)

    def sweep(self, now: float | None = None) -> int:
        """Remove records whose window has fully elapsed.

        Returns:
            Number of records removed.
        """
        if now is None:
            now = self._clock()
        stale = [
            key for key, record in self._records.items()
            if now - record.window_start >= self.window_seconds
        ]
        for key in stale:
            del self._records[key]
        return len(stale)

    def clear(self) -> None:
        self._records.clear()

    def _make_room(self, now: float) -> None:
        if len(self._records) < self._max_entries:
            return
        self.sweep(now)
        while len(self._records) >= self._max_entries:
            self._records.popitem(last=False)

    def _decision(self, allowed: bool, record: AttemptRecord) -> WindowDecision:
        return WindowDecision(
            allowed=allowed,
            count=record.count,
            retry_at=record.window_start + self.window_seconds,
        )
