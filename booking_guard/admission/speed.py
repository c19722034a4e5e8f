"""Progressive-delay ("speed limit") middleware.

Clients past a soft threshold inside the window are slowed down, never
rejected: each request over ``delay_after`` waits one more step, up to a cap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from booking_guard.admission.keys import client_ip, client_key
from booking_guard.audit.logger import AuditLogger
from booking_guard.models import AdmissionPolicy, AuditEvent, AuditEventType, RiskLevel

logger = logging.getLogger(__name__)


class SlidingWindowCounter:
    """Sliding window hit counter per key.

    Default: 15 minute window, at most 50 000 tracked keys. When full, stale
    keys are swept first, then the least recently seen keys are evicted.
    """

    DEFAULT_MAX_ENTRIES = 50_000

    def __init__(
        self,
        window_seconds: float = 900,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._max_entries = max_entries or self.DEFAULT_MAX_ENTRIES
        self._clock = clock
        self._hits: OrderedDict[str, list[float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> int:
        """Record a hit and return the number of hits inside the window."""
        now = self._clock()
        cutoff = now - self.window_seconds
        previous = self._hits.get(key)
        if previous is None:
            self._make_room(now)
            previous = []
        else:
            self._hits.move_to_end(key)
        timestamps = [t for t in previous if t > cutoff]
        timestamps.append(now)
        self._hits[key] = timestamps
        return len(timestamps)

    def sweep(self, now: float | None = None) -> int:
        """Drop keys with no hits left inside the window."""
        if now is None:
            now = self._clock()
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        return len(stale)

    def _make_room(self, now: float) -> None:
        if len(self._hits) < self._max_entries:
            return
        self.sweep(now)
        while len(self._hits) >= self._max_entries:
            self._hits.popitem(last=False)


def compute_delay(hits: int, delay_after: int, step_ms: int, max_delay_ms: int) -> float:
    """Delay in seconds for the ``hits``-th request of a window."""
    over = hits - delay_after
    if over <= 0:
        return 0.0
    return min(over * step_ms, max_delay_ms) / 1000


class SpeedLimitMiddleware:
    """ASGI middleware that slows clients exceeding the soft request threshold."""

    def __init__(
        self,
        app: ASGIApp,
        counter: SlidingWindowCounter,
        policy: AdmissionPolicy | None = None,
        path_prefix: str = "/api",
        trust_proxy: bool = True,
        audit_logger: AuditLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.app = app
        self.counter = counter
        self.policy = policy or AdmissionPolicy()
        self._path_prefix = path_prefix
        self._trust_proxy = trust_proxy
        self.audit_logger = audit_logger
        self._sleep = sleep

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(self._path_prefix):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        key = client_key(
            request, trust_proxy=self._trust_proxy, buckets=self.policy.mobile_buckets,
        )
        hits = self.counter.hit(key)
        delay = compute_delay(
            hits,
            self.policy.speed_delay_after,
            self.policy.speed_delay_step_ms,
            self.policy.speed_max_delay_ms,
        )

        if delay > 0:
            if hits == self.policy.speed_delay_after + 1:
                logger.warning("Speed limit reached for %s on %s", key, request.url.path)
                self._log_delay(request, key, hits, delay)
            await self._sleep(delay)

        await self.app(scope, receive, send)

    def _log_delay(self, request: Request, key: str, hits: int, delay: float) -> None:
        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.SPEED_LIMITED,
                source_ip=client_ip(request, trust_proxy=self._trust_proxy),
                client_key=key,
                action=f"{request.method} {request.url.path}",
                result="delayed",
                risk_level=RiskLevel.LOW,
                details={"hits": hits, "delay_ms": int(delay * 1000)},
            ))
