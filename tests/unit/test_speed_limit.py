"""Tests for the progressive-delay middleware."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from booking_guard.admission.speed import (
    SlidingWindowCounter,
    SpeedLimitMiddleware,
    compute_delay,
)
from booking_guard.models import AdmissionPolicy, AuditEventType
from tests.conftest import FakeClock


def _create_app(
    sleep: AsyncMock,
    counter: SlidingWindowCounter | None = None,
    audit_logger: MagicMock | None = None,
) -> SpeedLimitMiddleware:
    async def booking(request):  # noqa: ANN001
        return PlainTextResponse("OK")

    async def health(request):  # noqa: ANN001
        return PlainTextResponse("healthy")

    app = Starlette(routes=[
        Route("/api/booking", booking, methods=["GET", "POST"]),
        Route("/health", health),
    ])
    return SpeedLimitMiddleware(
        app,
        counter=counter or SlidingWindowCounter(),
        policy=AdmissionPolicy(),
        audit_logger=audit_logger,
        sleep=sleep,
    )


class TestComputeDelay:
    def test_no_delay_up_to_threshold(self) -> None:
        assert [compute_delay(n, 10, 500, 5000) for n in range(1, 11)] == [0.0] * 10

    def test_step_per_request_over_threshold(self) -> None:
        assert compute_delay(11, 10, 500, 5000) == 0.5
        assert compute_delay(12, 10, 500, 5000) == 1.0
        assert compute_delay(20, 10, 500, 5000) == 5.0

    def test_capped(self) -> None:
        assert compute_delay(25, 10, 500, 5000) == 5.0
        assert compute_delay(10_000, 10, 500, 5000) == 5.0


class TestSlidingWindowCounter:
    def test_counts_hits_per_key(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, clock=clock)
        assert [counter.hit("a") for _ in range(3)] == [1, 2, 3]
        assert counter.hit("b") == 1

    def test_old_hits_slide_out(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, clock=clock)
        counter.hit("a")
        clock.advance(600)
        counter.hit("a")
        clock.advance(301)
        assert counter.hit("a") == 2

    def test_sweep_drops_idle_keys(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, clock=clock)
        counter.hit("idle")
        clock.advance(600)
        counter.hit("active")
        clock.advance(300)
        assert counter.sweep() == 1
        assert len(counter) == 1

    def test_size_bounded_by_max_entries(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, max_entries=100, clock=clock)
        for i in range(6000):
            counter.hit(f"10.0.{i // 256}.{i % 256}")
        assert len(counter) == 100

    def test_full_counter_evicts_least_recent_key(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, max_entries=2, clock=clock)
        counter.hit("a")
        counter.hit("b")
        counter.hit("a")
        counter.hit("c")
        assert len(counter) == 2
        assert counter.hit("a") == 3
        assert counter.hit("b") == 1

    def test_full_counter_sweeps_stale_keys_first(self, clock: FakeClock) -> None:
        counter = SlidingWindowCounter(window_seconds=900, max_entries=2, clock=clock)
        counter.hit("stale")
        clock.advance(600)
        counter.hit("recent")
        clock.advance(301)
        counter.hit("new")
        assert counter.hit("recent") == 2

    def test_default_bound(self) -> None:
        assert SlidingWindowCounter()._max_entries == SlidingWindowCounter.DEFAULT_MAX_ENTRIES


class TestSpeedLimitMiddleware:
    @pytest.mark.asyncio
    async def test_first_ten_requests_not_delayed(self) -> None:
        sleep = AsyncMock()
        app = _create_app(sleep)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(10):
                resp = await client.post("/api/booking")
                assert resp.status_code == 200
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delays_grow_and_cap_without_rejecting(self) -> None:
        sleep = AsyncMock()
        app = _create_app(sleep)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(25):
                resp = await client.post("/api/booking")
                assert resp.status_code == 200

        delays = [c.args[0] for c in sleep.await_args_list]
        assert len(delays) == 15
        assert delays[:3] == [0.5, 1.0, 1.5]
        assert max(delays) == 5.0
        assert delays[-1] == 5.0

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self) -> None:
        sleep = AsyncMock()
        app = _create_app(sleep)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(10):
                await client.post("/api/booking", headers={"X-Forwarded-For": "1.1.1.1"})
            await client.post("/api/booking", headers={"X-Forwarded-For": "2.2.2.2"})
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_paths_outside_api_ignored(self) -> None:
        sleep = AsyncMock()
        counter = SlidingWindowCounter()
        app = _create_app(sleep, counter=counter)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(20):
                await client.get("/health")
        sleep.assert_not_awaited()
        assert len(counter) == 0

    @pytest.mark.asyncio
    async def test_first_delay_audited_once(self) -> None:
        sleep = AsyncMock()
        mock_logger = MagicMock()
        app = _create_app(sleep, audit_logger=mock_logger)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(14):
                await client.post("/api/booking", headers={"X-Forwarded-For": "9.9.9.9"})

        events = [c[0][0] for c in mock_logger.log.call_args_list]
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.SPEED_LIMITED
        assert events[0].client_key == "9.9.9.9"
        assert events[0].details == {"hits": 11, "delay_ms": 500}
