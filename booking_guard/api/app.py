"""FastAPI application for the booking site backend."""

from __future__ import annotations

import asyncio
import logging
import os
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from booking_guard.admission.booking import BookingLimiter
from booking_guard.admission.honeypot import HoneypotCheck
from booking_guard.admission.janitor import Janitor
from booking_guard.admission.limiter import create_limiter, rate_limit_exceeded_handler
from booking_guard.admission.pipeline import BookingAdmission
from booking_guard.admission.speed import SlidingWindowCounter, SpeedLimitMiddleware
from booking_guard.admission.timing import TimingDelay
from booking_guard.audit.logger import AuditLogger
from booking_guard.booking.db import AppointmentDB
from booking_guard.booking.routes import create_booking_router
from booking_guard.booking.uploads import ImageStorage
from booking_guard.models import AdmissionPolicy

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
    db_path = os.environ.get("BOOKING_DB_PATH", "data/bookings.db")
    upload_dir = os.environ.get("UPLOAD_DIR", "data/uploads")
    janitor_interval = os.environ.get("JANITOR_INTERVAL_SECONDS")

    return create_app(
        db=AppointmentDB(db_path),
        storage=ImageStorage(upload_dir),
        policy=AdmissionPolicy.from_env(),
        audit_logger=AuditLogger.from_env(),
        trust_proxy=os.environ.get("TRUST_PROXY", "true").lower() == "true",
        rate_limit_enabled=os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true",
        janitor_interval_seconds=float(janitor_interval) if janitor_interval else None,
    )


def create_app(
    db: AppointmentDB,
    storage: ImageStorage,
    policy: AdmissionPolicy | None = None,
    audit_logger: AuditLogger | None = None,
    trust_proxy: bool = True,
    rate_limit_enabled: bool = True,
    janitor_interval_seconds: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> FastAPI:
    """Create the app with every admission stage wired in front of the booking route.

    Counter stores are created here, once per app, and shared between the
    stages that write them and the janitor that sweeps them.
    """
    policy = policy or AdmissionPolicy()

    booking_limiter = BookingLimiter.from_policy(policy)
    speed_counter = SlidingWindowCounter(window_seconds=policy.speed_window_minutes * 60)
    janitor = Janitor(
        {
            "booking_ip": booking_limiter.ip_store,
            "booking_phone": booking_limiter.phone_store,
            "speed": speed_counter,
        },
        interval_seconds=janitor_interval_seconds,
    )
    admission = BookingAdmission(
        honeypot=HoneypotCheck(),
        limiter=booking_limiter,
        timing=TimingDelay(policy.timing_min_ms, policy.timing_max_ms, rng=rng, sleep=sleep),
        policy=policy,
        trust_proxy=trust_proxy,
        audit_logger=audit_logger,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        janitor.start()
        try:
            yield
        finally:
            await janitor.stop()
            db.close()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.policy = policy
    app.state.trust_proxy = trust_proxy
    app.state.audit_logger = audit_logger
    app.state.limiter = create_limiter(policy, trust_proxy=trust_proxy, enabled=rate_limit_enabled)
    app.state.booking_limiter = booking_limiter
    app.state.speed_counter = speed_counter
    app.state.janitor = janitor

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(create_booking_router(admission, db, storage, audit_logger))

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        # Raised errors leave through ServerErrorMiddleware, outside the header middleware
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"success": False, "message": "An internal error occurred"},
            status_code=500,
            headers=SECURITY_HEADERS,
        )

    # Innermost first: speed limiter runs after the generic limiter admits
    app.add_middleware(
        SpeedLimitMiddleware,
        counter=speed_counter,
        policy=policy,
        trust_proxy=trust_proxy,
        audit_logger=audit_logger,
        sleep=sleep,
    )
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def security_headers(request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    return app
