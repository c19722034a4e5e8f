"""Generic API rate limiter backed by slowapi.

One moving-window limit applies to every route, keyed the same way as the
booking counters. Denials are rendered with the site's JSON envelope plus the
standard rate-limit headers.
"""

from __future__ import annotations

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from booking_guard.admission.keys import client_ip, client_key
from booking_guard.models import AdmissionPolicy, AuditEvent, AuditEventType, RiskLevel

logger = logging.getLogger(__name__)

GENERAL_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def general_limit(policy: AdmissionPolicy) -> str:
    return f"{policy.general_max_requests} per {policy.general_window_minutes} minutes"


def create_limiter(
    policy: AdmissionPolicy,
    trust_proxy: bool = True,
    enabled: bool = True,
) -> Limiter:
    """Build a per-app slowapi Limiter with in-memory moving-window storage."""

    def _key(request: Request) -> str:
        return client_key(request, trust_proxy=trust_proxy, buckets=policy.mobile_buckets)

    return Limiter(
        key_func=_key,
        default_limits=[general_limit(policy)],
        strategy="moving-window",
        storage_uri="memory://",
        headers_enabled=True,
        enabled=enabled,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render a generic-limiter denial.

    Kept synchronous: SlowAPIMiddleware calls the registered handler directly.
    """
    policy: AdmissionPolicy = request.app.state.policy
    trust_proxy: bool = request.app.state.trust_proxy
    key = client_key(request, trust_proxy=trust_proxy, buckets=policy.mobile_buckets)
    logger.warning("Rate limit exceeded for %s on %s %s", key, request.method, request.url.path)

    audit_logger = getattr(request.app.state, "audit_logger", None)
    if audit_logger:
        audit_logger.log(AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            source_ip=client_ip(request, trust_proxy=trust_proxy),
            client_key=key,
            action=f"{request.method} {request.url.path}",
            result="blocked",
            risk_level=RiskLevel.MEDIUM,
            details={"limit": str(exc.detail)},
        ))

    response = JSONResponse(
        {
            "success": False,
            "message": GENERAL_LIMIT_MESSAGE,
            "retryAfter": f"{policy.general_window_minutes} minutes",
        },
        status_code=429,
    )
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
