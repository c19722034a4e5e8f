"""Booking admission pipeline.

Runs the route-level admission stages for POST /api/booking using direct
calls, in order:
1. Honeypot check (400)
2. Booking limiter: client key, then phone (429)
3. Timing delay

The generic limiter and the speed limiter run earlier, as app middleware.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse

from booking_guard.admission.errors import AdmissionDeniedError
from booking_guard.admission.keys import client_ip, client_key
from booking_guard.models import AdmissionPolicy, AuditEvent, RiskLevel

if TYPE_CHECKING:
    from booking_guard.admission.booking import BookingLimiter
    from booking_guard.admission.honeypot import HoneypotCheck
    from booking_guard.admission.timing import TimingDelay
    from booking_guard.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


class BookingAdmission:
    """Decides whether a booking submission may reach the booking handler."""

    def __init__(
        self,
        honeypot: HoneypotCheck,
        limiter: BookingLimiter,
        timing: TimingDelay,
        policy: AdmissionPolicy | None = None,
        trust_proxy: bool = True,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.honeypot = honeypot
        self.limiter = limiter
        self.timing = timing
        self.policy = policy or AdmissionPolicy()
        self._trust_proxy = trust_proxy
        self._audit = audit_logger

    def client_ip(self, request: Request) -> str:
        return client_ip(request, trust_proxy=self._trust_proxy)

    def client_key(self, request: Request) -> str:
        return client_key(
            request, trust_proxy=self._trust_proxy, buckets=self.policy.mobile_buckets,
        )

    async def admit(self, request: Request, form: Mapping[str, Any]) -> JSONResponse | None:
        """Run all stages.

        Returns:
            None when the request may proceed, otherwise the denial response.
        """
        key = self.client_key(request)
        try:
            self.honeypot.check(form)
            self.limiter.check(key, form)
        except AdmissionDeniedError as e:
            logger.warning(
                "Booking denied for %s: %s (%s)", key, e.event_type.value, e.reason,
            )
            self._log_denial(request, key, e)
            return e.to_response()

        await self.timing.wait()
        return None

    def _log_denial(self, request: Request, key: str, error: AdmissionDeniedError) -> None:
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=error.event_type,
                source_ip=self.client_ip(request),
                client_key=key,
                action=f"{request.method} {request.url.path}",
                result="blocked",
                risk_level=RiskLevel.HIGH if error.status_code == 400 else RiskLevel.MEDIUM,
                details={"reason": error.reason, "status_code": error.status_code},
            ))
