"""Booking-specific attempt limiter: per client key and per phone number."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from booking_guard.admission.errors import AdmissionDeniedError, iso_timestamp
from booking_guard.admission.store import FixedWindowStore
from booking_guard.models import AdmissionPolicy, AuditEventType

logger = logging.getLogger(__name__)

IP_LIMIT_MESSAGE = (
    "Too many booking attempts from your location. "
    "Please wait 1 hour before trying again."
)
PHONE_LIMIT_MESSAGE = (
    "This phone number has already been used for booking recently. "
    "Please wait 24 hours or contact us directly."
)


class BookingLimiter:
    """Applies the IP policy, then the phone policy, to a booking attempt.

    Both stores are injected so the same instances can be swept by the
    janitor and inspected in tests.
    """

    def __init__(
        self,
        ip_store: FixedWindowStore,
        phone_store: FixedWindowStore,
        policy: AdmissionPolicy | None = None,
    ) -> None:
        self.policy = policy or AdmissionPolicy()
        self.ip_store = ip_store
        self.phone_store = phone_store

    @classmethod
    def from_policy(cls, policy: AdmissionPolicy) -> BookingLimiter:
        return cls(
            ip_store=FixedWindowStore(policy.booking_ip_window_seconds),
            phone_store=FixedWindowStore(policy.booking_phone_window_seconds),
            policy=policy,
        )

    def check(self, key: str, form: Mapping[str, Any]) -> None:
        """Record the attempt and raise AdmissionDeniedError (429) when over a cap."""
        decision = self.ip_store.record_and_check(key, self.policy.booking_ip_max_attempts)
        if not decision.allowed:
            logger.warning("Booking IP cap reached for %s (%d attempts)", key, decision.count)
            raise AdmissionDeniedError(
                status_code=429,
                message=IP_LIMIT_MESSAGE,
                event_type=AuditEventType.BOOKING_LIMITED,
                retry_after=iso_timestamp(decision.retry_at),
                reason="ip",
            )

        phone = form.get("phone")
        if isinstance(phone, int) and not isinstance(phone, bool):
            phone = str(phone)
        if not isinstance(phone, str) or not phone.strip():
            return

        decision = self.phone_store.record_and_check(
            phone.strip(), self.policy.booking_phone_max_attempts,
        )
        if not decision.allowed:
            logger.warning("Booking phone cap reached (%d attempts)", decision.count)
            raise AdmissionDeniedError(
                status_code=429,
                message=PHONE_LIMIT_MESSAGE,
                event_type=AuditEventType.BOOKING_LIMITED,
                retry_after=iso_timestamp(decision.retry_at),
                reason="phone",
            )
