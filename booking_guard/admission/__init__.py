"""Admission control for the public booking endpoint.

This package provides:
- Fixed-window attempt counters and the janitor that evicts them
- Client key derivation (IP plus mobile User-Agent bucket)
- Generic rate limiter and progressive speed limiter
- Honeypot, booking limiter and timing delay stages
"""

from booking_guard.admission.booking import BookingLimiter
from booking_guard.admission.errors import AdmissionDeniedError
from booking_guard.admission.honeypot import HONEYPOT_FIELDS, HoneypotCheck
from booking_guard.admission.janitor import Janitor
from booking_guard.admission.keys import client_ip, client_key, key_for, user_agent_bucket
from booking_guard.admission.limiter import create_limiter, rate_limit_exceeded_handler
from booking_guard.admission.pipeline import BookingAdmission
from booking_guard.admission.speed import SlidingWindowCounter, SpeedLimitMiddleware
from booking_guard.admission.store import FixedWindowStore
from booking_guard.admission.timing import TimingDelay

__all__ = [
    # Exceptions
    "AdmissionDeniedError",
    # Components
    "BookingAdmission",
    "BookingLimiter",
    "FixedWindowStore",
    "HoneypotCheck",
    "Janitor",
    "SlidingWindowCounter",
    "SpeedLimitMiddleware",
    "TimingDelay",
    # Functions
    "client_ip",
    "client_key",
    "create_limiter",
    "key_for",
    "rate_limit_exceeded_handler",
    "user_agent_bucket",
    # Constants
    "HONEYPOT_FIELDS",
]
