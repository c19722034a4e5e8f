"""Shared Pydantic data models for booking-guard."""

from __future__ import annotations

import os
import re
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums ---


class AuditEventType(str, Enum):
    RATE_LIMITED = "rate_limited"
    SPEED_LIMITED = "speed_limited"
    BOOKING_LIMITED = "booking_limited"
    HONEYPOT_TRIGGERED = "honeypot_triggered"
    BOOKING_CREATED = "booking_created"
    BOOKING_FAILED = "booking_failed"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ServiceType(str, Enum):
    DESIGN_3D = "3d_design"
    FULL_PACKAGE = "full_package"
    CONSULTATION = "consultation"
    REPAIR_MAINTENANCE = "repair_maintenance"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# --- Admission Models ---


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class AdmissionPolicy(BaseModel):
    """Thresholds for every admission stage guarding the booking endpoint."""

    model_config = ConfigDict(frozen=True)

    # Generic limiter (all traffic, moving window)
    general_max_requests: int = Field(default=1000, ge=1)
    general_window_minutes: int = Field(default=15, ge=1)

    # Speed limiter (slows, never rejects)
    speed_delay_after: int = Field(default=10, ge=0)
    speed_delay_step_ms: int = Field(default=500, ge=0)
    speed_max_delay_ms: int = Field(default=5000, ge=0)
    speed_window_minutes: int = Field(default=15, ge=1)

    # Booking limiter (fixed windows)
    booking_ip_max_attempts: int = Field(default=100, ge=1)
    booking_ip_window_seconds: int = Field(default=3600, ge=1)
    booking_phone_max_attempts: int = Field(default=50, ge=1)
    booking_phone_window_seconds: int = Field(default=86400, ge=1)

    # Timing delay
    timing_min_ms: int = Field(default=100, ge=0)
    timing_max_ms: int = Field(default=500, ge=0)

    # Mobile user-agent bucketing
    mobile_buckets: int = Field(default=10_000, ge=1)

    @classmethod
    def from_env(cls) -> AdmissionPolicy:
        """Create a policy, letting environment variables override defaults."""
        defaults = cls()
        return cls(
            general_max_requests=_env_int("GENERAL_MAX_REQUESTS", defaults.general_max_requests),
            general_window_minutes=_env_int(
                "GENERAL_WINDOW_MINUTES", defaults.general_window_minutes,
            ),
            speed_delay_after=_env_int("SPEED_DELAY_AFTER", defaults.speed_delay_after),
            speed_delay_step_ms=_env_int("SPEED_DELAY_STEP_MS", defaults.speed_delay_step_ms),
            speed_max_delay_ms=_env_int("SPEED_MAX_DELAY_MS", defaults.speed_max_delay_ms),
            speed_window_minutes=_env_int("SPEED_WINDOW_MINUTES", defaults.speed_window_minutes),
            booking_ip_max_attempts=_env_int(
                "BOOKING_IP_MAX_ATTEMPTS", defaults.booking_ip_max_attempts,
            ),
            booking_ip_window_seconds=_env_int(
                "BOOKING_IP_WINDOW_SECONDS", defaults.booking_ip_window_seconds,
            ),
            booking_phone_max_attempts=_env_int(
                "BOOKING_PHONE_MAX_ATTEMPTS", defaults.booking_phone_max_attempts,
            ),
            booking_phone_window_seconds=_env_int(
                "BOOKING_PHONE_WINDOW_SECONDS", defaults.booking_phone_window_seconds,
            ),
            timing_min_ms=_env_int("TIMING_MIN_MS", defaults.timing_min_ms),
            timing_max_ms=_env_int("TIMING_MAX_MS", defaults.timing_max_ms),
            mobile_buckets=_env_int("MOBILE_BUCKETS", defaults.mobile_buckets),
        )


class WindowDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    count: int = Field(ge=0)
    retry_at: float  # epoch seconds at which the current window closes


# --- Booking Models ---

_PHONE_RE = re.compile(r"^[0-9]{10}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BookingRequest(BaseModel):
    """Validated booking form submitted to POST /api/booking."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    phone: str
    email: str | None = None
    address: str = Field(min_length=5, max_length=500)
    ward: str | None = None
    municipality: str | None = None
    service_type: ServiceType = Field(alias="serviceType")
    appointment_date: datetime = Field(alias="appointmentDate")
    message: str | None = Field(default=None, max_length=1000)

    @field_validator("phone")
    @classmethod
    def _phone_digits(cls, value: str) -> str:
        if not _PHONE_RE.match(value):
            raise ValueError("Phone number must be exactly 10 digits")
        return value

    @field_validator("email", "ward", "municipality", "message", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str | None) -> str | None:
        if value is not None and not _EMAIL_RE.match(value):
            raise ValueError("Please provide a valid email address")
        return value.lower() if value else value

    @field_validator("appointment_date")
    @classmethod
    def _in_future(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        if value <= datetime.now(UTC):
            raise ValueError("Appointment date must be in the future")
        return value


class Appointment(BaseModel):
    id: int
    name: str
    phone: str
    email: str | None = None
    address: str
    ward: str | None = None
    municipality: str | None = None
    service_type: ServiceType
    appointment_date: str  # ISO8601
    message: str | None = None
    images: list[str] = Field(default_factory=list)
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: str  # ISO8601


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    client_key: str | None = None
    action: str
    result: str  # "success" | "failure" | "blocked" | "delayed"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
