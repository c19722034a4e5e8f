"""Shared test fixtures for booking-guard."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI

from booking_guard.api.app import create_app
from booking_guard.audit.logger import AuditLogger
from booking_guard.booking.db import AppointmentDB
from booking_guard.booking.uploads import ImageStorage
from booking_guard.models import AdmissionPolicy, AuditEvent, AuditEventType, RiskLevel

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)


class FakeClock:
    """Manually advanced clock for window arithmetic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def appointment_db() -> Iterator[AppointmentDB]:
    db = AppointmentDB(":memory:")
    yield db
    db.close()


@pytest.fixture
def make_app(tmp_path: Path, upload_dir: Path, no_sleep: AsyncMock):
    """Build a fully wired app with sleeps mocked out."""

    def _create(**kwargs: Any) -> FastAPI:
        defaults: dict[str, Any] = {
            "db": AppointmentDB(str(tmp_path / "bookings.db")),
            "storage": ImageStorage(str(upload_dir)),
            "policy": AdmissionPolicy(),
            "sleep": no_sleep,
        }
        defaults.update(kwargs)
        return create_app(**defaults)

    return _create


# --- Factory functions for test data ---


def future_iso(days: int = 7) -> str:
    return (datetime.now(UTC) + timedelta(days=days)).isoformat()


def make_booking_form(**kwargs: Any) -> dict[str, Any]:
    """Factory for a valid booking submission."""
    defaults: dict[str, Any] = {
        "name": "Test User",
        "phone": "9876543210",
        "email": "test@example.com",
        "address": "123 Test Street, Test City",
        "serviceType": "consultation",
        "appointmentDate": future_iso(),
        "message": "Roof leak in the kitchen",
    }
    defaults.update(kwargs)
    return defaults


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.BOOKING_LIMITED,
        "action": "POST /api/booking",
        "result": "blocked",
        "risk_level": RiskLevel.MEDIUM,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)
