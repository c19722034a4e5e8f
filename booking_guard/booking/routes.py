"""Booking API endpoints.

Provides endpoints for:
- Creating an appointment behind the admission pipeline
- Looking up an appointment by id
- Checking daily availability
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from booking_guard.booking.uploads import StoredImage, UploadRejectedError
from booking_guard.models import AuditEvent, AuditEventType, BookingRequest, RiskLevel

if TYPE_CHECKING:
    from booking_guard.admission.pipeline import BookingAdmission
    from booking_guard.audit.logger import AuditLogger
    from booking_guard.booking.db import AppointmentDB
    from booking_guard.booking.uploads import ImageStorage

logger = logging.getLogger(__name__)

MAX_APPOINTMENTS_PER_DAY = 10


@dataclass
class Submission:
    """A booking body as received.

    ``raw`` keeps every part, repeated names and file parts included, for
    admission checks. ``fields`` holds the plain values used for validation.
    """

    raw: Mapping[str, Any]
    fields: dict[str, Any] = field(default_factory=dict)
    images: list[UploadFile] = field(default_factory=list)


async def read_submission(request: Request) -> Submission:
    """Read a JSON or form booking body.

    A malformed JSON body yields no fields, so it still passes through
    admission and then fails validation.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = {}
        data = data if isinstance(data, dict) else {}
        return Submission(raw=data, fields=data)

    form = await request.form()
    submission = Submission(raw=form)
    for name, value in form.multi_items():
        if isinstance(value, UploadFile):
            if name == "images":
                submission.images.append(value)
        else:
            submission.fields[name] = value
    return submission


def _validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"].removeprefix("Value error, "),
        }
        for err in exc.errors()
    ]


def create_booking_router(
    admission: BookingAdmission,
    db: AppointmentDB,
    storage: ImageStorage,
    audit_logger: AuditLogger | None = None,
) -> APIRouter:
    """Create the /api/booking router."""
    router = APIRouter(prefix="/api/booking")

    def _audit(
        request: Request,
        event_type: AuditEventType,
        result: str,
        details: dict[str, object],
    ) -> None:
        if audit_logger:
            audit_logger.log(AuditEvent(
                event_type=event_type,
                source_ip=admission.client_ip(request),
                client_key=admission.client_key(request),
                action=f"{request.method} {request.url.path}",
                result=result,
                risk_level=RiskLevel.INFO if result == "success" else RiskLevel.MEDIUM,
                details=details,
            ))

    @router.post("")
    async def create_booking(request: Request) -> JSONResponse:
        """Create a new appointment booking."""
        submission = await read_submission(request)

        denied = await admission.admit(request, submission.raw)
        if denied is not None:
            return denied

        stored: list[StoredImage] = []
        try:
            stored = await storage.save_all(submission.images)
            booking = BookingRequest.model_validate(submission.fields)
        except UploadRejectedError as e:
            return JSONResponse({"success": False, "message": str(e)}, status_code=400)
        except ValidationError as e:
            storage.discard(stored)
            return JSONResponse(
                {
                    "success": False,
                    "message": "Validation failed",
                    "errors": _validation_errors(e),
                },
                status_code=400,
            )

        try:
            appointment = db.create(booking, [image.url for image in stored])
        except Exception:
            logger.exception("Booking error")
            storage.discard(stored)
            _audit(request, AuditEventType.BOOKING_FAILED, "failure", {})
            return JSONResponse(
                {"success": False, "message": "Failed to create appointment. Please try again."},
                status_code=500,
            )

        logger.info("Appointment %d booked for %s", appointment.id, appointment.service_type.value)
        _audit(
            request, AuditEventType.BOOKING_CREATED, "success",
            {"appointment_id": appointment.id, "images": len(stored)},
        )
        return JSONResponse(
            {
                "success": True,
                "message": "Appointment booked successfully! We will contact you soon.",
                "data": {
                    "appointmentId": appointment.id,
                    "appointmentDate": appointment.appointment_date,
                    "serviceType": appointment.service_type.value,
                    "status": appointment.status.value,
                },
            },
            status_code=201,
        )

    @router.get("/check-availability/{day}")
    async def check_availability(day: str) -> JSONResponse:
        """Report how many slots remain on a given day."""
        try:
            check_date = date.fromisoformat(day[:10])
        except ValueError:
            return JSONResponse(
                {"success": False, "message": "Invalid date format"},
                status_code=400,
            )

        if check_date <= datetime.now(UTC).date():
            return JSONResponse(
                {"success": False, "message": "Cannot book appointments for past dates"},
                status_code=400,
            )

        booked = db.count_on_date(check_date)
        return JSONResponse({
            "success": True,
            "data": {
                "date": check_date.isoformat(),
                "isAvailable": booked < MAX_APPOINTMENTS_PER_DAY,
                "bookedSlots": booked,
                "availableSlots": max(MAX_APPOINTMENTS_PER_DAY - booked, 0),
                "maxSlots": MAX_APPOINTMENTS_PER_DAY,
            },
        })

    @router.get("/{appointment_id}")
    async def get_appointment(appointment_id: int) -> JSONResponse:
        """Get appointment details by id."""
        appointment = db.get(appointment_id)
        if appointment is None:
            return JSONResponse(
                {"success": False, "message": "Appointment not found"},
                status_code=404,
            )
        return JSONResponse({"success": True, "data": appointment.model_dump(mode="json")})

    return router
