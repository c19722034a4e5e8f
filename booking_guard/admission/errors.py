"""Admission denial error and its JSON rendering."""

from __future__ import annotations

from datetime import UTC, datetime

from starlette.responses import JSONResponse

from booking_guard.models import AuditEventType


class AdmissionDeniedError(Exception):
    """Raised by an admission stage to stop a request before the handler."""

    def __init__(
        self,
        status_code: int,
        message: str,
        event_type: AuditEventType,
        retry_after: str | None = None,
        reason: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.event_type = event_type
        self.retry_after = retry_after
        self.reason = reason

    def to_response(self) -> JSONResponse:
        body: dict[str, object] = {"success": False, "message": self.message}
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        return JSONResponse(body, status_code=self.status_code)


def iso_timestamp(epoch_seconds: float) -> str:
    """Render epoch seconds as an ISO-8601 UTC timestamp with millisecond precision."""
    moment = datetime.fromtimestamp(epoch_seconds, UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
