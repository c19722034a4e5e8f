"""Honeypot field check for automated form submissions."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from starlette.datastructures import ImmutableMultiDict, UploadFile

from booking_guard.admission.errors import AdmissionDeniedError
from booking_guard.models import AuditEventType

# Rendered hidden on the booking form; people never fill them in
HONEYPOT_FIELDS = ("website", "url", "homepage", "bot_field", "spam_check")

INVALID_REQUEST_MESSAGE = "Invalid request detected."


def _values(form: Mapping[str, Any], name: str) -> list[Any]:
    if isinstance(form, ImmutableMultiDict):
        return form.getlist(name)
    value = form.get(name)
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _filled(value: Any) -> bool:
    if value is None:
        return False
    # Any file sent under a decoy name is a bot
    if isinstance(value, UploadFile):
        return True
    return bool(str(value).strip())


class HoneypotCheck:
    """Rejects submissions where any decoy field carries a value."""

    def __init__(self, fields: Iterable[str] = HONEYPOT_FIELDS) -> None:
        self._fields = tuple(fields)

    def tripped_field(self, form: Mapping[str, Any]) -> str | None:
        """First decoy name with any non-blank value, repeated parts included."""
        for name in self._fields:
            if any(_filled(value) for value in _values(form, name)):
                return name
        return None

    def check(self, form: Mapping[str, Any]) -> None:
        """Raise AdmissionDeniedError (400) if a decoy field is filled.

        The response never names the field.
        """
        field = self.tripped_field(form)
        if field is not None:
            raise AdmissionDeniedError(
                status_code=400,
                message=INVALID_REQUEST_MESSAGE,
                event_type=AuditEventType.HONEYPOT_TRIGGERED,
                reason=f"field:{field}",
            )
