"""Error taxonomy for scheduling writes.

Every error is a local validation failure raised synchronously. Callers (the
Flask API layer) translate ``status_code`` and ``code`` into a response; the
engine never retries.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for every rejected scheduling operation."""

    code = "SCHEDULING_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code}
        payload.update(self.details)
        return payload


class ValidationFailed(SchedulingError):
    code = "VALIDATION_FAILED"
    status_code = 400


class Unqualified(SchedulingError):
    code = "UNQUALIFIED"
    status_code = 403


class PermissionDenied(SchedulingError):
    code = "PERMISSION_DENIED"
    status_code = 403


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    status_code = 404


class CapacityExceeded(SchedulingError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409


class SlotOccupied(CapacityExceeded):
    """A role-exclusive slot (primary assignment, dispatcher or zone lead) is taken."""

    code = "SLOT_OCCUPIED"


class TimeConflict(SchedulingError):
    code = "TIME_CONFLICT"
    status_code = 409

    def __init__(self, message: str, conflicts: Optional[list] = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.conflicts = list(conflicts or [])

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["conflicts"] = [conflict.describe() for conflict in self.conflicts]
        return payload


class DuplicateSignup(SchedulingError):
    code = "DUPLICATE_SIGNUP"
    status_code = 409


class InvalidTransition(SchedulingError):
    code = "INVALID_TRANSITION"
    status_code = 400


class DateClosed(SchedulingError):
    code = "DATE_CLOSED"
    status_code = 409


class ShiftNotOpen(SchedulingError):
    code = "SHIFT_NOT_OPEN"
    status_code = 400
