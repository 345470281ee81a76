"""
errors.py
Validation errors raised by the billing engine and the repository.
"""

from __future__ import annotations


class GymError(Exception):
    """Base class for all gym-manager errors."""


class InvalidScheduleInput(GymError, ValueError):
    """
    Enrollment parameters cannot produce a payment schedule
    (non-positive duration, negative fee, unknown recurrence).
    """

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"{field}={value!r}: {reason}")


class InvalidDateInput(GymError, ValueError):
    """A date value could not be parsed as a calendar date."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r} is not a valid ISO date (YYYY-MM-DD)")


class InvalidTransition(GymError, ValueError):
    """An enrollment status change that its current status does not allow."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"cannot move enrollment from {current!r} to {requested!r}")


class NotFound(GymError, LookupError):
    """No record with the given id."""

    def __init__(self, kind: str, record_id):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id!r} not found")


class InvalidAttendanceInput(GymError, ValueError):
    """An attendance record with a status other than present/absent."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r} is not a valid attendance value")
