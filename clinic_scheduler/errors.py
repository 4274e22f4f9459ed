"""Typed failures raised by the scheduling core."""
from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every refusal the core produces."""


class ValidationError(SchedulingError, ValueError):
    """Malformed input, rejected before any state is touched."""


class NotFound(SchedulingError):
    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class InvalidTransition(SchedulingError):
    def __init__(self, appointment_id: str, status: str, event: str):
        super().__init__(f"Appointment {appointment_id} is {status}; cannot apply {event}")
        self.appointment_id = appointment_id
        self.status = status
        self.event = event


class BookingError(SchedulingError):
    """User-facing booking refusal. Never retried."""

    code = "booking_refused"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class BookingClosed(BookingError):
    code = "closed"

    def __init__(self, reason: str, emergency_contact: str | None = None):
        super().__init__(reason)
        self.emergency_contact = emergency_contact or None

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.emergency_contact:
            data["emergency_contact"] = self.emergency_contact
        return data


class SlotsFull(BookingError):
    code = "full"


class DoctorLimitExceeded(BookingError):
    code = "doctor_limit_exceeded"


class StorageConflict(SchedulingError):
    """The stored collection changed between our read and our write."""

    def __init__(self, collection: str):
        super().__init__(f"collection {collection} was modified concurrently")
        self.collection = collection
