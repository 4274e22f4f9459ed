"""Appointment status lifecycle.

Every appointment starts ``pending``. From there exactly one of four terminal
states is reached::

    pending --consultation_recorded--> completed
    pending --cancel-----------------> cancelled
    pending --missed_window----------> missed
    pending --void_window------------> void

``cancel`` and ``consultation_recorded`` come from explicit actions; the two
window events are produced by :func:`reconcile`, which is run whenever the
appointment set is loaded.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from enum import Enum

from . import config
from .errors import InvalidTransition
from .models import Appointment, AppointmentStatus, Consultation

logger = logging.getLogger(__name__)

ConsultationLookup = Callable[[str, date], bool]


class LifecycleEvent(str, Enum):
    CONSULTATION_RECORDED = "consultation_recorded"
    CANCEL = "cancel"
    MISSED_WINDOW = "missed_window"
    VOID_WINDOW = "void_window"


_TRANSITIONS: dict[tuple[AppointmentStatus, LifecycleEvent], AppointmentStatus] = {
    (AppointmentStatus.PENDING, LifecycleEvent.CONSULTATION_RECORDED): AppointmentStatus.COMPLETED,
    (AppointmentStatus.PENDING, LifecycleEvent.CANCEL): AppointmentStatus.CANCELLED,
    (AppointmentStatus.PENDING, LifecycleEvent.MISSED_WINDOW): AppointmentStatus.MISSED,
    (AppointmentStatus.PENDING, LifecycleEvent.VOID_WINDOW): AppointmentStatus.VOID,
}


def transition(appointment: Appointment, event: LifecycleEvent) -> AppointmentStatus:
    """Apply ``event`` to the appointment in place and return the new status."""
    target = _TRANSITIONS.get((appointment.status, event))
    if target is None:
        raise InvalidTransition(appointment.id, appointment.status.value, event.value)
    logger.info(f"Appointment {appointment.id} transitioned: {appointment.status.value} → {target.value}")
    appointment.status = target
    return target


def due_event(
    appointment: Appointment,
    now: datetime,
    has_consultation: ConsultationLookup,
    missed_grace: timedelta,
    void_after: timedelta,
) -> LifecycleEvent | None:
    """The time-driven event a pending appointment is due for, if any."""
    if appointment.status != AppointmentStatus.PENDING:
        return None

    today = now.date()
    apt_date = appointment.appointment_date
    consulted = has_consultation(appointment.patient_id, apt_date)

    if apt_date < today:
        if consulted:
            return LifecycleEvent.CONSULTATION_RECORDED
        if now > appointment.ends_at + void_after:
            return LifecycleEvent.VOID_WINDOW
        return LifecycleEvent.MISSED_WINDOW

    if apt_date == today and not consulted and now > appointment.ends_at + missed_grace:
        return LifecycleEvent.MISSED_WINDOW
    return None


def reconcile(
    appointments: Iterable[Appointment],
    now: datetime,
    has_consultation: ConsultationLookup,
    missed_grace: timedelta = timedelta(minutes=config.MISSED_GRACE_MINUTES),
    void_after: timedelta = timedelta(minutes=config.VOID_AFTER_MINUTES),
) -> list[Appointment]:
    """Move overdue pending appointments to their terminal status.

    Mutates the appointments in place and returns the ones that changed.
    Running it again on the result changes nothing.
    """
    changed = []
    for appointment in appointments:
        event = due_event(appointment, now, has_consultation, missed_grace, void_after)
        if event is None:
            continue
        transition(appointment, event)
        changed.append(appointment)
    if changed:
        logger.info(f"Reconciliation moved {len(changed)} appointment(s) out of pending")
    return changed


def cancel_appointment(appointment: Appointment, reason: str | None = None) -> Appointment:
    """Explicit cancellation by the patient or the doctor."""
    transition(appointment, LifecycleEvent.CANCEL)
    if reason:
        appointment.cancel_reason = reason
    return appointment


def complete_for_consultation(appointments: Iterable[Appointment], patient_id: str) -> list[Appointment]:
    """Mark the patient's pending appointments complete once a consultation is saved."""
    completed = []
    for appointment in appointments:
        if appointment.patient_id == patient_id and appointment.status == AppointmentStatus.PENDING:
            transition(appointment, LifecycleEvent.CONSULTATION_RECORDED)
            completed.append(appointment)
    return completed


def consultation_lookup(consultations: Iterable[Consultation]) -> ConsultationLookup:
    """Build ``has_consultation(patient_id, date)`` over a snapshot of consultation records."""
    seen = {(c.patient_id, c.consultation_date) for c in consultations if c.is_completed}

    def has_consultation(patient_id: str, on: date) -> bool:
        return (patient_id, on) in seen

    return has_consultation
