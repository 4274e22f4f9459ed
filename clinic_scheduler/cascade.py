"""Schedule edits and deletions, and the cancellations they force.

Moving a schedule to another day or time invalidates every pending booking on
it: those appointments are cancelled and each patient gets one notification.
Capacity-only edits never cascade, they only re-trim the reserved slots.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from .capacity import trim_reserved_slots
from .errors import ValidationError
from .lifecycle import cancel_appointment
from .models import (
    Appointment,
    AppointmentStatus,
    Notification,
    ScheduleOccurrence,
    ScheduleUpdate,
    new_id,
)

logger = logging.getLogger(__name__)

SCHEDULE_CHANGED = "schedule_changed"
DATE_BLOCKED = "date_blocked"


@dataclass
class CascadeResult:
    schedule: ScheduleOccurrence | None
    cancelled: list[Appointment] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)


def display_date(day: date) -> str:
    return f"{day:%b} {day.day}, {day.year}"


def validate_schedule(schedule: ScheduleOccurrence) -> ScheduleOccurrence:
    if schedule.time_end <= schedule.time_start:
        raise ValidationError(
            f"Schedule ends at {schedule.time_end}, which is not after its start {schedule.time_start}"
        )
    stray = [n for n in schedule.reserved_slots if not 1 <= n <= schedule.max_patients]
    if stray:
        raise ValidationError(f"Reserved slots {stray} are outside 1..{schedule.max_patients}")
    return schedule


def affected_appointments(appointments: Iterable[Appointment], schedule_id: str) -> list[Appointment]:
    """Pending appointments a day/time change or deletion of the schedule would cancel."""
    return [
        a for a in appointments
        if a.schedule_id == schedule_id and a.status == AppointmentStatus.PENDING
    ]


def timing_changed(old: ScheduleOccurrence, new: ScheduleOccurrence) -> bool:
    return (
        old.consultation_day != new.consultation_day
        or old.time_start != new.time_start
        or old.time_end != new.time_end
    )


def _cancel_with_notice(
    appointments: Iterable[Appointment],
    reason: str,
    kind: str,
    message_for,
    now: datetime,
) -> CascadeResult:
    result = CascadeResult(schedule=None)
    for appointment in appointments:
        cancel_appointment(appointment, reason)
        result.cancelled.append(appointment)
        result.notifications.append(
            Notification(
                id=new_id("NOTIF"),
                patient_id=appointment.patient_id,
                type=kind,
                title="Appointment Cancelled",
                message=message_for(appointment),
                created_at=now,
            )
        )
    return result


def _schedule_change_message(appointment: Appointment) -> str:
    return (
        f"Due to changes in {appointment.doctor_name or 'your doctor'}'s consultation schedule, "
        f"your appointment on {display_date(appointment.appointment_date)} at {appointment.hospital_name} "
        "has been cancelled. Please visit the application for rescheduling. "
        "Sorry for the inconvenience. Thank you."
    )


def cancel_for_schedule(schedule_id: str, appointments: Iterable[Appointment], now: datetime) -> CascadeResult:
    affected = affected_appointments(appointments, schedule_id)
    result = _cancel_with_notice(affected, SCHEDULE_CHANGED, "schedule_change", _schedule_change_message, now)
    if result.cancelled:
        logger.info(f"Schedule {schedule_id}: cancelled {len(result.cancelled)} pending appointment(s)")
    return result


def merge_update(old: ScheduleOccurrence, changes: ScheduleUpdate) -> ScheduleOccurrence:
    """The schedule as it would look after ``changes``.

    Fields the edit leaves out keep their value; a nullable field sent as null
    is cleared. Reserved slots are trimmed to a new total only when the edit
    changes the total without sending slots of its own. Slots it does send are
    kept as given so :func:`validate_schedule` can reject strays.
    """
    update = {}
    for name in changes.model_fields_set:
        value = getattr(changes, name)
        if value is None and ScheduleOccurrence.model_fields[name].default is not None:
            continue
        update[name] = value
    new = old.model_copy(update=update)
    if "reserved_slots" in update:
        new.reserved_slots = sorted(set(new.reserved_slots))
    elif new.max_patients != old.max_patients:
        new.reserved_slots = trim_reserved_slots(new.reserved_slots, new.max_patients)
    return new


def apply_edit(
    old: ScheduleOccurrence,
    changes: ScheduleUpdate,
    appointments: Iterable[Appointment],
    now: datetime,
) -> CascadeResult:
    """Apply ``changes`` to ``old``; cancel and notify if the day or times moved.

    The cascade runs unconditionally once called. Asking the doctor to confirm
    when :func:`affected_appointments` is non-empty is the caller's job.
    """
    new = merge_update(old, changes)
    new.updated_at = now
    validate_schedule(new)

    if not timing_changed(old, new):
        logger.info(f"Schedule {old.id} updated without timing change")
        return CascadeResult(schedule=new)

    logger.info(
        f"Schedule {old.id} moved: {old.consultation_day.value} {old.time_start}-{old.time_end} → "
        f"{new.consultation_day.value} {new.time_start}-{new.time_end}"
    )
    result = cancel_for_schedule(old.id, appointments, now)
    new.current_bookings = max(0, new.current_bookings - len(result.cancelled))
    result.schedule = new
    return result


def apply_delete(schedule: ScheduleOccurrence, appointments: Iterable[Appointment], now: datetime) -> CascadeResult:
    """Cancel and notify everything pending on ``schedule``; the caller then drops the record."""
    logger.info(f"Deleting schedule {schedule.id}")
    return cancel_for_schedule(schedule.id, appointments, now)


def apply_block_date(
    doctor_id: str,
    blocked: date,
    reason: str,
    appointments: Iterable[Appointment],
    now: datetime,
    doctor_name: str = "",
) -> CascadeResult:
    """Cancel the doctor's pending appointments on a blocked day, one notice per patient."""
    if not reason or not reason.strip():
        raise ValidationError("Please provide a reason for blocking")

    affected = [
        a for a in appointments
        if a.doctor_id == doctor_id
        and a.appointment_date == blocked
        and a.status == AppointmentStatus.PENDING
    ]

    def message(appointment: Appointment) -> str:
        name = doctor_name or appointment.doctor_name or "your doctor"
        return (
            f"Your appointment with {name} on {display_date(blocked)} has been cancelled. "
            f"Reason: {reason.strip()}. Please reschedule."
        )

    result = _cancel_with_notice(affected, DATE_BLOCKED, "date_blocked", message, now)
    logger.info(f"Doctor {doctor_id} blocked {blocked.isoformat()}: {len(result.cancelled)} appointment(s) cancelled")
    return result
