"""Accept or refuse a booking request against a snapshot of the collections."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime

from . import config
from .booking_window import booking_verdict
from .capacity import slot_capacity
from .errors import BookingClosed, DoctorLimitExceeded, SlotsFull
from .models import Appointment, AppointmentStatus, BlockedDate, ScheduleOccurrence, new_id

logger = logging.getLogger(__name__)


def pending_with_doctor(appointments: Iterable[Appointment], patient_id: str, doctor_id: str) -> int:
    return sum(
        1 for a in appointments
        if a.patient_id == patient_id
        and a.doctor_id == doctor_id
        and a.status == AppointmentStatus.PENDING
    )


def try_book(
    patient_id: str,
    schedule: ScheduleOccurrence,
    candidate: date,
    appointments: Iterable[Appointment],
    now: datetime,
    patient_name: str | None = None,
    blocked_dates: Iterable[BlockedDate] = (),
    max_per_doctor: int = config.MAX_PENDING_PER_DOCTOR,
) -> Appointment:
    """Return a new pending appointment or raise a :class:`BookingError`.

    Checks run in order: booking window, slot capacity, per-doctor limit. On
    success ``schedule.current_bookings`` is incremented; the caller persists
    both. The checks only see the snapshot they are given.
    """
    verdict = booking_verdict(candidate, schedule, now)
    if not verdict.bookable:
        logger.warning(f"Booking refused for {patient_id} on {schedule.id}: {verdict.reason}")
        raise BookingClosed(verdict.reason, verdict.emergency_contact)

    if any(b.doctor_id == schedule.doctor_id and b.blocked_date == candidate for b in blocked_dates):
        logger.warning(f"Booking refused for {patient_id}: doctor {schedule.doctor_id} blocked {candidate}")
        raise BookingClosed("The doctor is not available on this date.", schedule.emergency_contact)

    if slot_capacity(schedule).available <= 0:
        logger.warning(f"Booking refused for {patient_id}: schedule {schedule.id} is full")
        raise SlotsFull("No slots left for this schedule.")

    if pending_with_doctor(appointments, patient_id, schedule.doctor_id) >= max_per_doctor:
        logger.warning(f"Booking refused for {patient_id}: doctor limit reached with {schedule.doctor_id}")
        raise DoctorLimitExceeded(
            f"You already have {max_per_doctor} pending appointments with this doctor. "
            "Please cancel one to book a new slot."
        )

    appointment = Appointment(
        id=new_id("APT"),
        patient_id=patient_id,
        patient_name=patient_name,
        doctor_id=schedule.doctor_id,
        doctor_name=schedule.doctor_name,
        schedule_id=schedule.id,
        hospital_name=schedule.hospital_name,
        appointment_date=candidate,
        appointment_time=schedule.time_start,
        appointment_end_time=schedule.time_end,
        status=AppointmentStatus.PENDING,
        booked_at=now,
    )
    schedule.current_bookings += 1
    logger.info(f"Booked {appointment.id} for {patient_id} on {schedule.id} {candidate.isoformat()}")
    return appointment
