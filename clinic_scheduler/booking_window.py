"""Whether a schedule occurrence can still be booked for a given date."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime

from . import config
from .capacity import slot_capacity
from .models import BookingVerdict, ScheduleAvailability, ScheduleOccurrence, Weekday
from .timeutil import minutes_now

logger = logging.getLogger(__name__)

PAST_DATE_REASON = "Cannot book appointments for past dates."


def booking_verdict(
    candidate: date,
    schedule: ScheduleOccurrence,
    now: datetime,
    cutoff_minutes: int = config.BOOKING_CUTOFF_MINUTES,
) -> BookingVerdict:
    """Bookable, or closed with a reason.

    Dates are compared as calendar dates; only same-day bookings look at the
    clock, and close ``cutoff_minutes`` before the slot starts.
    """
    today = now.date()
    if candidate < today:
        return BookingVerdict.closed(PAST_DATE_REASON)
    if candidate > today:
        return BookingVerdict.open()

    if minutes_now(now) >= schedule.time_start.minutes - cutoff_minutes:
        return BookingVerdict.closed(
            f"Booking closed for today. Schedule starts at {schedule.time_start} "
            f"and booking closes {cutoff_minutes} minutes before.",
            schedule.emergency_contact,
        )
    return BookingVerdict.open()


def within_advance_horizon(candidate: date, today: date, days: int = config.ADVANCE_BOOKING_DAYS) -> bool:
    """True while ``candidate`` is at most ``days`` ahead of ``today``."""
    return (candidate - today).days <= days


def schedules_for_date(
    schedules: Iterable[ScheduleOccurrence],
    candidate: date,
    now: datetime,
    doctor_id: str | None = None,
) -> list[ScheduleAvailability]:
    """Schedules running on the candidate's weekday, each with its verdict and capacity."""
    day = Weekday.of(candidate)
    offered = []
    for schedule in schedules:
        if schedule.consultation_day != day:
            continue
        if doctor_id and schedule.doctor_id != doctor_id:
            continue
        offered.append(
            ScheduleAvailability(
                schedule=schedule,
                verdict=booking_verdict(candidate, schedule, now),
                capacity=slot_capacity(schedule),
            )
        )
    logger.debug(f"{len(offered)} schedule(s) on {day.value} {candidate.isoformat()}")
    return offered
