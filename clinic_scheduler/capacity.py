"""Slot capacity of a schedule occurrence."""
from __future__ import annotations

from collections.abc import Iterable

from .models import ScheduleOccurrence, SlotCapacity


def slot_capacity(schedule: ScheduleOccurrence) -> SlotCapacity:
    """Report capacity from the schedule as given.

    Reserved slot numbers are not clamped against ``max_patients``; callers
    editing the total must trim them first (see :func:`trim_reserved_slots`).
    """
    total = schedule.max_patients
    reserved = len(set(schedule.reserved_slots))
    bookable = total - reserved
    booked = schedule.current_bookings
    return SlotCapacity(
        total=total,
        reserved=reserved,
        bookable=bookable,
        booked=booked,
        available=max(0, bookable - booked),
    )


def trim_reserved_slots(reserved: Iterable[int], total: int) -> list[int]:
    """Drop reserved slot numbers that no longer exist under ``total``."""
    return sorted({n for n in reserved if 1 <= n <= total})
