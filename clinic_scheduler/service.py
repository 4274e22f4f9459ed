"""Read-modify-write orchestration over the storage collections.

Every mutating operation reads the full collections it touches, changes them in
memory and writes each one back whole, all under a single lock, so sibling
records are never lost to a partial write from this process. Read-only queries
take the same lock: a versioned backend remembers the version of the last read,
so a query slipping between another operation's read and write would hand that
write a newer version than the snapshot it is writing. Writers in other
processes are caught by the storage backend's own versioning, if it has any.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime

from . import config, lifecycle
from .booking_window import schedules_for_date, within_advance_horizon
from .capacity import slot_capacity
from .cascade import (
    CascadeResult,
    affected_appointments,
    apply_block_date,
    apply_delete,
    apply_edit,
    merge_update,
    timing_changed,
    validate_schedule,
)
from .errors import BookingClosed, NotFound, ValidationError
from .guard import try_book
from .models import (
    Appointment,
    BlockedDate,
    Consultation,
    Notification,
    ScheduleAvailability,
    ScheduleCreate,
    ScheduleOccurrence,
    ScheduleUpdate,
    SlotCapacity,
    Weekday,
    new_id,
)
from .storage import Collection, Storage

logger = logging.getLogger(__name__)


class SchedulingService:
    def __init__(self, storage: Storage, clock: Callable[[], datetime] = datetime.now):
        self.storage = storage
        self.clock = clock
        self._lock = asyncio.Lock()

    # snapshot helpers

    async def _schedules(self) -> list[ScheduleOccurrence]:
        return [ScheduleOccurrence.model_validate(r) for r in await self.storage.read(Collection.SCHEDULES)]

    async def _appointments(self) -> list[Appointment]:
        return [Appointment.model_validate(r) for r in await self.storage.read(Collection.APPOINTMENTS)]

    async def _blocked_dates(self) -> list[BlockedDate]:
        return [BlockedDate.model_validate(r) for r in await self.storage.read(Collection.BLOCKED_DATES)]

    async def _consultation_lookup(self) -> lifecycle.ConsultationLookup:
        records = await self.storage.read(Collection.CONSULTATIONS)
        return lifecycle.consultation_lookup(Consultation.model_validate(r) for r in records)

    async def _save(self, collection: str, rows) -> None:
        await self.storage.write(collection, [row.to_record() for row in rows])

    async def _append(self, collection: str, rows) -> None:
        if not rows:
            return
        existing = await self.storage.read(collection)
        await self.storage.write(collection, existing + [row.to_record() for row in rows])

    async def _reconciled_appointments(self, now: datetime) -> list[Appointment]:
        appointments = await self._appointments()
        has_consultation = await self._consultation_lookup()
        if lifecycle.reconcile(appointments, now, has_consultation):
            await self._save(Collection.APPOINTMENTS, appointments)
        return appointments

    @staticmethod
    def _find_schedule(schedules: list[ScheduleOccurrence], schedule_id: str) -> ScheduleOccurrence:
        for schedule in schedules:
            if schedule.id == schedule_id:
                return schedule
        raise NotFound("Schedule", schedule_id)

    # schedules

    async def create_schedule(self, data: ScheduleCreate) -> list[ScheduleOccurrence]:
        """One occurrence per requested consultation day, saved together."""
        now = self.clock()
        shared = {name: getattr(data, name) for name in ScheduleCreate.model_fields if name != "consultation_days"}
        shared["reserved_slots"] = sorted(set(data.reserved_slots))
        created = [
            validate_schedule(
                ScheduleOccurrence(id=new_id("SCH"), consultation_day=day, current_bookings=0, created_at=now, **shared)
            )
            for day in dict.fromkeys(data.consultation_days)
        ]
        async with self._lock:
            schedules = await self._schedules()
            await self._save(Collection.SCHEDULES, schedules + created)
        logger.info(
            f"Created {len(created)} schedule(s) for doctor {data.doctor_id}: "
            + ", ".join(f"{s.id} ({s.consultation_day.value})" for s in created)
        )
        return created

    async def capacity(self, schedule_id: str) -> SlotCapacity:
        async with self._lock:
            schedules = await self._schedules()
        return slot_capacity(self._find_schedule(schedules, schedule_id))

    async def availability(self, on: date, doctor_id: str | None = None) -> list[ScheduleAvailability]:
        async with self._lock:
            schedules = await self._schedules()
        return schedules_for_date(schedules, on, self.clock(), doctor_id)

    async def affected_count(self, schedule_id: str) -> int:
        """How many pending appointments a timing edit or delete would cancel."""
        async with self._lock:
            self._find_schedule(await self._schedules(), schedule_id)
            appointments = await self._appointments()
        return len(affected_appointments(appointments, schedule_id))

    async def get_schedule(self, schedule_id: str) -> ScheduleOccurrence:
        async with self._lock:
            schedules = await self._schedules()
        return self._find_schedule(schedules, schedule_id)

    async def edit_would_cancel(self, schedule_id: str, changes: ScheduleUpdate) -> int:
        """Pending appointments ``changes`` would cancel; zero when day and times stay put."""
        async with self._lock:
            old = self._find_schedule(await self._schedules(), schedule_id)
            if not timing_changed(old, merge_update(old, changes)):
                return 0
            appointments = await self._appointments()
        return len(affected_appointments(appointments, schedule_id))

    async def edit_schedule(self, schedule_id: str, changes: ScheduleUpdate) -> CascadeResult:
        async with self._lock:
            now = self.clock()
            schedules = await self._schedules()
            old = self._find_schedule(schedules, schedule_id)
            appointments = await self._appointments()
            result = apply_edit(old, changes, appointments, now)
            if result.cancelled:
                await self._save(Collection.APPOINTMENTS, appointments)
                await self._append(Collection.NOTIFICATIONS, result.notifications)
            await self._save(
                Collection.SCHEDULES, [result.schedule if s.id == schedule_id else s for s in schedules]
            )
        return result

    async def delete_schedule(self, schedule_id: str) -> CascadeResult:
        async with self._lock:
            now = self.clock()
            schedules = await self._schedules()
            schedule = self._find_schedule(schedules, schedule_id)
            appointments = await self._appointments()
            result = apply_delete(schedule, appointments, now)
            if result.cancelled:
                await self._save(Collection.APPOINTMENTS, appointments)
                await self._append(Collection.NOTIFICATIONS, result.notifications)
            await self._save(Collection.SCHEDULES, [s for s in schedules if s.id != schedule_id])
        return result

    async def block_date(self, doctor_id: str, blocked: date, reason: str) -> CascadeResult:
        async with self._lock:
            now = self.clock()
            appointments = await self._appointments()
            result = apply_block_date(doctor_id, blocked, reason, appointments, now)
            if result.cancelled:
                await self._save(Collection.APPOINTMENTS, appointments)
                await self._append(Collection.NOTIFICATIONS, result.notifications)
            await self._append(
                Collection.BLOCKED_DATES,
                [BlockedDate(id=new_id("BLOCK"), doctor_id=doctor_id, blocked_date=blocked,
                             reason=reason.strip(), created_at=now)],
            )
        return result

    # appointments

    async def book(
        self,
        patient_id: str,
        schedule_id: str,
        on: date,
        patient_name: str | None = None,
    ) -> Appointment:
        async with self._lock:
            now = self.clock()
            schedules = await self._schedules()
            schedule = self._find_schedule(schedules, schedule_id)
            if Weekday.of(on) != schedule.consultation_day:
                raise ValidationError(
                    f"Schedule {schedule_id} runs on {schedule.consultation_day.value}, not {Weekday.of(on).value}"
                )
            if not within_advance_horizon(on, now.date()):
                raise BookingClosed(
                    "Appointment slots are not opened yet for those days. Please try to avail appointment "
                    f"maximum {config.ADVANCE_BOOKING_DAYS} days in advance. Thank you."
                )

            appointments = await self._reconciled_appointments(now)
            appointment = try_book(
                patient_id,
                schedule,
                on,
                appointments,
                now,
                patient_name=patient_name,
                blocked_dates=await self._blocked_dates(),
            )
            appointments.append(appointment)
            await self._save(Collection.APPOINTMENTS, appointments)
            await self._save(Collection.SCHEDULES, schedules)
        return appointment

    async def cancel(self, appointment_id: str, reason: str | None = None) -> Appointment:
        async with self._lock:
            appointments = await self._appointments()
            appointment = next((a for a in appointments if a.id == appointment_id), None)
            if appointment is None:
                raise NotFound("Appointment", appointment_id)
            lifecycle.cancel_appointment(appointment, reason)
            await self._save(Collection.APPOINTMENTS, appointments)

            schedules = await self._schedules()
            for schedule in schedules:
                if schedule.id == appointment.schedule_id and schedule.current_bookings > 0:
                    schedule.current_bookings -= 1
                    await self._save(Collection.SCHEDULES, schedules)
                    break
        logger.info(f"Appointment {appointment_id} cancelled")
        return appointment

    async def load_appointments(
        self,
        patient_id: str | None = None,
        doctor_id: str | None = None,
    ) -> list[Appointment]:
        """Reconcile statuses, persist any change, return the caller's rows."""
        async with self._lock:
            appointments = await self._reconciled_appointments(self.clock())
        return [
            a for a in appointments
            if (patient_id is None or a.patient_id == patient_id)
            and (doctor_id is None or a.doctor_id == doctor_id)
        ]

    async def mark_consultation_complete(self, patient_id: str) -> list[Appointment]:
        async with self._lock:
            appointments = await self._appointments()
            completed = lifecycle.complete_for_consultation(appointments, patient_id)
            if completed:
                await self._save(Collection.APPOINTMENTS, appointments)
        return completed

    async def notifications(self, patient_id: str) -> list[Notification]:
        async with self._lock:
            records = await self.storage.read(Collection.NOTIFICATIONS)
        return [n for n in (Notification.model_validate(r) for r in records) if n.patient_id == patient_id]
