from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .timeutil import TimeOfDay


def new_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12].upper()}"


def _coerce_date(value):
    # stored rows may carry the display form "Oct 19, 2026"
    if isinstance(value, str) and "," in value:
        return datetime.strptime(value.strip(), "%b %d, %Y").date()
    return value


class Record(BaseModel):
    """Base for rows kept in the key-value collections (camelCase on disk)."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: date) -> Weekday:
        return list(cls)[day.weekday()]


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MISSED = "missed"
    VOID = "void"


class ScheduleOccurrence(Record):
    """A doctor's recurring weekly consultation slot."""
    id: str
    doctor_id: str
    doctor_name: str = ""
    hospital_name: str
    hospital_address: str = ""
    consultation_day: Weekday
    time_start: TimeOfDay
    time_end: TimeOfDay
    max_patients: int = Field(gt=0)
    reserved_slots: list[int] = Field(default_factory=list)
    current_bookings: int = Field(default=0, ge=0)
    emergency_contact: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ScheduleCreate(Record):
    """A new schedule; one occurrence is created per consultation day."""
    doctor_id: str
    doctor_name: str = ""
    hospital_name: str
    hospital_address: str = ""
    consultation_days: list[Weekday] = Field(min_length=1)
    time_start: TimeOfDay
    time_end: TimeOfDay
    max_patients: int = Field(gt=0)
    reserved_slots: list[int] = Field(default_factory=list)
    emergency_contact: str | None = None


class ScheduleUpdate(Record):
    """Partial edit of a schedule; unset fields keep their current value."""
    hospital_name: str | None = None
    hospital_address: str | None = None
    consultation_day: Weekday | None = None
    time_start: TimeOfDay | None = None
    time_end: TimeOfDay | None = None
    max_patients: int | None = Field(default=None, gt=0)
    reserved_slots: list[int] | None = None
    emergency_contact: str | None = None


class Appointment(Record):
    """One patient's claim on one schedule occurrence for one calendar date."""
    id: str
    patient_id: str
    patient_name: str | None = None
    doctor_id: str
    doctor_name: str = ""
    schedule_id: str
    hospital_name: str = ""
    appointment_date: date
    appointment_time: TimeOfDay
    appointment_end_time: TimeOfDay
    status: AppointmentStatus = AppointmentStatus.PENDING
    booked_at: datetime
    cancel_reason: str | None = None

    @field_validator("appointment_date", mode="before")
    @classmethod
    def parse_legacy_date(cls, value):
        return _coerce_date(value)

    @property
    def ends_at(self) -> datetime:
        return self.appointment_end_time.on(self.appointment_date)


class Consultation(Record):
    id: str
    patient_id: str
    consultation_date: date
    is_completed: bool = True

    @field_validator("consultation_date", mode="before")
    @classmethod
    def parse_legacy_date(cls, value):
        return _coerce_date(value)


class Notification(Record):
    id: str
    patient_id: str
    type: str
    title: str
    message: str
    created_at: datetime
    read: bool = False


class BlockedDate(Record):
    id: str
    doctor_id: str
    blocked_date: date
    reason: str
    created_at: datetime

    @field_validator("blocked_date", mode="before")
    @classmethod
    def parse_legacy_date(cls, value):
        return _coerce_date(value)


class SlotCapacity(BaseModel):
    total: int
    reserved: int
    bookable: int
    booked: int
    available: int


class BookingVerdict(BaseModel):
    bookable: bool
    reason: str | None = None
    emergency_contact: str | None = None

    @classmethod
    def open(cls) -> BookingVerdict:
        return cls(bookable=True)

    @classmethod
    def closed(cls, reason: str, emergency_contact: str | None = None) -> BookingVerdict:
        return cls(bookable=False, reason=reason, emergency_contact=emergency_contact or None)


class ScheduleAvailability(BaseModel):
    """A schedule as offered to a patient browsing a date."""
    schedule: ScheduleOccurrence
    verdict: BookingVerdict
    capacity: SlotCapacity


class BookRequest(BaseModel):
    patient_id: str
    patient_name: str | None = None
    schedule_id: str
    appointment_date: date


class BlockDateRequest(BaseModel):
    doctor_id: str
    blocked_date: date
    reason: str


class ConsultationCompleteRequest(BaseModel):
    patient_id: str


class CascadeResponse(BaseModel):
    schedule_id: str | None = None
    cancelled: int
    notifications: int
