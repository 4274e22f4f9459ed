"""Time-of-day handling for consultation slots.

Schedules carry 12-hour clock strings such as ``"02:00 PM"``. They are parsed
once, at the model boundary, into :class:`TimeOfDay` and every comparison
afterwards works on minutes since midnight.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time
from functools import total_ordering
from typing import Any

from pydantic_core import core_schema

from .errors import ValidationError

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(AM|PM)\s*$", re.IGNORECASE)


@total_ordering
class TimeOfDay:
    """Minutes since midnight, rendered as ``hh:mm AM/PM``."""

    __slots__ = ("minutes",)

    def __init__(self, minutes: int):
        if not 0 <= minutes < 24 * 60:
            raise ValidationError(f"time of day out of range: {minutes} minutes")
        self.minutes = minutes

    @classmethod
    def parse(cls, value: str) -> TimeOfDay:
        match = _TIME_RE.match(value or "")
        if not match:
            raise ValidationError(f"expected a time like '09:00 AM', got {value!r}")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if not 1 <= hours <= 12 or minutes > 59:
            raise ValidationError(f"invalid 12-hour time {value!r}")
        meridiem = match.group(3).upper()
        if meridiem == "PM" and hours != 12:
            hours += 12
        if meridiem == "AM" and hours == 12:
            hours = 0
        return cls(hours * 60 + minutes)

    @classmethod
    def from_datetime(cls, moment: datetime | time) -> TimeOfDay:
        return cls(moment.hour * 60 + moment.minute)

    @classmethod
    def coerce(cls, value: Any) -> TimeOfDay:
        if isinstance(value, TimeOfDay):
            return value
        if isinstance(value, (datetime, time)):
            return cls.from_datetime(value)
        if isinstance(value, str):
            return cls.parse(value)
        raise ValidationError(f"cannot interpret {value!r} as a time of day")

    def to_time(self) -> time:
        return time(self.minutes // 60, self.minutes % 60)

    def on(self, day: date) -> datetime:
        """Timestamp of this time of day on ``day``."""
        return datetime.combine(day, self.to_time())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeOfDay):
            return NotImplemented
        return self.minutes == other.minutes

    def __lt__(self, other: TimeOfDay) -> bool:
        if not isinstance(other, TimeOfDay):
            return NotImplemented
        return self.minutes < other.minutes

    def __hash__(self) -> int:
        return hash(self.minutes)

    def __str__(self) -> str:
        hours, minutes = divmod(self.minutes, 60)
        meridiem = "PM" if hours >= 12 else "AM"
        hours = hours % 12 or 12
        return f"{hours:02d}:{minutes:02d} {meridiem}"

    def __repr__(self) -> str:
        return f"TimeOfDay({str(self)!r})"

    # pydantic integration: validated from strings, serialized back to strings
    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema: Any, handler: Any) -> dict[str, Any]:
        return {"type": "string", "examples": ["09:00 AM"]}


def minutes_now(now: datetime) -> int:
    return now.hour * 60 + now.minute
