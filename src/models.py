from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

# minutes since midnight, [0, 1440)
Minute = int
MINUTES_PER_DAY = 1440

Day = Literal["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# date.weekday() order
DAYS: tuple[Day, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# series days_of_week use 0=Sunday .. 6=Saturday
DAY_INDEX: dict[str, int] = {
    "Sun": 0,
    "Mon": 1,
    "Tue": 2,
    "Wed": 3,
    "Thu": 4,
    "Fri": 5,
    "Sat": 6,
}

SlotScope = Literal["REGULAR", "EXCEPTION", "ABSENCE"]
SlotStatus = Literal["PENDING", "APPROVED", "REJECTED"]
SeriesStatus = Literal["ACTIVE", "PAUSED", "ENDED"]
BookingStatus = Literal["CONFIRMED", "CONFLICTED"]
Role = Literal["TEACHER", "STUDENT"]


def day_of(d: date) -> Day:
    return DAYS[d.weekday()]


def dow_index(d: date) -> int:
    """0=Sunday, matching ClassSeries.days_of_week."""
    return (d.weekday() + 1) % 7


@dataclass(frozen=True)
class TimeRange:
    start_min: Minute
    end_min: Minute

    def __post_init__(self) -> None:
        for m in (self.start_min, self.end_min):
            if not 0 <= m < MINUTES_PER_DAY:
                raise ValueError(f"minute_out_of_range({m})")

    @property
    def crosses_midnight(self) -> bool:
        return self.end_min <= self.start_min

    @property
    def duration_min(self) -> int:
        if self.crosses_midnight:
            return MINUTES_PER_DAY - self.start_min + self.end_min
        return self.end_min - self.start_min


@dataclass(frozen=True)
class AvailabilitySlot:
    slot_id: str
    person_id: str
    scope: SlotScope
    status: SlotStatus
    day: Day | None = None  # REGULAR only
    on_date: date | None = None  # EXCEPTION / ABSENCE only
    full_day: bool = False
    # None with full_day=False means "explicitly unavailable"
    time_range: TimeRange | None = None
    reason: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.scope == "REGULAR":
            if self.day is None or self.on_date is not None:
                raise ValueError(f"regular_slot_needs_day_only({self.slot_id})")
        elif self.on_date is None or self.day is not None:
            raise ValueError(f"dated_slot_needs_date_only({self.slot_id})")
        if self.full_day and self.time_range is not None:
            raise ValueError(f"full_day_slot_has_range({self.slot_id})")

    @property
    def day_key(self) -> str:
        if self.scope == "REGULAR":
            return str(self.day)
        return self.on_date.isoformat()


@dataclass(frozen=True)
class ClassBooking:
    booking_id: str
    day: Day
    time_range: TimeRange
    on_date: date | None = None
    teacher_id: str | None = None
    booth_id: str | None = None
    student_ids: frozenset[str] = frozenset()
    series_id: str | None = None
    branch_id: str | None = None
    subject_id: str | None = None
    class_type_id: str | None = None
    duration: int | None = None
    notes: str | None = None
    status: BookingStatus = "CONFIRMED"
    is_cancelled: bool = False


@dataclass(frozen=True)
class HolidayWindow:
    holiday_id: str
    name: str
    start_date: date
    end_date: date
    is_recurring: bool = False
    branch_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ClassSeries:
    series_id: str
    start_date: date
    time_range: TimeRange
    days_of_week: frozenset[int]
    branch_id: str | None = None
    teacher_id: str | None = None
    student_id: str | None = None
    subject_id: str | None = None
    class_type_id: str | None = None
    booth_id: str | None = None
    end_date: date | None = None
    duration: int | None = None
    status: SeriesStatus = "ACTIVE"
    last_generated_through: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Person:
    person_id: str
    full_name: str
    role: Role
    subject_ids: frozenset[str] = frozenset()
    subject_type_ids: frozenset[str] = frozenset()
    # students only; empty means "any teacher"
    preferred_teacher_ids: frozenset[str] = frozenset()
    slack_user_id: str | None = None


@dataclass(frozen=True)
class Booth:
    booth_id: str
    name: str
    branch_id: str | None = None
    active: bool = True


@dataclass
class ProposedClass:
    """A placement to check: a weekly blueprint row or a dated one-off session."""

    day: Day
    time_range: TimeRange
    teacher_id: str | None = None
    booth_id: str | None = None
    student_ids: set[str] = field(default_factory=set)
    on_date: date | None = None
    # set for blueprints whose generated window is known
    span_start: date | None = None
    span_end: date | None = None
