# src/conflict_detector.py
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from interval_math import contains, overlaps
from models import (
    AvailabilitySlot,
    Booth,
    ClassBooking,
    Day,
    HolidayWindow,
    Person,
    ProposedClass,
    TimeRange,
    day_of,
)

TEACHER_CONFLICT = "TEACHER_CONFLICT"
BOOTH_CONFLICT = "BOOTH_CONFLICT"
STUDENT_CONFLICT = "STUDENT_CONFLICT"
HOLIDAY_CONFLICT = "HOLIDAY_CONFLICT"

DEFAULT_HORIZON_DAYS = 365


@dataclass
class ConflictReport:
    has_conflicts: bool
    teacher_conflicts: list[ClassBooking] = field(default_factory=list)
    booth_conflicts: list[ClassBooking] = field(default_factory=list)
    student_conflicts: dict[str, list[ClassBooking]] = field(default_factory=dict)
    holiday_conflicts: list[HolidayWindow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class CompatibilityFilter:
    day: Day
    time_range: TimeRange
    subject_id: str | None = None
    subject_type_id: str | None = None
    teacher_id: str | None = None
    student_id: str | None = None
    booth_id: str | None = None


@dataclass
class Compatibility:
    teachers: list[Person]
    students: list[Person]
    booths: list[Booth]


def _booking_order(b: ClassBooking) -> tuple[int, str]:
    return (b.time_range.start_min, b.booking_id)


def same_day_key(proposed: ProposedClass, b: ClassBooking) -> bool:
    # dated vs dated compares dates; anything involving a weekly row compares weekdays
    if proposed.on_date is not None and b.on_date is not None:
        return proposed.on_date == b.on_date
    return proposed.day == b.day


def _md(d: date) -> int:
    return d.month * 100 + d.day


def holiday_covers(h: HolidayWindow, d: date) -> bool:
    if not h.is_recurring:
        return h.start_date <= d <= h.end_date

    # recurring windows repeat yearly on the same month/day span
    start_md, end_md, target = _md(h.start_date), _md(h.end_date), _md(d)
    if start_md <= end_md:
        return start_md <= target <= end_md
    # wraps the year end, e.g. Dec 25 - Jan 3
    return target >= start_md or target <= end_md


def holiday_on(d: date, holidays: Iterable[HolidayWindow]) -> list[HolidayWindow]:
    return [h for h in holidays if holiday_covers(h, d)]


def proposal_dates(proposed: ProposedClass, horizon_days: int) -> list[date] | None:
    """Concrete dates the proposal would occupy, None for a bare weekly row."""
    if proposed.on_date is not None:
        return [proposed.on_date]
    if proposed.span_start is None:
        return None

    end = proposed.span_end or proposed.span_start + timedelta(days=horizon_days)
    out: list[date] = []
    d = proposed.span_start
    while d <= end:
        if day_of(d) == proposed.day:
            out.append(d)
        d += timedelta(days=1)
    return out


def holiday_conflicts(
    proposed: ProposedClass,
    holidays: Iterable[HolidayWindow],
    today: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> list[HolidayWindow]:
    holidays = list(holidays)
    dates = proposal_dates(proposed, horizon_days)

    if dates is None:
        # no dates to intersect: any recurring window, or one that is running today
        hits = [h for h in holidays if h.is_recurring or h.start_date <= today <= h.end_date]
    else:
        hits = [h for h in holidays if any(holiday_covers(h, d) for d in dates)]

    return sorted(hits, key=lambda h: (h.start_date, h.holiday_id))


def check(
    proposed: ProposedClass,
    existing: Iterable[ClassBooking],
    holidays: Iterable[HolidayWindow] = (),
    exclude_id: str | None = None,
    *,
    today: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> ConflictReport:
    """
    Collisions for a proposed placement against bookings already on the books.
    Read-only; `exclude_id` skips the row being edited. `today` is the school
    calendar date (config.today_in_school_tz) used by the coarse holiday rule.
    """
    teacher: list[ClassBooking] = []
    booth: list[ClassBooking] = []
    students: dict[str, list[ClassBooking]] = {}

    for b in sorted(existing, key=_booking_order):
        if b.is_cancelled or b.booking_id == exclude_id:
            continue
        if not same_day_key(proposed, b):
            continue
        if not overlaps(proposed.time_range, b.time_range):
            continue

        if proposed.teacher_id and b.teacher_id == proposed.teacher_id:
            teacher.append(b)
        if proposed.booth_id and b.booth_id == proposed.booth_id:
            booth.append(b)
        for sid in sorted(proposed.student_ids & b.student_ids):
            students.setdefault(sid, []).append(b)

    holiday = holiday_conflicts(
        proposed, holidays, today, horizon_days=horizon_days
    )

    tags: list[str] = []
    if teacher:
        tags.append(TEACHER_CONFLICT)
    if booth:
        tags.append(BOOTH_CONFLICT)
    if students:
        tags.append(STUDENT_CONFLICT)
    if holiday:
        tags.append(HOLIDAY_CONFLICT)

    return ConflictReport(
        has_conflicts=bool(tags),
        teacher_conflicts=teacher,
        booth_conflicts=booth,
        student_conflicts=students,
        holiday_conflicts=holiday,
        warnings=tags,
    )


def _weekly_busy(bookings: list[ClassBooking], day: Day, r: TimeRange) -> list[ClassBooking]:
    return [
        b
        for b in bookings
        if not b.is_cancelled
        and b.on_date is None
        and b.day == day
        and overlaps(r, b.time_range)
    ]


def _window_fits(slots: list[AvailabilitySlot], day: Day, r: TimeRange) -> bool:
    for s in slots:
        if s.scope != "REGULAR" or s.status != "APPROVED" or s.day != day:
            continue
        if s.full_day or (s.time_range is not None and contains(s.time_range, r)):
            return True
    return False


def find_compatibility(
    flt: CompatibilityFilter,
    people: Iterable[Person],
    booths: Iterable[Booth],
    bookings: Iterable[ClassBooking],
    slots_by_person: dict[str, list[AvailabilitySlot]],
) -> Compatibility:
    """
    Everyone and everything free for a weekly slot: no overlapping blueprint
    booking, and for people a regular availability window that holds the slot.
    """
    bookings = list(bookings)
    busy = _weekly_busy(bookings, flt.day, flt.time_range)
    busy_teachers = {b.teacher_id for b in busy if b.teacher_id}
    busy_booths = {b.booth_id for b in busy if b.booth_id}
    busy_students = {sid for b in busy for sid in b.student_ids}

    teachers: list[Person] = []
    students: list[Person] = []
    for p in sorted(people, key=lambda x: x.person_id):
        if flt.subject_id and flt.subject_id not in p.subject_ids:
            continue
        if flt.subject_type_id and flt.subject_type_id not in p.subject_type_ids:
            continue
        fits = _window_fits(slots_by_person.get(p.person_id, []), flt.day, flt.time_range)
        if not fits:
            continue

        if p.role == "TEACHER":
            if flt.teacher_id and p.person_id != flt.teacher_id:
                continue
            if p.person_id in busy_teachers:
                continue
            teachers.append(p)
        else:
            if flt.student_id and p.person_id != flt.student_id:
                continue
            if (
                flt.teacher_id
                and p.preferred_teacher_ids
                and flt.teacher_id not in p.preferred_teacher_ids
            ):
                continue
            if p.person_id in busy_students:
                continue
            students.append(p)

    utilisation = Counter(
        b.booth_id for b in bookings if b.booth_id and not b.is_cancelled and b.on_date is None
    )
    free_booths = [
        bt
        for bt in booths
        if bt.active
        and (not flt.booth_id or bt.booth_id == flt.booth_id)
        and bt.booth_id not in busy_booths
    ]
    free_booths.sort(key=lambda bt: (utilisation[bt.booth_id], bt.booth_id))

    return Compatibility(teachers=teachers, students=students, booths=free_booths)
