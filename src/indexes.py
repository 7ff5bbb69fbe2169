from __future__ import annotations

from typing import Iterable

from models import AvailabilitySlot, ClassBooking


def _booking_order(b: ClassBooking) -> tuple:
    return (b.on_date is not None, b.on_date, b.time_range.start_min, b.booking_id)


# given a teacher id, every live booking they are on, so callers can check
# a proposed placement without scanning the whole timetable
def index_bookings_by_teacher(
    bookings: Iterable[ClassBooking],
) -> dict[str, list[ClassBooking]]:
    out: dict[str, list[ClassBooking]] = {}
    for b in bookings:
        if b.teacher_id and not b.is_cancelled:
            out.setdefault(b.teacher_id, []).append(b)

    for arr in out.values():
        arr.sort(key=_booking_order)
    return out


def index_bookings_by_booth(
    bookings: Iterable[ClassBooking],
) -> dict[str, list[ClassBooking]]:
    out: dict[str, list[ClassBooking]] = {}
    for b in bookings:
        if b.booth_id and not b.is_cancelled:
            out.setdefault(b.booth_id, []).append(b)

    for arr in out.values():
        arr.sort(key=_booking_order)
    return out


def index_bookings_by_student(
    bookings: Iterable[ClassBooking],
) -> dict[str, list[ClassBooking]]:
    out: dict[str, list[ClassBooking]] = {}
    for b in bookings:
        if b.is_cancelled:
            continue
        for sid in b.student_ids:
            out.setdefault(sid, []).append(b)

    for arr in out.values():
        arr.sort(key=_booking_order)
    return out


def index_slots_by_person(
    slots: Iterable[AvailabilitySlot],
) -> dict[str, list[AvailabilitySlot]]:
    out: dict[str, list[AvailabilitySlot]] = {}
    for s in slots:
        out.setdefault(s.person_id, []).append(s)
    return out


def bookings_touching(
    proposed_people: Iterable[str],
    booth_id: str | None,
    by_teacher: dict[str, list[ClassBooking]],
    by_student: dict[str, list[ClassBooking]],
    by_booth: dict[str, list[ClassBooking]],
) -> list[ClassBooking]:
    """
    Union of the indexed bookings that share a person or the booth with a
    proposal, de-duplicated by id. Narrows the input to conflict_detector.check.
    """
    seen: dict[str, ClassBooking] = {}
    for pid in proposed_people:
        for b in by_teacher.get(pid, []) + by_student.get(pid, []):
            seen.setdefault(b.booking_id, b)
    if booth_id:
        for b in by_booth.get(booth_id, []):
            seen.setdefault(b.booking_id, b)
    return sorted(seen.values(), key=_booking_order)
