# src/availability_resolver.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from interval_math import contains, fmt_range, overlaps, partially_overlaps
from models import AvailabilitySlot, TimeRange, day_of

# resolve() reasons
FULL_DAY = "FULL_DAY"
CONTAINED = "CONTAINED"
PARTIAL_OVERLAP = "PARTIAL_OVERLAP"
OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
NO_GOVERNING_SLOT = "NO_GOVERNING_SLOT"
EXPLICITLY_UNAVAILABLE = "EXPLICITLY_UNAVAILABLE"
ABSENT = "ABSENT"

# check_slot_placement() conflict types
FULL_DAY_CONFLICT = "FULL_DAY_CONFLICT"
FULL_DAY_EXISTS = "FULL_DAY_EXISTS"
TIME_OVERLAP = "TIME_OVERLAP"

# advisory warnings, never block the caller
WARN_NOT_AVAILABLE = "not_available"
WARN_ABSENT = "absent"
WARN_NO_REGULAR = "no_regular_availability"


@dataclass
class AvailabilityDecision:
    person_id: str
    on_date: date
    requested: TimeRange
    available: bool
    reason: str
    conflicts: list[AvailabilitySlot] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    regular_slots: list[AvailabilitySlot] = field(default_factory=list)
    exception_slots: list[AvailabilitySlot] = field(default_factory=list)
    absences: list[AvailabilitySlot] = field(default_factory=list)


@dataclass
class BatchAvailability:
    on_date: date
    requested: TimeRange
    results: dict[str, AvailabilityDecision]
    total: int
    available: int
    unavailable: int
    with_warnings: int


@dataclass
class PlacementCheck:
    has_conflict: bool
    conflict_type: str | None = None
    details: str | None = None


def _slot_order(s: AvailabilitySlot) -> tuple[int, str]:
    # full-day / placeholder rows first, then by start time; id breaks ties
    start = s.time_range.start_min if s.time_range else -1
    return (start, s.slot_id)


def _participates(s: AvailabilitySlot, include_pending: bool) -> bool:
    if s.status == "APPROVED":
        return True
    return include_pending and s.status == "PENDING"


def _absence_hits(a: AvailabilitySlot, requested: TimeRange) -> bool:
    if a.full_day or a.time_range is None:
        return True
    return overlaps(a.time_range, requested)


def _unavailable_reason(governing: list[AvailabilitySlot], requested: TimeRange) -> str:
    if not governing:
        return NO_GOVERNING_SLOT
    ranged = [s for s in governing if s.time_range is not None]
    if not ranged:
        return EXPLICITLY_UNAVAILABLE
    if any(overlaps(s.time_range, requested) for s in ranged):
        return PARTIAL_OVERLAP
    return OUTSIDE_WINDOW


def resolve(
    person_id: str,
    on_date: date,
    requested: TimeRange,
    slots: Iterable[AvailabilitySlot],
    include_pending: bool = False,
) -> AvailabilityDecision:
    """
    Is `person_id` free for `requested` on `on_date`?

    Exceptions for the date replace the weekday's regular slots entirely;
    regulars are still reported for reference. Approved absences always win.
    Missing data yields available=False with warnings, never an exception.
    """
    weekday = day_of(on_date)

    regulars: list[AvailabilitySlot] = []
    exceptions: list[AvailabilitySlot] = []
    absences: list[AvailabilitySlot] = []
    for s in slots:
        if s.person_id != person_id or not _participates(s, include_pending):
            continue
        if s.scope == "REGULAR" and s.day == weekday:
            regulars.append(s)
        elif s.scope == "EXCEPTION" and s.on_date == on_date:
            exceptions.append(s)
        elif s.scope == "ABSENCE" and s.on_date == on_date:
            absences.append(s)

    regulars.sort(key=_slot_order)
    exceptions.sort(key=_slot_order)
    absences.sort(key=_slot_order)

    governing = exceptions if exceptions else regulars

    available = False
    reason = ""
    for s in governing:
        if s.full_day:
            available, reason = True, FULL_DAY
            break
        if s.time_range is not None and contains(s.time_range, requested):
            available, reason = True, CONTAINED
            break
    if not available:
        reason = _unavailable_reason(governing, requested)

    conflicts = [
        s
        for s in governing
        if s.time_range is not None and partially_overlaps(s.time_range, requested)
    ]

    hit_absences = [a for a in absences if _absence_hits(a, requested)]
    if hit_absences:
        available = False
        reason = ABSENT
        conflicts.extend(hit_absences)

    warnings: list[str] = []
    if not available:
        warnings.append(WARN_NOT_AVAILABLE)
    if hit_absences:
        warnings.append(WARN_ABSENT)
    if not regulars:
        warnings.append(WARN_NO_REGULAR)

    return AvailabilityDecision(
        person_id=person_id,
        on_date=on_date,
        requested=requested,
        available=available,
        reason=reason,
        conflicts=conflicts,
        warnings=warnings,
        regular_slots=regulars,
        exception_slots=exceptions,
        absences=absences,
    )


def resolve_batch(
    person_ids: list[str],
    on_date: date,
    requested: TimeRange,
    slots_by_person: dict[str, list[AvailabilitySlot]],
    include_pending: bool = False,
) -> BatchAvailability:
    results: dict[str, AvailabilityDecision] = {}
    for pid in person_ids:
        results[pid] = resolve(
            pid,
            on_date,
            requested,
            slots_by_person.get(pid, []),
            include_pending=include_pending,
        )

    available = sum(1 for r in results.values() if r.available)
    return BatchAvailability(
        on_date=on_date,
        requested=requested,
        results=results,
        total=len(person_ids),
        available=available,
        unavailable=len(results) - available,
        with_warnings=sum(1 for r in results.values() if r.warnings),
    )


def check_slot_placement(
    candidate: AvailabilitySlot,
    existing: Iterable[AvailabilitySlot],
    exclude_id: str | None = None,
) -> PlacementCheck:
    """
    Can `candidate` be stored next to the person's existing slots?
    One full-day record per day-key; ranged records may not overlap each
    other or sit next to a full-day record. Rejected rows are ignored.
    """
    is_regular = candidate.scope == "REGULAR"
    same_key = [
        s
        for s in existing
        if s.person_id == candidate.person_id
        and s.status != "REJECTED"
        and s.slot_id != exclude_id
        and (s.scope == "REGULAR") == is_regular
        and s.day_key == candidate.day_key
    ]
    same_key.sort(key=_slot_order)
    day_ref = candidate.day_key

    if candidate.full_day:
        if same_key:
            return PlacementCheck(
                True,
                FULL_DAY_CONFLICT,
                f"{day_ref} already has availability; only one full-day record is allowed per day.",
            )
        return PlacementCheck(False)

    for s in same_key:
        if s.full_day:
            return PlacementCheck(
                True,
                FULL_DAY_EXISTS,
                f"{day_ref} is already available all day; time-specific slots cannot be added.",
            )
        if (
            s.time_range is not None
            and candidate.time_range is not None
            and overlaps(candidate.time_range, s.time_range)
        ):
            return PlacementCheck(
                True,
                TIME_OVERLAP,
                f"Overlaps existing availability ({fmt_range(s.time_range)}).",
            )

    return PlacementCheck(False)
