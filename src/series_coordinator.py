# src/series_coordinator.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Iterable

import pandas as pd

from availability_resolver import NO_GOVERNING_SLOT, resolve
from conflict_detector import check
from models import (
    AvailabilitySlot,
    ClassBooking,
    ClassSeries,
    HolidayWindow,
    ProposedClass,
    SeriesStatus,
    TimeRange,
    day_of,
    dow_index,
)

PATCHABLE_FIELDS = (
    "teacher_id",
    "student_id",
    "subject_id",
    "class_type_id",
    "booth_id",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "duration",
    "days_of_week",
    "status",
    "notes",
)

# fields copied onto already generated sessions when they change
PROPAGATED_FIELDS = (
    "teacher_id",
    "student_id",
    "subject_id",
    "class_type_id",
    "booth_id",
    "start_time",
    "end_time",
    "duration",
    "notes",
)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "ACTIVE": {"PAUSED", "ENDED"},
    "PAUSED": {"ACTIVE", "ENDED"},
    "ENDED": set(),
}

HARD_CONFLICT_TYPES = {"TEACHER_CONFLICT", "STUDENT_CONFLICT", "BOOTH_CONFLICT"}
AVAILABILITY_ERROR_TYPES = {
    "TEACHER_UNAVAILABLE",
    "STUDENT_UNAVAILABLE",
    "TEACHER_WRONG_TIME",
    "STUDENT_WRONG_TIME",
    "NO_SHARED_AVAILABILITY",
}


@dataclass
class WritePlan:
    series_id: str
    updates: dict[str, Any]
    propagate: dict[str, Any]
    should_propagate: bool
    propagate_from_booking_id: str | None = None
    clamped_watermark: bool = False
    duration_recomputed: bool = False


@dataclass
class GenerationResult:
    series_id: str
    from_date: date
    to_date: date
    sessions: list[ClassBooking] = field(default_factory=list)
    attempted: int = 0
    confirmed: int = 0
    conflicted: int = 0
    skipped: int = 0
    last_generated_through: date | None = None
    status: SeriesStatus = "ACTIVE"


@dataclass
class DateConflict:
    on_date: date
    day: str
    type: str
    details: str
    participant_id: str | None = None


@dataclass
class ExtensionPreview:
    series_id: str
    conflicts: list[DateConflict]
    conflicts_by_date: dict[date, list[DateConflict]]
    total: int
    with_conflicts: int
    valid: int

    @property
    def requires_confirmation(self) -> bool:
        return self.with_conflicts > 0


def validate_transition(current: str, new: str) -> None:
    if current == new:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"invalid_status_transition({current}->{new})")


def _current_value(series: ClassSeries, key: str) -> Any:
    if key == "start_time":
        return series.time_range.start_min
    if key == "end_time":
        return series.time_range.end_min
    return getattr(series, key)


def _normalise(key: str, value: Any) -> Any:
    if key == "days_of_week" and value is not None:
        days = frozenset(int(d) for d in value)
        bad = [d for d in days if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"invalid_days_of_week({sorted(bad)})")
        return days
    return value


def plan_patch(
    series: ClassSeries,
    changes: dict[str, Any],
    skip_propagation: bool = False,
    propagate_from_booking_id: str | None = None,
) -> WritePlan:
    """
    Decide what a patch writes. Only supplied fields that actually differ end
    up in `updates`; the subset in PROPAGATED_FIELDS becomes the payload for
    already generated sessions.
    """
    unknown = sorted(k for k in changes if k not in PATCHABLE_FIELDS)
    if unknown:
        raise ValueError(f"unknown_series_field({', '.join(unknown)})")

    updates: dict[str, Any] = {}
    for key in PATCHABLE_FIELDS:
        if key not in changes:
            continue
        value = _normalise(key, changes[key])
        if value != _current_value(series, key):
            updates[key] = value

    if "status" in updates:
        validate_transition(series.status, updates["status"])

    start_date = updates.get("start_date", series.start_date)
    end_date = updates.get("end_date", series.end_date)
    if end_date is not None and end_date < start_date:
        raise ValueError(f"end_date_before_start_date({end_date} < {start_date})")

    duration_recomputed = False
    if ("start_time" in updates or "end_time" in updates) and "duration" not in changes:
        s = updates.get("start_time", series.time_range.start_min)
        e = updates.get("end_time", series.time_range.end_min)
        if e > s and e - s != series.duration:
            updates["duration"] = e - s
            duration_recomputed = True

    clamped = False
    if (
        updates.get("end_date") is not None
        and series.last_generated_through is not None
        and series.last_generated_through > updates["end_date"]
    ):
        updates["last_generated_through"] = updates["end_date"]
        clamped = True

    propagate = {k: updates[k] for k in PROPAGATED_FIELDS if k in updates}

    return WritePlan(
        series_id=series.series_id,
        updates=updates,
        propagate=propagate,
        should_propagate=bool(propagate) and not skip_propagation,
        propagate_from_booking_id=propagate_from_booking_id,
        clamped_watermark=clamped,
        duration_recomputed=duration_recomputed,
    )


def apply_plan(series: ClassSeries, plan: WritePlan) -> ClassSeries:
    kwargs = {
        k: v
        for k, v in plan.updates.items()
        if k not in ("start_time", "end_time")
    }
    if "start_time" in plan.updates or "end_time" in plan.updates:
        kwargs["time_range"] = TimeRange(
            plan.updates.get("start_time", series.time_range.start_min),
            plan.updates.get("end_time", series.time_range.end_min),
        )
    return replace(series, **kwargs)


def _apply_to_session(b: ClassBooking, payload: dict[str, Any]) -> ClassBooking:
    kwargs: dict[str, Any] = {}
    for key in ("teacher_id", "subject_id", "class_type_id", "booth_id", "duration", "notes"):
        if key in payload:
            kwargs[key] = payload[key]
    if "student_id" in payload:
        sid = payload["student_id"]
        kwargs["student_ids"] = frozenset({sid}) if sid else frozenset()
    if "start_time" in payload or "end_time" in payload:
        kwargs["time_range"] = TimeRange(
            payload.get("start_time", b.time_range.start_min),
            payload.get("end_time", b.time_range.end_min),
        )
    return replace(b, **kwargs)


def propagate_to_sessions(
    bookings: Iterable[ClassBooking],
    plan: WritePlan,
    today: date,
) -> list[ClassBooking]:
    """
    Future, live sessions of the series with the payload applied.
    With `propagate_from_booking_id` the cut-off is that session's date
    instead of today.
    """
    own = [
        b
        for b in bookings
        if b.series_id == plan.series_id and b.on_date is not None and not b.is_cancelled
    ]

    floor = today
    if plan.propagate_from_booking_id is not None:
        anchor = next((b for b in own if b.booking_id == plan.propagate_from_booking_id), None)
        if anchor is None:
            raise ValueError(f"propagation_anchor_not_found: {plan.propagate_from_booking_id}")
        floor = anchor.on_date

    targets = sorted(
        (b for b in own if b.on_date >= floor),
        key=lambda b: (b.on_date, b.booking_id),
    )
    return [_apply_to_session(b, plan.propagate) for b in targets]


def compute_advance_window(
    today: date, series: ClassSeries, lead_days: int
) -> tuple[date, date]:
    start_bound = max(series.start_date, today)
    if series.last_generated_through is not None:
        frm = max(series.last_generated_through + timedelta(days=1), start_bound)
    else:
        frm = start_bound

    to = today + timedelta(days=max(1, lead_days))
    if series.end_date is not None and to > series.end_date:
        to = series.end_date
    return frm, to


def candidate_dates(series: ClassSeries, start: date, end: date) -> list[date]:
    out: list[date] = []
    d = start
    while d <= end:
        if dow_index(d) in series.days_of_week:
            out.append(d)
        d += timedelta(days=1)
    return out


def _session_for(series: ClassSeries, d: date) -> ProposedClass:
    return ProposedClass(
        day=day_of(d),
        time_range=series.time_range,
        teacher_id=series.teacher_id,
        booth_id=series.booth_id,
        student_ids={series.student_id} if series.student_id else set(),
        on_date=d,
    )


def generate_sessions(
    series: ClassSeries,
    existing: Iterable[ClassBooking],
    holidays: Iterable[HolidayWindow],
    today: date,
    lead_days: int = 30,
) -> GenerationResult:
    """
    Materialize sessions up to `lead_days` ahead. Colliding dates are still
    created, as CONFLICTED and cancelled, so the watermark can move past them.
    """
    existing = list(existing)
    holidays = list(holidays)
    frm, to = compute_advance_window(today, series, lead_days)
    result = GenerationResult(
        series_id=series.series_id,
        from_date=frm,
        to_date=to,
        last_generated_through=series.last_generated_through,
        status=series.status,
    )

    if series.status != "ACTIVE":
        return result
    if series.end_date is not None and frm > series.end_date:
        result.status = "ENDED"
        return result

    dates = candidate_dates(series, frm, to)
    if not dates:
        return result

    taken = {b.on_date for b in existing if b.series_id == series.series_id and b.on_date}
    duration = series.duration or series.time_range.duration_min

    for d in dates:
        result.attempted += 1
        if d in taken:
            result.skipped += 1
            continue

        report = check(_session_for(series, d), existing, holidays, today=today)
        conflicted = report.has_conflicts
        result.sessions.append(
            ClassBooking(
                booking_id=f"{series.series_id}-{d:%Y%m%d}",
                day=day_of(d),
                time_range=series.time_range,
                on_date=d,
                teacher_id=series.teacher_id,
                booth_id=series.booth_id,
                student_ids=frozenset({series.student_id}) if series.student_id else frozenset(),
                series_id=series.series_id,
                branch_id=series.branch_id,
                subject_id=series.subject_id,
                class_type_id=series.class_type_id,
                duration=duration,
                notes=series.notes,
                status="CONFLICTED" if conflicted else "CONFIRMED",
                is_cancelled=conflicted,
            )
        )
        if conflicted:
            result.conflicted += 1
        else:
            result.confirmed += 1

    last = dates[-1]
    result.from_date, result.to_date = dates[0], last
    result.last_generated_through = last
    if series.end_date is not None and last >= series.end_date:
        result.status = "ENDED"
    return result


def _add_months(d: date, months: int) -> date:
    return (pd.Timestamp(d) + pd.DateOffset(months=months)).date()


def _availability_conflict(
    role: str,
    person_id: str,
    d: date,
    series: ClassSeries,
    slots: list[AvailabilitySlot],
) -> tuple[bool, DateConflict | None]:
    decision = resolve(person_id, d, series.time_range, slots)
    if decision.available:
        return True, None
    kind = "UNAVAILABLE" if decision.reason == NO_GOVERNING_SLOT else "WRONG_TIME"
    details = (
        "no availability configured for this date"
        if kind == "UNAVAILABLE"
        else "not available during the requested time"
    )
    return False, DateConflict(d, day_of(d), f"{role}_{kind}", details, person_id)


def preview_extension(
    series: ClassSeries,
    months: int,
    today: date,
    existing: Iterable[ClassBooking],
    slots_by_person: dict[str, list[AvailabilitySlot]],
) -> ExtensionPreview:
    """Dry run of the next `months` (1-6) of generation, listing every conflict per date."""
    months = max(1, min(6, months))
    existing = list(existing)

    frm = series.start_date
    if series.last_generated_through is not None:
        frm = series.last_generated_through + timedelta(days=1)
    frm = max(frm, series.start_date, today)
    to = _add_months(frm, months)
    if series.end_date is not None and to > series.end_date:
        to = series.end_date

    dates = candidate_dates(series, frm, to) if frm <= to else []

    conflicts: list[DateConflict] = []
    for d in dates:
        report = check(_session_for(series, d), existing, today=today)
        if report.teacher_conflicts:
            conflicts.append(DateConflict(d, day_of(d), "TEACHER_CONFLICT",
                                          "teacher already has a class at this time",
                                          series.teacher_id))
        if report.student_conflicts:
            conflicts.append(DateConflict(d, day_of(d), "STUDENT_CONFLICT",
                                          "student already has a class at this time",
                                          series.student_id))
        if report.booth_conflicts:
            conflicts.append(DateConflict(d, day_of(d), "BOOTH_CONFLICT",
                                          "booth is already booked at this time"))

        t_ok = s_ok = None
        if series.teacher_id:
            t_ok, c = _availability_conflict(
                "TEACHER", series.teacher_id, d, series,
                slots_by_person.get(series.teacher_id, []),
            )
            if c:
                conflicts.append(c)
        if series.student_id:
            s_ok, c = _availability_conflict(
                "STUDENT", series.student_id, d, series,
                slots_by_person.get(series.student_id, []),
            )
            if c:
                conflicts.append(c)
        if t_ok is not None and s_ok is not None and t_ok != s_ok:
            conflicts.append(DateConflict(d, day_of(d), "NO_SHARED_AVAILABILITY",
                                          "teacher and student availability do not overlap"))

    by_date: dict[date, list[DateConflict]] = {}
    for c in conflicts:
        by_date.setdefault(c.on_date, []).append(c)

    return ExtensionPreview(
        series_id=series.series_id,
        conflicts=conflicts,
        conflicts_by_date=by_date,
        total=len(dates),
        with_conflicts=len(by_date),
        valid=len(dates) - len(by_date),
    )


def has_hard_conflict(conflicts: Iterable[DateConflict]) -> bool:
    return any(c.type in HARD_CONFLICT_TYPES for c in conflicts)


def filter_by_availability_preference(
    conflicts: list[DateConflict], include_availability_errors: bool
) -> list[DateConflict]:
    if include_availability_errors:
        return conflicts
    return [c for c in conflicts if c.type in HARD_CONFLICT_TYPES]
