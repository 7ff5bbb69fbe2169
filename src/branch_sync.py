# src/branch_sync.py
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Hashable, Iterable, TypeVar

from booking_repo import cancel_sessions_for_series, list_bookings, list_bookings_for_series
from conflict_detector import HOLIDAY_CONFLICT, check, holiday_covers
from holiday_repo import (
    delete_holiday,
    get_holiday,
    insert_holiday,
    list_holidays,
    list_holidays_for_branch,
    update_holiday,
)
from models import ClassBooking, ClassSeries, HolidayWindow, ProposedClass, TimeRange
from series_coordinator import apply_plan, plan_patch
from series_repo import delete_series, get_series, insert_series, list_series, update_series

logger = logging.getLogger(__name__)

Row = TypeVar("Row", HolidayWindow, ClassSeries)

HOLIDAY_FIELDS = {"name", "start_date", "end_date", "is_recurring", "notes"}

STATUS_OK = 200
STATUS_CONFLICT = 409


@dataclass
class SyncPlan:
    # (row, branch) pairs; branch is the row's own for updates
    updates: list[Any] = field(default_factory=list)
    creates: list[str | None] = field(default_factory=list)
    deletes: list[Any] = field(default_factory=list)


@dataclass
class SyncConflict:
    branch_id: str | None
    booking_id: str
    on_date: date
    time_range: TimeRange
    type: str
    teacher_id: str | None = None
    student_ids: frozenset[str] = frozenset()


@dataclass
class SyncResult:
    row_ids: list[str]
    conflicts: list[SyncConflict]

    @property
    def status(self) -> int:
        return STATUS_CONFLICT if self.conflicts else STATUS_OK


def holiday_sync_key(h: HolidayWindow) -> tuple:
    return (h.name, h.start_date, h.end_date, h.is_recurring)


def series_sync_key(s: ClassSeries) -> tuple:
    return (
        s.teacher_id,
        s.student_id,
        s.subject_id,
        s.start_date,
        s.end_date,
        tuple(sorted(s.days_of_week)),
        s.time_range.start_min,
        s.time_range.end_min,
    )


def _row_id(row: Any) -> str:
    if isinstance(row, HolidayWindow):
        return row.holiday_id
    return row.series_id


def plan_branch_sync(
    rows: Iterable[Row],
    pre_edit_key: Hashable,
    key_fn: Callable[[Row], Hashable],
    target_branch_ids: Iterable[str | None],
) -> SyncPlan:
    """
    Siblings are the rows sharing the edited row's pre-edit key. Each target
    branch keeps one sibling (updated) or gets a new row; siblings elsewhere,
    and duplicates within a branch, are deleted.
    """
    targets = list(dict.fromkeys(target_branch_ids))
    siblings = sorted(
        (r for r in rows if key_fn(r) == pre_edit_key),
        key=_row_id,
    )

    plan = SyncPlan()
    kept: set[str | None] = set()
    for r in siblings:
        if r.branch_id in targets and r.branch_id not in kept:
            plan.updates.append(r)
            kept.add(r.branch_id)
        else:
            plan.deletes.append(r)

    plan.creates = [b for b in targets if b not in kept]
    return plan


def _run_plan(
    con: sqlite3.Connection,
    label: str,
    plan: SyncPlan,
    write_update: Callable[[Any], str],
    write_create: Callable[[str | None], str],
    write_delete: Callable[[Any], None],
) -> list[str]:
    logger.info(
        "%s sync: %d update(s), %d create(s), %d delete(s)",
        label,
        len(plan.updates),
        len(plan.creates),
        len(plan.deletes),
    )
    row_ids: list[str] = []
    con.execute("BEGIN IMMEDIATE")
    try:
        for r in plan.updates:
            row_ids.append(write_update(r))
        for b in plan.creates:
            row_ids.append(write_create(b))
        for r in plan.deletes:
            write_delete(r)
        con.commit()
    except Exception:
        logger.exception("%s sync aborted, rolled back", label)
        con.rollback()
        raise
    return row_ids


def _booking_conflict(b: ClassBooking, branch_id: str | None, kind: str) -> SyncConflict:
    return SyncConflict(
        branch_id=branch_id,
        booking_id=b.booking_id,
        on_date=b.on_date,
        time_range=b.time_range,
        type=kind,
        teacher_id=b.teacher_id,
        student_ids=b.student_ids,
    )


def _holiday_hits(
    holidays: list[HolidayWindow], bookings: list[ClassBooking], today: date
) -> list[SyncConflict]:
    out: list[SyncConflict] = []
    for h in holidays:
        for b in bookings:
            if b.is_cancelled or b.on_date is None or b.on_date < today:
                continue
            # school-wide holidays (no branch) hit every branch
            if h.branch_id is not None and b.branch_id != h.branch_id:
                continue
            if holiday_covers(h, b.on_date):
                out.append(_booking_conflict(b, h.branch_id, HOLIDAY_CONFLICT))
    out.sort(key=lambda c: (c.on_date, c.time_range.start_min, c.booking_id))
    return out


def sync_holiday(
    con: sqlite3.Connection,
    holiday_id: str,
    changes: dict[str, Any],
    branch_ids: Iterable[str | None],
    today: date,
) -> SyncResult:
    """
    Apply `changes` to a holiday and its siblings in every branch of
    `branch_ids`, all-or-nothing. Sessions now falling on the holiday are
    reported as conflicts; the write itself stands.
    """
    h = get_holiday(con, holiday_id)
    if h is None:
        raise ValueError(f"holiday_not_found: {holiday_id}")
    unknown = sorted(set(changes) - HOLIDAY_FIELDS)
    if unknown:
        raise ValueError(f"unknown_holiday_field({', '.join(unknown)})")

    new = replace(h, **changes)
    if new.end_date < new.start_date:
        raise ValueError(f"end_date_before_start_date({new.end_date} < {new.start_date})")

    plan = plan_branch_sync(list_holidays(con), holiday_sync_key(h), holiday_sync_key, branch_ids)

    def write_update(r: HolidayWindow) -> str:
        update_holiday(con, replace(new, holiday_id=r.holiday_id, branch_id=r.branch_id))
        return r.holiday_id

    def write_create(branch_id: str | None) -> str:
        return insert_holiday(con, replace(new, holiday_id="", branch_id=branch_id))

    row_ids = _run_plan(
        con,
        "holiday",
        plan,
        write_update,
        write_create,
        lambda r: delete_holiday(con, r.holiday_id),
    )

    synced = [get_holiday(con, hid) for hid in row_ids]
    conflicts = _holiday_hits([x for x in synced if x is not None], list_bookings(con), today)
    if conflicts:
        logger.warning("holiday %s overlaps %d scheduled session(s)", holiday_id, len(conflicts))
    return SyncResult(row_ids=row_ids, conflicts=conflicts)


def _series_conflicts(
    con: sqlite3.Connection, s: ClassSeries, everything: list[ClassBooking], today: date
) -> list[SyncConflict]:
    holidays = list_holidays_for_branch(con, s.branch_id)
    out: list[SyncConflict] = []
    for session in list_bookings_for_series(con, s.series_id):
        if session.is_cancelled or session.on_date is None or session.on_date < today:
            continue
        proposed = ProposedClass(
            day=session.day,
            time_range=s.time_range,
            teacher_id=s.teacher_id,
            booth_id=s.booth_id,
            student_ids={s.student_id} if s.student_id else set(),
            on_date=session.on_date,
        )
        report = check(proposed, everything, holidays, exclude_id=session.booking_id, today=today)
        for kind in report.warnings:
            out.append(_booking_conflict(session, s.branch_id, kind))
    return out


def sync_series(
    con: sqlite3.Connection,
    series_id: str,
    changes: dict[str, Any],
    branch_ids: Iterable[str | None],
    today: date,
) -> SyncResult:
    """
    Same reconciliation as sync_holiday for a series blueprint. Each kept
    sibling is patched with its own field diff, so clamps apply per row.
    New branch copies start with no watermark.
    """
    s = get_series(con, series_id)
    if s is None:
        raise ValueError(f"series_not_found: {series_id}")

    template = apply_plan(s, plan_patch(s, changes, skip_propagation=True))
    plan = plan_branch_sync(list_series(con), series_sync_key(s), series_sync_key, branch_ids)

    def write_update(r: ClassSeries) -> str:
        update_series(con, apply_plan(r, plan_patch(r, changes, skip_propagation=True)))
        return r.series_id

    def write_create(branch_id: str | None) -> str:
        return insert_series(
            con,
            replace(template, series_id="", branch_id=branch_id, last_generated_through=None),
        )

    def write_delete(r: ClassSeries) -> None:
        # future sessions of a removed copy are cancelled with it
        cancelled = cancel_sessions_for_series(con, r.series_id, today)
        delete_series(con, r.series_id)
        if cancelled:
            logger.info("series %s removed, %d future session(s) cancelled", r.series_id, cancelled)

    row_ids = _run_plan(con, "series", plan, write_update, write_create, write_delete)

    # copies of one series are never checked against each other
    synced_ids = set(row_ids)
    everything = [b for b in list_bookings(con) if b.series_id not in synced_ids]
    conflicts: list[SyncConflict] = []
    for sid in row_ids:
        synced = get_series(con, sid)
        if synced is not None:
            conflicts.extend(_series_conflicts(con, synced, everything, today))
    if conflicts:
        logger.warning("series %s: %d generated session(s) now conflict", series_id, len(conflicts))
    return SyncResult(row_ids=row_ids, conflicts=conflicts)
