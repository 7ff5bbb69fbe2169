# src/series_service.py
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable

from availability_repo import list_all_slots
from booking_repo import insert_booking, list_bookings, list_bookings_for_series, update_booking
from config import SERIES_LEAD_DAYS, today_in_school_tz
from holiday_repo import list_holidays_for_branch
from indexes import index_slots_by_person
from models import ClassSeries
from series_coordinator import (
    ExtensionPreview,
    GenerationResult,
    WritePlan,
    apply_plan,
    generate_sessions,
    plan_patch,
    preview_extension,
    propagate_to_sessions,
)
from series_repo import get_series, list_series, update_series

logger = logging.getLogger(__name__)

Propagator = Callable[[sqlite3.Connection, WritePlan, date], int]


@dataclass
class PropagationResult:
    attempted: bool
    ok: bool
    updated: int = 0
    error: str | None = None


@dataclass
class PatchOutcome:
    series: ClassSeries
    plan: WritePlan
    propagation: PropagationResult


def _load(con: sqlite3.Connection, series_id: str) -> ClassSeries:
    s = get_series(con, series_id)
    if s is None:
        raise ValueError(f"series_not_found: {series_id}")
    return s


def propagate_via_bookings(con: sqlite3.Connection, plan: WritePlan, today: date) -> int:
    """Default propagator: rewrites the series' future sessions in storage."""
    sessions = propagate_to_sessions(list_bookings_for_series(con, plan.series_id), plan, today)
    con.execute("BEGIN IMMEDIATE")
    try:
        for b in sessions:
            update_booking(con, b)
        con.commit()
    except Exception:
        con.rollback()
        raise
    return len(sessions)


def patch_series(
    con: sqlite3.Connection,
    series_id: str,
    changes: dict[str, Any],
    today: date | None = None,
    skip_propagation: bool = False,
    propagate_from_booking_id: str | None = None,
    propagator: Propagator = propagate_via_bookings,
) -> PatchOutcome:
    """
    Persist a blueprint edit, then push the changed fields onto generated
    sessions. The blueprint write is authoritative; a failing propagation is
    reported on the outcome, never raised.
    """
    today = today or today_in_school_tz()
    series = _load(con, series_id)
    plan = plan_patch(
        series,
        changes,
        skip_propagation=skip_propagation,
        propagate_from_booking_id=propagate_from_booking_id,
    )
    updated = apply_plan(series, plan)

    if plan.updates:
        con.execute("BEGIN IMMEDIATE")
        try:
            update_series(con, updated)
            con.commit()
        except Exception:
            logger.exception("series %s update aborted", series_id)
            con.rollback()
            raise
        if plan.clamped_watermark:
            logger.info(
                "series %s: watermark clamped to %s", series_id, updated.last_generated_through
            )

    if not plan.should_propagate:
        return PatchOutcome(updated, plan, PropagationResult(attempted=False, ok=True))

    try:
        n = propagator(con, plan, today)
    except Exception as e:
        logger.warning("series %s: propagation to sessions failed: %s", series_id, e)
        return PatchOutcome(
            updated, plan, PropagationResult(attempted=True, ok=False, error=str(e))
        )

    return PatchOutcome(updated, plan, PropagationResult(attempted=True, ok=True, updated=n))


def extend_series(
    con: sqlite3.Connection,
    series_id: str,
    today: date | None = None,
    lead_days: int = SERIES_LEAD_DAYS,
) -> GenerationResult:
    """Generate the next window of sessions and move the watermark, in one transaction."""
    today = today or today_in_school_tz()
    series = _load(con, series_id)

    result = generate_sessions(
        series,
        list_bookings(con),
        list_holidays_for_branch(con, series.branch_id),
        today,
        lead_days=lead_days,
    )

    con.execute("BEGIN IMMEDIATE")
    try:
        for b in result.sessions:
            insert_booking(con, b)
        update_series(
            con,
            replace(
                series,
                last_generated_through=result.last_generated_through,
                status=result.status,
            ),
        )
        con.commit()
    except Exception:
        logger.exception("series %s generation aborted", series_id)
        con.rollback()
        raise

    if result.sessions:
        logger.info(
            "series %s: %d confirmed, %d conflicted, %d skipped through %s",
            series_id,
            result.confirmed,
            result.conflicted,
            result.skipped,
            result.last_generated_through,
        )
    return result


def advance_active_series(
    con: sqlite3.Connection,
    today: date | None = None,
    lead_days: int = SERIES_LEAD_DAYS,
) -> list[GenerationResult]:
    """Scheduled sweep. One failing series is logged and does not stop the rest."""
    today = today or today_in_school_tz()
    out: list[GenerationResult] = []
    for s in list_series(con, status="ACTIVE"):
        try:
            out.append(extend_series(con, s.series_id, today=today, lead_days=lead_days))
        except Exception:
            logger.exception("series %s: advance failed", s.series_id)
    return out


def preview_series_extension(
    con: sqlite3.Connection,
    series_id: str,
    months: int,
    today: date | None = None,
) -> ExtensionPreview:
    today = today or today_in_school_tz()
    series = _load(con, series_id)
    return preview_extension(
        series,
        months,
        today,
        list_bookings(con),
        index_slots_by_person(list_all_slots(con)),
    )
