# src/series_repo.py
from __future__ import annotations

import sqlite3
from datetime import date

from csv_parse_helpers import join_pipe, parse_int_set_pipe
from models import ClassSeries, SeriesStatus, TimeRange


def _opt_date(s: str | None) -> date | None:
    return date.fromisoformat(s) if s else None


def _row_to_series(r: sqlite3.Row) -> ClassSeries:
    return ClassSeries(
        series_id=r["series_id"],
        start_date=date.fromisoformat(r["start_date"]),
        time_range=TimeRange(r["start_min"], r["end_min"]),
        days_of_week=frozenset(parse_int_set_pipe(r["days_of_week"])),
        branch_id=r["branch_id"],
        teacher_id=r["teacher_id"],
        student_id=r["student_id"],
        subject_id=r["subject_id"],
        class_type_id=r["class_type_id"],
        booth_id=r["booth_id"],
        end_date=_opt_date(r["end_date"]),
        duration=r["duration"],
        status=r["status"],
        last_generated_through=_opt_date(r["last_generated_through"]),
        notes=r["notes"],
    )


def _columns(s: ClassSeries) -> tuple:
    return (
        s.branch_id,
        s.teacher_id,
        s.student_id,
        s.subject_id,
        s.class_type_id,
        s.booth_id,
        s.start_date.isoformat(),
        s.end_date.isoformat() if s.end_date else None,
        s.time_range.start_min,
        s.time_range.end_min,
        s.duration,
        join_pipe(sorted(s.days_of_week)),
        s.status,
        s.last_generated_through.isoformat() if s.last_generated_through else None,
        s.notes,
    )


def insert_series(con: sqlite3.Connection, s: ClassSeries) -> str:
    """
    Blank series_id gets one like SR000001.
    IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        INSERT INTO class_series
          (series_id, branch_id, teacher_id, student_id, subject_id, class_type_id, booth_id,
           start_date, end_date, start_min, end_min, duration, days_of_week, status,
           last_generated_through, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (s.series_id or None, *_columns(s)),
    )
    if s.series_id:
        return s.series_id

    new_id = cur.lastrowid
    series_id = f"SR{new_id:06d}"
    con.execute("UPDATE class_series SET series_id = ? WHERE id = ?", (series_id, new_id))
    return series_id


def update_series(con: sqlite3.Connection, s: ClassSeries) -> bool:
    """IMPORTANT: does NOT commit. Caller decides."""
    cur = con.execute(
        """
        UPDATE class_series
        SET branch_id = ?, teacher_id = ?, student_id = ?, subject_id = ?, class_type_id = ?,
            booth_id = ?, start_date = ?, end_date = ?, start_min = ?, end_min = ?, duration = ?,
            days_of_week = ?, status = ?, last_generated_through = ?, notes = ?
        WHERE series_id = ?
        """,
        (*_columns(s), s.series_id),
    )
    return cur.rowcount == 1


def delete_series(con: sqlite3.Connection, series_id: str) -> bool:
    """IMPORTANT: does NOT commit. Caller decides."""
    cur = con.execute("DELETE FROM class_series WHERE series_id = ?", (series_id,))
    return cur.rowcount == 1


def get_series(con: sqlite3.Connection, series_id: str) -> ClassSeries | None:
    row = con.execute(
        "SELECT * FROM class_series WHERE series_id = ?", (series_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_series(row)


def list_series(con: sqlite3.Connection, status: SeriesStatus | None = None) -> list[ClassSeries]:
    if status is None:
        rows = con.execute("SELECT * FROM class_series ORDER BY id ASC").fetchall()
    else:
        rows = con.execute(
            "SELECT * FROM class_series WHERE status = ? ORDER BY id ASC", (status,)
        ).fetchall()
    return [_row_to_series(r) for r in rows]
