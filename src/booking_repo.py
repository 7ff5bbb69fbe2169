# src/booking_repo.py
from __future__ import annotations

import sqlite3
from collections import defaultdict
from datetime import date

from models import ClassBooking, TimeRange


def _students_for(con: sqlite3.Connection, booking_ids: list[str]) -> dict[str, set[str]]:
    out: dict[str, set[str]] = defaultdict(set)
    if not booking_ids:
        return out
    marks = ",".join("?" for _ in booking_ids)
    rows = con.execute(
        f"SELECT booking_id, student_id FROM booking_students WHERE booking_id IN ({marks})",
        booking_ids,
    ).fetchall()
    for r in rows:
        out[r["booking_id"]].add(r["student_id"])
    return out


def _rows_to_bookings(con: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[ClassBooking]:
    students = _students_for(con, [r["booking_id"] for r in rows])
    return [
        ClassBooking(
            booking_id=r["booking_id"],
            day=r["day"],
            time_range=TimeRange(r["start_min"], r["end_min"]),
            on_date=date.fromisoformat(r["on_date"]) if r["on_date"] else None,
            teacher_id=r["teacher_id"],
            booth_id=r["booth_id"],
            student_ids=frozenset(students.get(r["booking_id"], set())),
            series_id=r["series_id"],
            branch_id=r["branch_id"],
            subject_id=r["subject_id"],
            class_type_id=r["class_type_id"],
            duration=r["duration"],
            notes=r["notes"],
            status=r["status"],
            is_cancelled=bool(r["is_cancelled"]),
        )
        for r in rows
    ]


def _write_students(con: sqlite3.Connection, b: ClassBooking) -> None:
    con.execute("DELETE FROM booking_students WHERE booking_id = ?", (b.booking_id,))
    con.executemany(
        "INSERT INTO booking_students (booking_id, student_id) VALUES (?, ?)",
        [(b.booking_id, sid) for sid in sorted(b.student_ids)],
    )


def insert_booking(con: sqlite3.Connection, b: ClassBooking) -> str:
    """IMPORTANT: does NOT commit. Caller decides."""
    con.execute(
        """
        INSERT INTO bookings
          (booking_id, day, on_date, start_min, end_min, teacher_id, booth_id, series_id,
           branch_id, subject_id, class_type_id, duration, notes, status, is_cancelled)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            b.booking_id,
            b.day,
            b.on_date.isoformat() if b.on_date else None,
            b.time_range.start_min,
            b.time_range.end_min,
            b.teacher_id,
            b.booth_id,
            b.series_id,
            b.branch_id,
            b.subject_id,
            b.class_type_id,
            b.duration,
            b.notes,
            b.status,
            int(b.is_cancelled),
        ),
    )
    _write_students(con, b)
    return b.booking_id


def update_booking(con: sqlite3.Connection, b: ClassBooking) -> bool:
    """
    Rewrites every column of an existing booking (students included).
    IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        UPDATE bookings
        SET day = ?, on_date = ?, start_min = ?, end_min = ?, teacher_id = ?, booth_id = ?,
            series_id = ?, branch_id = ?, subject_id = ?, class_type_id = ?, duration = ?,
            notes = ?, status = ?, is_cancelled = ?
        WHERE booking_id = ?
        """,
        (
            b.day,
            b.on_date.isoformat() if b.on_date else None,
            b.time_range.start_min,
            b.time_range.end_min,
            b.teacher_id,
            b.booth_id,
            b.series_id,
            b.branch_id,
            b.subject_id,
            b.class_type_id,
            b.duration,
            b.notes,
            b.status,
            int(b.is_cancelled),
            b.booking_id,
        ),
    )
    if cur.rowcount != 1:
        return False
    _write_students(con, b)
    return True


def get_booking(con: sqlite3.Connection, booking_id: str) -> ClassBooking | None:
    rows = con.execute(
        "SELECT * FROM bookings WHERE booking_id = ?", (booking_id,)
    ).fetchall()
    found = _rows_to_bookings(con, rows)
    return found[0] if found else None


def list_bookings(con: sqlite3.Connection) -> list[ClassBooking]:
    rows = con.execute(
        "SELECT * FROM bookings ORDER BY on_date, start_min, booking_id"
    ).fetchall()
    return _rows_to_bookings(con, rows)


def list_weekly_bookings(con: sqlite3.Connection) -> list[ClassBooking]:
    rows = con.execute(
        "SELECT * FROM bookings WHERE on_date IS NULL ORDER BY day, start_min, booking_id"
    ).fetchall()
    return _rows_to_bookings(con, rows)


def list_bookings_for_series(con: sqlite3.Connection, series_id: str) -> list[ClassBooking]:
    rows = con.execute(
        "SELECT * FROM bookings WHERE series_id = ? ORDER BY on_date, booking_id",
        (series_id,),
    ).fetchall()
    return _rows_to_bookings(con, rows)


def cancel_sessions_for_series(con: sqlite3.Connection, series_id: str, from_date: date) -> int:
    """
    Cancels the live sessions of a series dated `from_date` or later.
    IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        UPDATE bookings
        SET is_cancelled = 1
        WHERE series_id = ?
          AND on_date IS NOT NULL
          AND on_date >= ?
          AND is_cancelled = 0
        """,
        (series_id, from_date.isoformat()),
    )
    return cur.rowcount
