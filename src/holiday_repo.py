# src/holiday_repo.py
from __future__ import annotations

import sqlite3
from datetime import date

from models import HolidayWindow


def _row_to_holiday(r: sqlite3.Row) -> HolidayWindow:
    return HolidayWindow(
        holiday_id=r["holiday_id"],
        name=r["name"],
        start_date=date.fromisoformat(r["start_date"]),
        end_date=date.fromisoformat(r["end_date"]),
        is_recurring=bool(r["is_recurring"]),
        branch_id=r["branch_id"],
        notes=r["notes"],
    )


def insert_holiday(con: sqlite3.Connection, h: HolidayWindow) -> str:
    """
    Blank holiday_id gets one like H000001.
    IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        INSERT INTO holidays (holiday_id, name, start_date, end_date, is_recurring, branch_id, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            h.holiday_id or None,
            h.name,
            h.start_date.isoformat(),
            h.end_date.isoformat(),
            int(h.is_recurring),
            h.branch_id,
            h.notes,
        ),
    )
    if h.holiday_id:
        return h.holiday_id

    new_id = cur.lastrowid
    holiday_id = f"H{new_id:06d}"
    con.execute("UPDATE holidays SET holiday_id = ? WHERE id = ?", (holiday_id, new_id))
    return holiday_id


def update_holiday(con: sqlite3.Connection, h: HolidayWindow) -> bool:
    """IMPORTANT: does NOT commit. Caller decides."""
    cur = con.execute(
        """
        UPDATE holidays
        SET name = ?, start_date = ?, end_date = ?, is_recurring = ?, branch_id = ?, notes = ?
        WHERE holiday_id = ?
        """,
        (
            h.name,
            h.start_date.isoformat(),
            h.end_date.isoformat(),
            int(h.is_recurring),
            h.branch_id,
            h.notes,
            h.holiday_id,
        ),
    )
    return cur.rowcount == 1


def delete_holiday(con: sqlite3.Connection, holiday_id: str) -> bool:
    """IMPORTANT: does NOT commit. Caller decides."""
    cur = con.execute("DELETE FROM holidays WHERE holiday_id = ?", (holiday_id,))
    return cur.rowcount == 1


def get_holiday(con: sqlite3.Connection, holiday_id: str) -> HolidayWindow | None:
    row = con.execute("SELECT * FROM holidays WHERE holiday_id = ?", (holiday_id,)).fetchone()
    if row is None:
        return None
    return _row_to_holiday(row)


def list_holidays(con: sqlite3.Connection) -> list[HolidayWindow]:
    rows = con.execute("SELECT * FROM holidays ORDER BY start_date, holiday_id").fetchall()
    return [_row_to_holiday(r) for r in rows]


def list_holidays_for_branch(con: sqlite3.Connection, branch_id: str | None) -> list[HolidayWindow]:
    """Holidays of one branch plus the school-wide ones (no branch)."""
    rows = con.execute(
        """
        SELECT * FROM holidays
        WHERE branch_id IS NULL OR branch_id = ?
        ORDER BY start_date, holiday_id
        """,
        (branch_id,),
    ).fetchall()
    return [_row_to_holiday(r) for r in rows]
