# src/availability_repo.py
from __future__ import annotations

import sqlite3
from datetime import date

from models import AvailabilitySlot, SlotScope, SlotStatus, TimeRange


def _row_to_slot(r: sqlite3.Row) -> AvailabilitySlot:
    tr = None
    if r["start_min"] is not None and r["end_min"] is not None:
        tr = TimeRange(r["start_min"], r["end_min"])
    return AvailabilitySlot(
        slot_id=r["slot_id"],
        person_id=r["person_id"],
        scope=r["scope"],
        status=r["status"],
        day=r["day"],
        on_date=date.fromisoformat(r["on_date"]) if r["on_date"] else None,
        full_day=bool(r["full_day"]),
        time_range=tr,
        reason=r["reason"],
        notes=r["notes"],
    )


def insert_slot(con: sqlite3.Connection, slot: AvailabilitySlot) -> str:
    """
    Inserts a slot. A blank slot_id gets one like AV000001 from the
    autoincrement id. IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        INSERT INTO availability_slots
          (slot_id, person_id, scope, status, day, on_date, full_day, start_min, end_min, reason, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            slot.slot_id or None,
            slot.person_id,
            slot.scope,
            slot.status,
            slot.day,
            slot.on_date.isoformat() if slot.on_date else None,
            int(slot.full_day),
            slot.time_range.start_min if slot.time_range else None,
            slot.time_range.end_min if slot.time_range else None,
            slot.reason,
            slot.notes,
        ),
    )
    if slot.slot_id:
        return slot.slot_id

    new_id = cur.lastrowid
    slot_id = f"AV{new_id:06d}"
    con.execute("UPDATE availability_slots SET slot_id = ? WHERE id = ?", (slot_id, new_id))
    return slot_id


def get_slot(con: sqlite3.Connection, slot_id: str) -> AvailabilitySlot | None:
    row = con.execute(
        "SELECT * FROM availability_slots WHERE slot_id = ?", (slot_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_slot(row)


def list_slots_for_person(con: sqlite3.Connection, person_id: str) -> list[AvailabilitySlot]:
    rows = con.execute(
        "SELECT * FROM availability_slots WHERE person_id = ? ORDER BY id ASC",
        (person_id,),
    ).fetchall()
    return [_row_to_slot(r) for r in rows]


def list_all_slots(con: sqlite3.Connection) -> list[AvailabilitySlot]:
    rows = con.execute("SELECT * FROM availability_slots ORDER BY id ASC").fetchall()
    return [_row_to_slot(r) for r in rows]


def list_slots_by_status(con: sqlite3.Connection, status: SlotStatus) -> list[AvailabilitySlot]:
    rows = con.execute(
        "SELECT * FROM availability_slots WHERE status = ? ORDER BY id ASC",
        (status,),
    ).fetchall()
    return [_row_to_slot(r) for r in rows]


def set_slot_status(con: sqlite3.Connection, slot_id: str, status: SlotStatus) -> bool:
    """
    Moves a PENDING slot to `status`. Returns False if the slot is missing or
    already decided. IMPORTANT: does NOT commit. Caller decides.
    """
    cur = con.execute(
        """
        UPDATE availability_slots
        SET status = ?
        WHERE slot_id = ?
          AND status = 'PENDING'
        """,
        (status, slot_id),
    )
    return cur.rowcount == 1


def delete_slots_for_key(
    con: sqlite3.Connection,
    person_id: str,
    scope: SlotScope,
    day: str | None,
    on_date: date | None,
) -> int:
    """
    Deletes every slot of one scope on one day-key. IMPORTANT: does NOT commit.
    """
    if scope == "REGULAR":
        cur = con.execute(
            "DELETE FROM availability_slots WHERE person_id = ? AND scope = ? AND day = ?",
            (person_id, scope, day),
        )
    else:
        cur = con.execute(
            "DELETE FROM availability_slots WHERE person_id = ? AND scope = ? AND on_date = ?",
            (person_id, scope, on_date.isoformat() if on_date else None),
        )
    return cur.rowcount


def count_by_status_and_scope(con: sqlite3.Connection) -> dict[tuple[str, str], int]:
    rows = con.execute(
        """
        SELECT status, scope, COUNT(*) AS n
        FROM availability_slots
        GROUP BY status, scope
        """
    ).fetchall()
    return {(r["status"], r["scope"]): r["n"] for r in rows}
