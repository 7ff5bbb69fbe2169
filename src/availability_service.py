# src/availability_service.py
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import date

from availability_repo import (
    count_by_status_and_scope,
    delete_slots_for_key,
    get_slot,
    insert_slot,
    list_all_slots,
    list_slots_for_person,
    set_slot_status,
)
from availability_resolver import (
    AvailabilityDecision,
    BatchAvailability,
    PlacementCheck,
    check_slot_placement,
    resolve,
    resolve_batch,
)
from config import INCLUDE_PENDING_AVAILABILITY
from indexes import index_slots_by_person
from models import AvailabilitySlot, SlotStatus, TimeRange
from reason_library import match_reason

logger = logging.getLogger(__name__)


@dataclass
class SlotWriteResult:
    ok: bool
    slot_id: str | None = None
    conflict: PlacementCheck | None = None
    replaced: int = 0

    @property
    def message(self) -> str:
        if self.ok:
            return match_reason("slot_saved")
        if self.conflict is not None and self.conflict.details:
            return self.conflict.details
        return match_reason(self.conflict.conflict_type if self.conflict else "slot_rejected")


@dataclass
class AvailabilitySummary:
    pending: int
    approved: int
    rejected: int
    by_scope: dict[str, dict[str, int]] = field(default_factory=dict)


def _write_slot(
    con: sqlite3.Connection,
    slot: AvailabilitySlot,
    overwrite_existing: bool,
) -> SlotWriteResult:
    con.execute("BEGIN IMMEDIATE")
    try:
        replaced = 0
        if overwrite_existing:
            replaced = delete_slots_for_key(con, slot.person_id, slot.scope, slot.day, slot.on_date)
        else:
            existing = list_slots_for_person(con, slot.person_id)
            placement = check_slot_placement(slot, existing)
            if placement.has_conflict:
                con.rollback()
                return SlotWriteResult(ok=False, conflict=placement)

        slot_id = insert_slot(con, slot)
        con.commit()
        return SlotWriteResult(ok=True, slot_id=slot_id, replaced=replaced)

    except Exception:
        con.rollback()
        raise


def admin_set_slot(
    con: sqlite3.Connection,
    slot: AvailabilitySlot,
    overwrite_existing: bool = False,
    status: SlotStatus = "APPROVED",
) -> SlotWriteResult:
    """
    Admin entry: the slot is stored directly as `status` (APPROVED or REJECTED).
    With `overwrite_existing`, every record of the same scope on the same
    day-key is removed first and the placement guard is skipped.
    """
    if status not in ("APPROVED", "REJECTED"):
        raise ValueError(f"invalid_admin_slot_status({status})")

    result = _write_slot(con, replace(slot, status=status), overwrite_existing)
    if result.ok:
        logger.info(
            "admin set %s %s slot %s for %s on %s (replaced %d)",
            status,
            slot.scope,
            result.slot_id,
            slot.person_id,
            slot.day_key,
            result.replaced,
        )
    return result


def request_slot(con: sqlite3.Connection, slot: AvailabilitySlot) -> SlotWriteResult:
    """Self-service entry: stored PENDING until an admin decides."""
    return _write_slot(con, replace(slot, status="PENDING"), overwrite_existing=False)


def _decide(con: sqlite3.Connection, slot_id: str, status: SlotStatus) -> tuple[bool, str]:
    con.execute("BEGIN IMMEDIATE")
    try:
        slot = get_slot(con, slot_id)
        if slot is None:
            con.rollback()
            return False, "slot_not_found"
        if slot.status != "PENDING":
            con.rollback()
            return False, "slot_not_pending"

        if status == "APPROVED":
            others = list_slots_for_person(con, slot.person_id)
            placement = check_slot_placement(slot, others, exclude_id=slot_id)
            if placement.has_conflict:
                con.rollback()
                return False, placement.conflict_type

        ok = set_slot_status(con, slot_id, status)
        con.commit()
        if not ok:
            return False, "slot_not_pending"
        return True, status.lower()

    except Exception:
        con.rollback()
        raise


def approve_slot(con: sqlite3.Connection, slot_id: str) -> tuple[bool, str]:
    return _decide(con, slot_id, "APPROVED")


def reject_slot(con: sqlite3.Connection, slot_id: str) -> tuple[bool, str]:
    return _decide(con, slot_id, "REJECTED")


def availability_for(
    con: sqlite3.Connection,
    person_id: str,
    on_date: date,
    requested: TimeRange,
    include_pending: bool | None = None,
) -> AvailabilityDecision:
    if include_pending is None:
        include_pending = INCLUDE_PENDING_AVAILABILITY
    return resolve(
        person_id,
        on_date,
        requested,
        list_slots_for_person(con, person_id),
        include_pending=include_pending,
    )


def availability_for_many(
    con: sqlite3.Connection,
    person_ids: list[str],
    on_date: date,
    requested: TimeRange,
    include_pending: bool | None = None,
) -> BatchAvailability:
    if include_pending is None:
        include_pending = INCLUDE_PENDING_AVAILABILITY
    return resolve_batch(
        person_ids,
        on_date,
        requested,
        index_slots_by_person(list_all_slots(con)),
        include_pending=include_pending,
    )


def summary(con: sqlite3.Connection) -> AvailabilitySummary:
    counts = count_by_status_and_scope(con)
    by_scope: dict[str, dict[str, int]] = {}
    totals = {"PENDING": 0, "APPROVED": 0, "REJECTED": 0}
    for (status, scope), n in counts.items():
        by_scope.setdefault(scope, {})[status] = n
        totals[status] = totals.get(status, 0) + n
    return AvailabilitySummary(
        pending=totals["PENDING"],
        approved=totals["APPROVED"],
        rejected=totals["REJECTED"],
        by_scope=by_scope,
    )
