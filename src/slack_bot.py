# src/slack_bot.py
from __future__ import annotations

import json
import logging
import os

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from availability_repo import get_slot, list_all_slots, list_slots_by_status
from availability_resolver import AvailabilityDecision
from availability_service import approve_slot, availability_for, reject_slot
from booking_repo import list_bookings, list_weekly_bookings
from config import COORDINATOR_SLACK_IDS, HOLIDAY_HORIZON_DAYS, LOG_LEVEL, today_in_school_tz
from conflict_detector import CompatibilityFilter, ConflictReport, check, find_compatibility
from csv_parse_helpers import parse_date, split_pipe
from db import get_con, init_db
from holiday_repo import list_holidays
from indexes import (
    bookings_touching,
    index_bookings_by_booth,
    index_bookings_by_student,
    index_bookings_by_teacher,
    index_slots_by_person,
)
from interval_math import parse_range
from models import DAYS, AvailabilitySlot, ProposedClass
from person_repo import list_booths, list_persons
from reason_library import match_reason, match_reasons
from time_fmt import fmt_local_range

logger = logging.getLogger(__name__)

app = App(token=os.environ["SLACK_BOT_TOKEN"])


# ----------------------------
# Small helpers
# ----------------------------
def is_coordinator(slack_user_id: str) -> bool:
    return slack_user_id in COORDINATOR_SLACK_IDS


def codes_to_bullets(codes: list[str]) -> str:
    if not codes:
        return "No issues."
    return "\n".join(f"• {r}" for r in match_reasons(codes))


def _open_con():
    con = get_con()
    init_db(con)
    return con


# ----------------------------
# Argument parsing
# ----------------------------
def parse_availability_args(text: str):
    """`P001 2025-01-13 09:00-10:30` -> ("P001", date, TimeRange)"""
    parts = text.split()
    if len(parts) != 3:
        raise ValueError("usage")
    return parts[0], parse_date(parts[1]), parse_range(parts[2])


def parse_clash_args(text: str) -> ProposedClass:
    """`T01 B1 Mon 09:00-10:00 [S1,S2]`; Day may be a YYYY-MM-DD date instead."""
    parts = text.split()
    if len(parts) not in (4, 5):
        raise ValueError("usage")
    teacher_id, booth_id, when, rng = parts[:4]
    students = set(split_pipe(parts[4].replace(",", "|"))) if len(parts) == 5 else set()

    if when in DAYS:
        day, on_date = when, None
    else:
        on_date = parse_date(when)
        day = DAYS[on_date.weekday()]

    return ProposedClass(
        day=day,
        time_range=parse_range(rng),
        teacher_id=None if teacher_id == "-" else teacher_id,
        booth_id=None if booth_id == "-" else booth_id,
        student_ids=students,
        on_date=on_date,
    )


def parse_free_args(text: str) -> CompatibilityFilter:
    """`Mon 16:00-17:30 [subject_id]`"""
    parts = text.split()
    if len(parts) not in (2, 3) or parts[0] not in DAYS:
        raise ValueError("usage")
    return CompatibilityFilter(
        day=parts[0],
        time_range=parse_range(parts[1]),
        subject_id=parts[2] if len(parts) == 3 else None,
    )


# ----------------------------
# Blocks
# ----------------------------
def frozen_blocks(text: str) -> list[dict]:
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def availability_blocks(d: AvailabilityDecision) -> list[dict]:
    verdict = "✅ Available" if d.available else "❌ Not available"
    lines = [
        f"*{d.person_id}*: {fmt_local_range(d.on_date, d.requested)}",
        f"{verdict}: {match_reason(d.reason)}",
    ]
    if d.exception_slots:
        lines.append(f"_Date-specific availability overrides {len(d.regular_slots)} regular slot(s)._")
    if d.warnings:
        lines.append(codes_to_bullets(d.warnings))
    return frozen_blocks("\n".join(lines))


def clash_blocks(p: ProposedClass, report: ConflictReport) -> list[dict]:
    head = f"*Proposed:* {fmt_local_range(p.on_date, p.time_range, p.day)}"
    if not report.has_conflicts:
        return frozen_blocks(f"{head}\nNo conflicts.")

    lines = [head, codes_to_bullets(report.warnings)]
    for b in report.teacher_conflicts + report.booth_conflicts:
        lines.append(f"  · `{b.booking_id}` {fmt_local_range(b.on_date, b.time_range, b.day)}")
    for sid, rows in sorted(report.student_conflicts.items()):
        ids = ", ".join(f"`{b.booking_id}`" for b in rows)
        lines.append(f"  · student `{sid}`: {ids}")
    for h in report.holiday_conflicts:
        lines.append(f"  · holiday *{h.name}* {h.start_date:%d %b}–{h.end_date:%d %b}")
    return frozen_blocks("\n".join(lines))


def free_blocks(flt: CompatibilityFilter, teachers, students, booths) -> list[dict]:
    def names(rows, attr: str, label: str) -> str:
        shown = [f"`{getattr(r, attr)}`" for r in rows[:15]]
        more = f" (+{len(rows) - 15} more)" if len(rows) > 15 else ""
        return f"*{label}:* " + (", ".join(shown) + more if shown else "none")

    return frozen_blocks(
        "\n".join(
            [
                f"*Free for* {fmt_local_range(None, flt.time_range, flt.day)}"
                + (f" ({flt.subject_id})" if flt.subject_id else ""),
                names(teachers, "person_id", "Teachers"),
                names(students, "person_id", "Students"),
                names(booths, "booth_id", "Booths"),
            ]
        )
    )


def pending_blocks(slots: list[AvailabilitySlot]) -> list[dict]:
    if not slots:
        return frozen_blocks("No pending availability requests.")

    blocks: list[dict] = []
    for s in slots[:20]:
        when = "all day" if s.full_day else (
            fmt_local_range(None, s.time_range) if s.time_range else "unavailable"
        )
        value = json.dumps({"slot_id": s.slot_id})
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"`{s.slot_id}` *{s.person_id}* {s.scope.lower()} {s.day_key} {when}",
                },
            }
        )
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Approve"},
                        "style": "primary",
                        "action_id": "approve_slot",
                        "value": value,
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Reject"},
                        "style": "danger",
                        "action_id": "reject_slot",
                        "value": value,
                    },
                ],
            }
        )
    return blocks


# ----------------------------
# Commands
# ----------------------------
@app.command("/availability")
def availability_command(ack, command, respond):
    ack()
    if not is_coordinator(command["user_id"]):
        respond("Not authorised.")
        return

    try:
        person_id, on_date, requested = parse_availability_args(command.get("text", ""))
    except ValueError:
        respond("Usage: `/availability <person_id> <YYYY-MM-DD> <HH:MM-HH:MM>`")
        return

    con = _open_con()
    decision = availability_for(con, person_id, on_date, requested)
    respond(blocks=availability_blocks(decision), text=f"Availability {person_id}")


@app.command("/clash")
def clash_command(ack, command, respond):
    ack()
    if not is_coordinator(command["user_id"]):
        respond("Not authorised.")
        return

    try:
        proposed = parse_clash_args(command.get("text", ""))
    except ValueError:
        respond("Usage: `/clash <teacher_id|-> <booth_id|-> <Day|YYYY-MM-DD> <HH:MM-HH:MM> [S1,S2]`")
        return

    con = _open_con()
    bookings = list_bookings(con)
    people = [proposed.teacher_id, *sorted(proposed.student_ids)]
    nearby = bookings_touching(
        people,
        proposed.booth_id,
        index_bookings_by_teacher(bookings),
        index_bookings_by_student(bookings),
        index_bookings_by_booth(bookings),
    )
    report = check(
        proposed,
        nearby,
        list_holidays(con),
        today=today_in_school_tz(),
        horizon_days=HOLIDAY_HORIZON_DAYS,
    )
    respond(blocks=clash_blocks(proposed, report), text="Clash check")


@app.command("/free")
def free_command(ack, command, respond):
    ack()
    if not is_coordinator(command["user_id"]):
        respond("Not authorised.")
        return

    try:
        flt = parse_free_args(command.get("text", ""))
    except ValueError:
        respond("Usage: `/free <Day> <HH:MM-HH:MM> [subject_id]`")
        return

    con = _open_con()
    res = find_compatibility(
        flt,
        list_persons(con),
        list_booths(con),
        list_weekly_bookings(con),
        index_slots_by_person(list_all_slots(con)),
    )
    respond(blocks=free_blocks(flt, res.teachers, res.students, res.booths), text="Free slots")


@app.command("/availability-pending")
def pending_command(ack, command, respond):
    ack()
    if not is_coordinator(command["user_id"]):
        respond("Not authorised.")
        return

    con = _open_con()
    respond(blocks=pending_blocks(list_slots_by_status(con, "PENDING")), text="Pending requests")


# ----------------------------
# Approve / reject actions (coordinator only)
# ----------------------------
def _decide_action(body, respond, decide) -> None:
    if not is_coordinator(body["user"]["id"]):
        respond("Not authorised.")
        return

    slot_id = json.loads(body["actions"][0]["value"])["slot_id"]
    con = _open_con()
    ok, code = decide(con, slot_id)
    logger.info("slot %s decision by %s: %s", slot_id, body["user"]["id"], code)

    slot = get_slot(con, slot_id)
    who = slot.person_id if slot else slot_id
    text = f"`{slot_id}` ({who}): {match_reason(code)}"
    respond(replace_original=False, text=text if ok else f"Could not update. {text}")


@app.action("approve_slot")
def approve_slot_action(ack, body, respond):
    ack()
    _decide_action(body, respond, approve_slot)


@app.action("reject_slot")
def reject_slot_action(ack, body, respond):
    ack()
    _decide_action(body, respond, reject_slot)


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(get_con())
    logger.info("starting admin bot (today in school tz: %s)", today_in_school_tz())
    SocketModeHandler(app, os.environ["SLACK_APP_TOKEN"]).start()


if __name__ == "__main__":
    main()
