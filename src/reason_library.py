from __future__ import annotations

import re

DIRECT = {
    # availability decisions
    "FULL_DAY": "Available all day.",
    "CONTAINED": "Available for the whole requested time.",
    "PARTIAL_OVERLAP": "Only partly available during the requested time.",
    "OUTSIDE_WINDOW": "Availability that day does not cover the requested time.",
    "NO_GOVERNING_SLOT": "No availability registered for that day.",
    "EXPLICITLY_UNAVAILABLE": "Marked as unavailable that day.",
    "ABSENT": "Absent on that date.",
    # warnings
    "not_available": "Not available.",
    "absent": "Has an approved absence that day.",
    "no_regular_availability": "No regular weekly availability on that weekday.",
    # slot placement
    "FULL_DAY_CONFLICT": "That day already has availability; only one full-day record is allowed.",
    "FULL_DAY_EXISTS": "That day is already available all day.",
    "TIME_OVERLAP": "Overlaps an existing availability slot.",
    # slot workflow
    "slot_saved": "Availability saved.",
    "slot_rejected": "Availability could not be saved.",
    "slot_not_found": "That availability request doesn’t exist.",
    "slot_not_pending": "That availability request has already been decided.",
    "approved": "Approved.",
    "rejected": "Rejected.",
    # booking conflicts
    "TEACHER_CONFLICT": "Teacher already has a class at this time.",
    "STUDENT_CONFLICT": "Student already has a class at this time.",
    "BOOTH_CONFLICT": "Booth is already booked at this time.",
    "HOLIDAY_CONFLICT": "Falls on a school holiday.",
    # extension preview
    "TEACHER_UNAVAILABLE": "Teacher has no availability that day.",
    "TEACHER_WRONG_TIME": "Teacher is not available at this time.",
    "STUDENT_UNAVAILABLE": "Student has no availability that day.",
    "STUDENT_WRONG_TIME": "Student is not available at this time.",
    "NO_SHARED_AVAILABILITY": "Teacher and student availability do not overlap.",
}


def match_reason(code: str) -> str:
    if code in DIRECT:
        return DIRECT[code]

    # Patterned codes
    m = re.match(r"invalid_time\('?(.*?)'?\)$", code)
    if m:
        return f"“{m.group(1)}” is not a valid HH:MM time."

    m = re.match(r"invalid_status_transition\((\w+)->(\w+)\)", code)
    if m:
        return f"A {m.group(1).lower()} series cannot become {m.group(2).lower()}."

    m = re.match(r"(series|holiday|booking|person)_not_found: (.+)", code)
    if m:
        return f"Unknown {m.group(1)} `{m.group(2)}`."

    m = re.match(r"end_date_before_start_date\((.+) < (.+)\)", code)
    if m:
        return f"End date {m.group(1)} is before start date {m.group(2)}."

    m = re.match(r"unknown_(series|holiday)_field\((.+)\)", code)
    if m:
        return f"Unknown {m.group(1)} field(s): {m.group(2)}."

    # Fallback
    return code


def match_reasons(codes: list[str]) -> list[str]:
    return [match_reason(c) for c in codes]

