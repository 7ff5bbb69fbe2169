from __future__ import annotations

from datetime import date

from interval_math import fmt_range
from models import TimeRange


def fmt_local_range(on_date: date | None, r: TimeRange, day: str | None = None) -> str:
    """
    "Mon 12 Jan 09:00–12:00"; a weekly row shows only the weekday.
    A range that wraps midnight is marked "(+1)".
    """
    head = f"{on_date:%a %d %b}" if on_date else (day or "")
    body = fmt_range(r).replace("-", "–")
    if r.crosses_midnight:
        body += " (+1)"
    return f"{head} {body}".strip()
