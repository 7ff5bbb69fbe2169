from __future__ import annotations

from datetime import date
from typing import Iterable

import pandas as pd

from interval_math import parse_hhmm
from models import TimeRange


def split_pipe(s: str) -> list[str]:
    return [x.strip() for x in str(s).split("|") if x.strip()]


def join_pipe(values: Iterable) -> str:
    return "|".join(str(v) for v in values)


def parse_int_set_pipe(s: str) -> set[int]:
    out: set[int] = set()
    for x in split_pipe(s):
        out.add(int(x))
    return out


def parse_bool(s: str) -> bool:
    return str(s).strip().lower() in {"1", "true", "yes", "y"}


def parse_date(s: str) -> date:
    s = str(s).strip()
    if not s:
        raise ValueError("blank_date")
    return pd.to_datetime(s, format="%Y-%m-%d").date()


def parse_date_opt(s: str) -> date | None:
    if not str(s).strip():
        return None
    return parse_date(s)


def parse_time_range_opt(start: str, end: str) -> TimeRange | None:
    """
    Both blank -> None. A range with end <= start wraps midnight.
      ("22:00", "02:00") -> TimeRange(1320, 120)
    """
    start, end = str(start).strip(), str(end).strip()
    if not start and not end:
        return None
    if not start or not end:
        raise ValueError(f"incomplete_time_range({start!r}, {end!r})")
    return TimeRange(parse_hhmm(start), parse_hhmm(end))


def none_if_blank(s: str) -> str | None:
    s = str(s).strip()
    return s or None
