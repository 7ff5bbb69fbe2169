from __future__ import annotations

from models import MINUTES_PER_DAY, TimeRange

Span = tuple[int, int]  # half-open [start, end) inside one day


def overlaps_minutes(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    # half-open: touching ranges (a_end == b_start) do not overlap
    return a_start < b_end and a_end > b_start


def split_midnight(r: TimeRange) -> list[Span]:
    """
    Non-wrapping pieces of a range.
    22:00-02:00 -> [(1320, 1440), (0, 120)]
    """
    if not r.crosses_midnight:
        return [(r.start_min, r.end_min)]
    pieces = [(r.start_min, MINUTES_PER_DAY)]
    if r.end_min > 0:
        pieces.append((0, r.end_min))
    return pieces


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    for a_s, a_e in split_midnight(a):
        for b_s, b_e in split_midnight(b):
            if overlaps_minutes(a_s, a_e, b_s, b_e):
                return True
    return False


def contains(outer: TimeRange, inner: TimeRange) -> bool:
    """
    True if `inner` sits inside `outer`.
    Each piece of `inner` must fit inside a single piece of `outer`, so a
    range crossing midnight can only be contained by another crossing range.
    """
    outer_pieces = split_midnight(outer)
    for i_s, i_e in split_midnight(inner):
        if not any(o_s <= i_s and i_e <= o_e for o_s, o_e in outer_pieces):
            return False
    return True


def partially_overlaps(slot: TimeRange, requested: TimeRange) -> bool:
    return overlaps(slot, requested) and not contains(slot, requested)


def parse_hhmm(t: str) -> int:
    try:
        hh, mm = str(t).strip().split(":")
        h, m = int(hh), int(mm)
    except ValueError:
        raise ValueError(f"invalid_time({t!r})") from None
    if not (0 <= h < 24 and 0 <= m < 60):
        raise ValueError(f"invalid_time({t!r})")
    return h * 60 + m


def fmt_hhmm(m: int) -> str:
    h = m // 60
    mm = m % 60
    return f"{h:02d}:{mm:02d}"


def parse_range(s: str) -> TimeRange:
    """'09:00-10:30' -> TimeRange(540, 630). End <= start means it wraps midnight."""
    try:
        start_s, end_s = str(s).split("-", 1)
    except ValueError:
        raise ValueError(f"invalid_range({s!r})") from None
    return TimeRange(parse_hhmm(start_s), parse_hhmm(end_s))


def fmt_range(r: TimeRange) -> str:
    return f"{fmt_hhmm(r.start_min)}-{fmt_hhmm(r.end_min)}"
