from __future__ import annotations

import sqlite3
from datetime import date

import pytest

from db import init_db
from interval_math import parse_range
from models import AvailabilitySlot, ClassBooking, ClassSeries, day_of


@pytest.fixture
def con():
    c = sqlite3.connect(":memory:")
    c.row_factory = sqlite3.Row
    c.execute("PRAGMA foreign_keys = ON;")
    init_db(c)
    yield c
    c.close()


def rng(s: str):
    return parse_range(s)


def regular(slot_id, person_id, day, window=None, full_day=False, status="APPROVED"):
    return AvailabilitySlot(
        slot_id=slot_id,
        person_id=person_id,
        scope="REGULAR",
        status=status,
        day=day,
        full_day=full_day,
        time_range=rng(window) if window else None,
    )


def dated(slot_id, person_id, on, window=None, full_day=False, scope="EXCEPTION", status="APPROVED"):
    return AvailabilitySlot(
        slot_id=slot_id,
        person_id=person_id,
        scope=scope,
        status=status,
        on_date=on,
        full_day=full_day,
        time_range=rng(window) if window else None,
    )


def booking(booking_id, window, day="Mon", on=None, teacher=None, booth=None, students=(), **kw):
    return ClassBooking(
        booking_id=booking_id,
        day=day_of(on) if on else day,
        time_range=rng(window),
        on_date=on,
        teacher_id=teacher,
        booth_id=booth,
        student_ids=frozenset(students),
        **kw,
    )


def series(series_id="S1", window="09:00-10:00", days=(1,), start=date(2025, 1, 6), **kw):
    return ClassSeries(
        series_id=series_id,
        start_date=start,
        time_range=rng(window),
        days_of_week=frozenset(days),
        **kw,
    )
