from __future__ import annotations

from datetime import date

import pytest

import branch_sync
from booking_repo import get_booking, insert_booking, list_bookings
from branch_sync import (
    holiday_sync_key,
    plan_branch_sync,
    series_sync_key,
    sync_holiday,
    sync_series,
)
from conflict_detector import check
from conftest import booking, series
from holiday_repo import get_holiday, insert_holiday, list_holidays
from interval_math import parse_range
from models import HolidayWindow, ProposedClass
from series_repo import get_series, insert_series, list_series

TODAY = date(2025, 1, 10)


def hol(hid, branch, start=date(2025, 2, 10), end=date(2025, 2, 11), name="Winter break"):
    return HolidayWindow(hid, name, start, end, branch_id=branch)


def test_plan_keeps_one_sibling_per_target_branch():
    rows = [
        hol("h1", "A"),
        hol("h2", "C"),
        hol("h3", "A"),  # duplicate in A
        hol("h4", "A", name="Other"),  # not a sibling
    ]
    plan = plan_branch_sync(rows, holiday_sync_key(rows[0]), holiday_sync_key, ["A", "B"])

    assert [r.holiday_id for r in plan.updates] == ["h1"]
    assert plan.creates == ["B"]
    assert sorted(r.holiday_id for r in plan.deletes) == ["h2", "h3"]


def test_plan_dedupes_target_branches():
    rows = [hol("h1", "A")]
    plan = plan_branch_sync(rows, holiday_sync_key(rows[0]), holiday_sync_key, ["A", "A", None])
    assert [r.holiday_id for r in plan.updates] == ["h1"]
    assert plan.creates == [None]
    assert plan.deletes == []


def test_sync_holiday_reports_sessions_on_new_dates(con):
    insert_holiday(con, hol("h1", "A"))
    insert_holiday(con, hol("h2", "C"))
    insert_booking(con, booking("bA", "16:00-17:00", on=date(2025, 2, 12), teacher="T1", branch_id="A"))
    insert_booking(con, booking("bB", "16:00-17:00", on=date(2025, 2, 13), teacher="T2", branch_id="B"))
    insert_booking(con, booking("bX", "16:00-17:00", on=date(2025, 2, 13), branch_id="B", is_cancelled=True))
    con.commit()

    res = sync_holiday(con, "h1", {"end_date": date(2025, 2, 14)}, ["A", "B"], today=TODAY)

    assert res.status == 409
    assert [(c.booking_id, c.branch_id, c.type) for c in res.conflicts] == [
        ("bA", "A", "HOLIDAY_CONFLICT"),
        ("bB", "B", "HOLIDAY_CONFLICT"),
    ]
    assert res.conflicts[0].teacher_id == "T1"

    stored = {h.branch_id: h for h in list_holidays(con)}
    assert set(stored) == {"A", "B"}
    assert all(h.end_date == date(2025, 2, 14) for h in stored.values())
    assert stored["B"].holiday_id == "H000003"
    assert get_holiday(con, "h2") is None


def test_sync_holiday_clean_is_ok(con):
    insert_holiday(con, hol("h1", "A"))
    insert_booking(con, booking("old", "16:00-17:00", on=date(2025, 1, 6), branch_id="A"))
    con.commit()

    res = sync_holiday(con, "h1", {"start_date": date(2025, 1, 1)}, ["A"], today=TODAY)
    # the session is covered, but it is in the past
    assert res.status == 200
    assert res.row_ids == ["h1"]


def test_school_wide_holiday_hits_every_branch(con):
    insert_holiday(con, hol("h1", None))
    insert_booking(con, booking("b", "16:00-17:00", on=date(2025, 2, 10), branch_id="Z"))
    con.commit()

    res = sync_holiday(con, "h1", {"name": "Snow"}, [None], today=TODAY)
    assert [c.booking_id for c in res.conflicts] == ["b"]


def test_sync_holiday_rejects_bad_input(con):
    insert_holiday(con, hol("h1", "A"))
    con.commit()

    with pytest.raises(ValueError, match="holiday_not_found"):
        sync_holiday(con, "nope", {}, ["A"], today=TODAY)
    with pytest.raises(ValueError, match="unknown_holiday_field"):
        sync_holiday(con, "h1", {"branch_id": "B"}, ["A"], today=TODAY)
    with pytest.raises(ValueError, match="end_date_before_start_date"):
        sync_holiday(con, "h1", {"end_date": date(2025, 1, 1)}, ["A"], today=TODAY)


def test_failed_sync_rolls_back(con, monkeypatch):
    insert_holiday(con, hol("h1", "A"))
    insert_holiday(con, hol("h2", "C"))
    con.commit()

    def boom(con, h):
        raise RuntimeError("disk full")

    monkeypatch.setattr(branch_sync, "insert_holiday", boom)

    with pytest.raises(RuntimeError):
        sync_holiday(con, "h1", {"name": "Renamed"}, ["A", "B"], today=TODAY)

    assert {h.holiday_id: h.name for h in list_holidays(con)} == {
        "h1": "Winter break",
        "h2": "Winter break",
    }


def test_sync_series_patches_siblings_and_reports_clashes(con):
    common = dict(teacher_id="T1", student_id="ST1", end_date=date(2025, 6, 30))
    insert_series(con, series("S1", branch_id="A", last_generated_through=date(2025, 1, 20), **common))
    insert_series(con, series("S2", branch_id="C", **common))
    insert_booking(
        con,
        booking("S1-20250113", "09:00-10:00", on=date(2025, 1, 13), series_id="S1",
                teacher="T1", students=["ST1"], branch_id="A"),
    )
    # another class T2 teaches at the new time, in booth B1
    insert_booking(con, booking("k", "10:30-11:30", on=date(2025, 1, 13), teacher="T2", booth="B1"))
    con.commit()

    res = sync_series(
        con,
        "S1",
        {"start_time": 600, "end_time": 660, "booth_id": "B1", "end_date": date(2025, 1, 15)},
        ["A", "B"],
        today=TODAY,
    )

    assert res.status == 409
    assert [(c.booking_id, c.type) for c in res.conflicts] == [("S1-20250113", "BOOTH_CONFLICT")]

    stored = {s.branch_id: s for s in list_series(con)}
    assert set(stored) == {"A", "B"}
    a = get_series(con, "S1")
    assert (a.time_range.start_min, a.time_range.end_min) == (600, 660)
    assert a.duration == 60
    # end date moved before the watermark
    assert a.last_generated_through == date(2025, 1, 15)
    assert stored["B"].last_generated_through is None
    assert stored["B"].booth_id == "B1"
    assert get_series(con, "S2") is None


def test_series_sync_key_ignores_booth_and_branch():
    a = series(teacher_id="T1", booth_id="B1", branch_id="A")
    b = series("S2", teacher_id="T1", booth_id="B2", branch_id="B")
    assert series_sync_key(a) == series_sync_key(b)


def _two_copies_with_sessions(con, second_branch):
    common = dict(teacher_id="T1", student_id="ST1", booth_id=None, end_date=date(2025, 6, 30))
    insert_series(con, series("S1", branch_id="A", **common))
    insert_series(con, series("S2", branch_id=second_branch, **common))
    for sid, branch in (("S1", "A"), ("S2", second_branch)):
        insert_booking(
            con,
            booking(f"{sid}-20250113", "09:00-10:00", on=date(2025, 1, 13), series_id=sid,
                    teacher="T1", students=["ST1"], branch_id=branch),
        )
    con.commit()


def test_copies_do_not_clash_with_each_other(con):
    _two_copies_with_sessions(con, "B")

    res = sync_series(con, "S1", {"notes": "bring book"}, ["A", "B"], today=TODAY)

    assert res.status == 200
    assert res.conflicts == []
    assert sorted(res.row_ids) == ["S1", "S2"]
    assert {s.notes for s in list_series(con)} == {"bring book"}


def test_copies_still_clash_with_unrelated_classes(con):
    _two_copies_with_sessions(con, "B")
    insert_booking(con, booking("other", "09:30-10:30", on=date(2025, 1, 13), teacher="T1"))
    con.commit()

    res = sync_series(con, "S1", {"notes": "x"}, ["A", "B"], today=TODAY)

    assert res.status == 409
    assert sorted((c.booking_id, c.type) for c in res.conflicts) == [
        ("S1-20250113", "TEACHER_CONFLICT"),
        ("S2-20250113", "TEACHER_CONFLICT"),
    ]


def test_removed_copy_cancels_its_future_sessions(con):
    _two_copies_with_sessions(con, "C")
    insert_booking(
        con,
        booking("S2-20250106", "09:00-10:00", on=date(2025, 1, 6), series_id="S2",
                teacher="T1", students=["ST1"], branch_id="C"),
    )
    con.commit()

    res = sync_series(con, "S1", {"notes": "x"}, ["A"], today=TODAY)

    assert res.row_ids == ["S1"]
    assert get_series(con, "S2") is None
    assert get_booking(con, "S2-20250113").is_cancelled
    # already held sessions are history and stay as they were
    assert not get_booking(con, "S2-20250106").is_cancelled
    assert not get_booking(con, "S1-20250113").is_cancelled

    proposed = ProposedClass(
        day="Mon", time_range=parse_range("09:00-10:00"), teacher_id="T1",
        booth_id=None, student_ids=set(), on_date=date(2025, 1, 13),
    )
    report = check(proposed, list_bookings(con), today=TODAY)
    assert [b.booking_id for b in report.teacher_conflicts] == ["S1-20250113"]
