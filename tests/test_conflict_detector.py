from __future__ import annotations

from datetime import date

import pytest

from conflict_detector import (
    BOOTH_CONFLICT,
    HOLIDAY_CONFLICT,
    STUDENT_CONFLICT,
    TEACHER_CONFLICT,
    CompatibilityFilter,
    check,
    find_compatibility,
    holiday_covers,
    holiday_on,
)
from conftest import booking, regular, rng
from models import Booth, HolidayWindow, Person, ProposedClass

TODAY = date(2025, 1, 10)


def proposal(window, day="Mon", teacher="T1", booth="B1", students=(), **kw):
    return ProposedClass(
        day=day,
        time_range=rng(window),
        teacher_id=teacher,
        booth_id=booth,
        student_ids=set(students),
        **kw,
    )


def test_teacher_double_booking():
    existing = [booking("k1", "09:00-10:00", teacher="T1", booth="B9")]

    report = check(proposal("09:30-10:30"), existing, today=TODAY)
    assert report.has_conflicts
    assert [b.booking_id for b in report.teacher_conflicts] == ["k1"]
    assert report.booth_conflicts == []
    assert report.warnings == [TEACHER_CONFLICT]

    report = check(proposal("10:00-11:00"), existing, today=TODAY)
    assert not report.has_conflicts


def test_booth_and_students_are_separate_dimensions():
    existing = [
        booking("k1", "09:00-10:00", teacher="T2", booth="B1", students=["S1", "S2"]),
        booking("k2", "09:30-10:30", teacher="T3", booth="B2", students=["S2"]),
    ]
    report = check(proposal("09:45-10:15", students=["S2", "S3"]), existing, today=TODAY)
    assert report.teacher_conflicts == []
    assert [b.booking_id for b in report.booth_conflicts] == ["k1"]
    assert list(report.student_conflicts) == ["S2"]
    assert [b.booking_id for b in report.student_conflicts["S2"]] == ["k1", "k2"]
    assert report.warnings == [BOOTH_CONFLICT, STUDENT_CONFLICT]


def test_cancelled_excluded_and_other_weekdays_are_ignored():
    existing = [
        booking("k1", "09:00-10:00", teacher="T1", is_cancelled=True),
        booking("k2", "09:00-10:00", day="Tue", teacher="T1"),
        booking("k3", "09:00-10:00", teacher="T1"),
    ]
    report = check(proposal("09:00-10:00"), existing, exclude_id="k3", today=TODAY)
    assert not report.has_conflicts


def test_overnight_bookings_collide():
    existing = [booking("k1", "22:00-02:00", teacher="T1")]
    report = check(proposal("01:00-01:30"), existing, today=TODAY)
    assert report.warnings == [TEACHER_CONFLICT]


def test_dated_proposal_only_hits_same_date_sessions():
    mon = date(2025, 1, 13)
    existing = [
        booking("d1", "09:00-10:00", on=mon, teacher="T1"),
        booking("d2", "09:00-10:00", on=date(2025, 1, 20), teacher="T1"),
        booking("w1", "09:00-10:00", day="Mon", booth="B1"),
    ]
    report = check(proposal("09:00-10:00", on_date=mon), existing, today=TODAY)
    assert [b.booking_id for b in report.teacher_conflicts] == ["d1"]
    # a weekly blueprint row still applies on every Monday
    assert [b.booking_id for b in report.booth_conflicts] == ["w1"]


def test_results_are_ordered_by_start_then_id():
    existing = [
        booking("b", "09:30-10:30", teacher="T1"),
        booking("a", "09:30-10:30", teacher="T1"),
        booking("c", "09:00-10:00", teacher="T1"),
    ]
    report = check(proposal("09:00-11:00"), existing, today=TODAY)
    assert [b.booking_id for b in report.teacher_conflicts] == ["c", "a", "b"]


def test_holiday_precise_when_dated():
    golden_week = HolidayWindow("h1", "Golden Week", date(2025, 4, 29), date(2025, 5, 6))
    inside = proposal("09:00-10:00", on_date=date(2025, 5, 5))
    outside = proposal("09:00-10:00", on_date=date(2025, 5, 12))

    assert check(inside, [], [golden_week], today=TODAY).warnings == [HOLIDAY_CONFLICT]
    assert not check(outside, [], [golden_week], today=TODAY).has_conflicts


def test_holiday_span_uses_matching_weekdays_only():
    # a single Wednesday off; a Monday blueprint over that span never touches it
    wed_off = HolidayWindow("h1", "Founding day", date(2025, 2, 12), date(2025, 2, 12))
    mondays = proposal("09:00-10:00", span_start=date(2025, 2, 1), span_end=date(2025, 2, 28))
    wednesdays = proposal(
        "09:00-10:00", day="Wed", span_start=date(2025, 2, 1), span_end=date(2025, 2, 28)
    )
    assert not check(mondays, [], [wed_off], today=TODAY).has_conflicts
    assert check(wednesdays, [], [wed_off], today=TODAY).holiday_conflicts == [wed_off]


def test_holiday_coarse_rule_for_bare_weekly_rows():
    running = HolidayWindow("h1", "Winter", date(2025, 1, 5), date(2025, 1, 15))
    later = HolidayWindow("h2", "Spring", date(2025, 3, 20), date(2025, 4, 5))
    yearly = HolidayWindow("h3", "New Year", date(2024, 12, 29), date(2025, 1, 3), is_recurring=True)

    report = check(proposal("09:00-10:00"), [], [later, yearly, running], today=TODAY)
    assert [h.holiday_id for h in report.holiday_conflicts] == ["h3", "h1"]


def test_coarse_rule_reads_the_given_calendar_date():
    running = HolidayWindow("h1", "Winter", date(2025, 1, 5), date(2025, 1, 15))

    during = check(proposal("09:00-10:00"), [], [running], today=date(2025, 1, 12))
    after = check(proposal("09:00-10:00"), [], [running], today=date(2025, 2, 1))
    assert [h.holiday_id for h in during.holiday_conflicts] == ["h1"]
    assert after.holiday_conflicts == []

    with pytest.raises(TypeError):
        check(proposal("09:00-10:00"), [], [running])


def test_recurring_holiday_wraps_year_end():
    h = HolidayWindow("h1", "New Year", date(2020, 12, 29), date(2021, 1, 3), is_recurring=True)
    assert holiday_covers(h, date(2031, 12, 30))
    assert holiday_covers(h, date(2031, 1, 2))
    assert not holiday_covers(h, date(2031, 1, 4))
    assert holiday_on(date(2031, 1, 1), [h]) == [h]


def _people():
    return [
        Person("T1", "Aoki", "TEACHER", subject_ids=frozenset({"MATH"})),
        Person("T2", "Baba", "TEACHER", subject_ids=frozenset({"MATH"})),
        Person("T3", "Chiba", "TEACHER", subject_ids=frozenset({"ENG"})),
        Person("S1", "Doi", "STUDENT", subject_ids=frozenset({"MATH"})),
        Person(
            "S2",
            "Endo",
            "STUDENT",
            subject_ids=frozenset({"MATH"}),
            preferred_teacher_ids=frozenset({"T2"}),
        ),
    ]


def _slots():
    return {
        "T1": [regular("1", "T1", "Mon", "15:00-20:00")],
        "T2": [regular("2", "T2", "Mon", full_day=True)],
        "T3": [regular("3", "T3", "Mon", "15:00-20:00")],
        "S1": [regular("4", "S1", "Mon", "16:00-18:00")],
        "S2": [regular("5", "S2", "Mon", "16:00-18:00")],
    }


def test_find_compatibility_filters_people_and_booths():
    booths = [Booth("B1", "Booth 1"), Booth("B2", "Booth 2"), Booth("B3", "Booth 3", active=False)]
    bookings = [
        booking("w1", "16:30-17:30", teacher="T2", booth="B1"),
        booking("w2", "10:00-11:00", day="Tue", booth="B2"),
        booking("w3", "11:00-12:00", day="Wed", booth="B2"),
        # dated sessions do not count against the weekly view
        booking("d1", "16:00-17:00", on=date(2025, 1, 13), teacher="T1", booth="B2"),
    ]
    flt = CompatibilityFilter(day="Mon", time_range=rng("16:00-17:00"), subject_id="MATH")
    res = find_compatibility(flt, _people(), booths, bookings, _slots())

    assert [p.person_id for p in res.teachers] == ["T1"]
    assert [p.person_id for p in res.students] == ["S1", "S2"]
    assert [b.booth_id for b in res.booths] == ["B2"]


def test_find_compatibility_respects_preferred_teacher():
    flt = CompatibilityFilter(
        day="Mon", time_range=rng("16:00-17:00"), subject_id="MATH", teacher_id="T1"
    )
    res = find_compatibility(flt, _people(), [], [], _slots())
    assert [p.person_id for p in res.teachers] == ["T1"]
    # S2 only wants T2; S1 has no preference
    assert [p.person_id for p in res.students] == ["S1"]


def test_booths_ordered_by_utilisation():
    booths = [Booth("B1", "1"), Booth("B2", "2"), Booth("B3", "3")]
    bookings = [
        booking("a", "09:00-10:00", day="Tue", booth="B1"),
        booking("b", "10:00-11:00", day="Tue", booth="B1"),
        booking("c", "09:00-10:00", day="Wed", booth="B3"),
    ]
    flt = CompatibilityFilter(day="Mon", time_range=rng("16:00-17:00"))
    res = find_compatibility(flt, [], booths, bookings, {})
    assert [b.booth_id for b in res.booths] == ["B2", "B3", "B1"]
