from __future__ import annotations

from datetime import date

import pytest

from availability_repo import get_slot
from booking_repo import get_booking
from csv_loader import CSV_FILES, load_validated_frames, seed_db
from holiday_repo import get_holiday
from person_repo import list_booths, list_persons
from series_repo import get_series

FILES = {
    "persons.csv": """person_id,full_name,role,slack_user_id,subjects,subject_types,preferred_teacher_ids
T1,Aoki Ren,TEACHER,U01,MATH|ENG,EXAM,
T2,Baba Mio,TEACHER,,MATH,,
S1,Doi Sora,STUDENT,,MATH,,T1
""",
    "booths.csv": """booth_id,name,branch_id,active
B1,Booth 1,SHIBUYA,
B2,Booth 2,SHIBUYA,false
""",
    "availability.csv": """slot_id,person_id,scope,status,day,date,full_day,start_time,end_time,reason,notes
AV1,T1,REGULAR,APPROVED,Mon,,,15:00,21:00,,
AV2,T1,EXCEPTION,APPROVED,,2025-01-13,,22:00,02:00,late shift,
AV3,S1,REGULAR,PENDING,Mon,,true,,,,
""",
    "series.csv": """series_id,branch_id,teacher_id,student_id,subject_id,class_type_id,booth_id,start_date,end_date,start_time,end_time,duration,days_of_week,status,last_generated_through,notes
SR1,SHIBUYA,T1,S1,MATH,,B1,2025-01-06,2025-03-31,16:00,17:00,60,1|3,ACTIVE,2025-01-13,
""",
    "bookings.csv": """booking_id,day,date,start_time,end_time,teacher_id,booth_id,student_ids,series_id,branch_id,subject_id,class_type_id,notes,status,is_cancelled
K1,Mon,2025-01-13,16:00,17:00,T1,B1,S1,SR1,SHIBUYA,MATH,,,,
K2,Tue,,18:00,19:30,T2,B2,S1,,SHIBUYA,MATH,,weekly,CONFIRMED,0
""",
    "holidays.csv": """holiday_id,name,start_date,end_date,is_recurring,branch_id,notes
H1,New Year,2024-12-29,2025-01-03,true,,
""",
}


def write_assets(root, overrides=None):
    files = dict(FILES)
    files.update(overrides or {})
    for name, body in files.items():
        if body is not None:
            (root / name).write_text(body, encoding="utf-8")
    return root


def test_every_csv_is_listed():
    assert set(CSV_FILES.values()) == set(FILES)


def test_seed_db_loads_everything(con, tmp_path):
    counts = seed_db(con, write_assets(tmp_path))

    assert counts == {
        "persons": 3,
        "booths": 2,
        "availability": 3,
        "series": 1,
        "bookings": 2,
        "holidays": 1,
    }

    people = {p.person_id: p for p in list_persons(con)}
    assert people["T1"].subject_ids == frozenset({"MATH", "ENG"})
    assert people["T1"].subject_type_ids == frozenset({"EXAM"})
    assert people["S1"].preferred_teacher_ids == frozenset({"T1"})
    assert people["T1"].slack_user_id == "U01"

    booths = {b.booth_id: b for b in list_booths(con)}
    assert booths["B1"].active
    assert not booths["B2"].active

    late = get_slot(con, "AV2")
    assert late.on_date == date(2025, 1, 13)
    assert late.time_range.crosses_midnight
    assert get_slot(con, "AV3").full_day

    s = get_series(con, "SR1")
    assert s.days_of_week == frozenset({1, 3})
    assert s.last_generated_through == date(2025, 1, 13)

    k1 = get_booking(con, "K1")
    assert k1.status == "CONFIRMED"
    assert k1.student_ids == frozenset({"S1"})
    assert k1.duration == 60
    assert get_booking(con, "K2").on_date is None
    assert get_booking(con, "K2").duration == 90

    assert get_holiday(con, "H1").is_recurring


def test_missing_file(tmp_path):
    write_assets(tmp_path, {"holidays.csv": None})
    with pytest.raises(ValueError, match="File not found"):
        load_validated_frames(tmp_path)


@pytest.mark.parametrize(
    "name, body, message",
    [
        (
            "persons.csv",
            "person_id,full_name,role,slack_user_id,subjects,subject_types\nT1,A,TEACHER,,,\n",
            "missing required columns",
        ),
        (
            "persons.csv",
            "person_id,full_name,role,slack_user_id,subjects,subject_types,preferred_teacher_ids\n"
            "T1,A,TEACHER,,,,\nT1,B,STUDENT,,,,\n",
            "duplicate values",
        ),
        (
            "persons.csv",
            "person_id,full_name,role,slack_user_id,subjects,subject_types,preferred_teacher_ids\n"
            "T1,A,ADMIN,,,,\n",
            "invalid role",
        ),
        (
            "availability.csv",
            "slot_id,person_id,scope,status,day,date,full_day,start_time,end_time,reason,notes\n"
            "AV1,T1,REGULAR,APPROVED,Mon,,,15:00,,,\n",
            "both be set or both blank",
        ),
        (
            "availability.csv",
            "slot_id,person_id,scope,status,day,date,full_day,start_time,end_time,reason,notes\n"
            "AV1,T1,EXCEPTION,APPROVED,,,,15:00,16:00,,\n",
            "need a date",
        ),
        (
            "availability.csv",
            "slot_id,person_id,scope,status,day,date,full_day,start_time,end_time,reason,notes\n"
            "AV1,T9,REGULAR,APPROVED,Mon,,,15:00,16:00,,\n",
            "unknown person_id",
        ),
        (
            "bookings.csv",
            "booking_id,day,date,start_time,end_time,teacher_id,booth_id,student_ids,series_id,"
            "branch_id,subject_id,class_type_id,notes,status,is_cancelled\n"
            "K1,Tue,2025-01-13,16:00,17:00,T1,B1,S1,,,,,,,\n",
            "day does not match date",
        ),
        (
            "bookings.csv",
            "booking_id,day,date,start_time,end_time,teacher_id,booth_id,student_ids,series_id,"
            "branch_id,subject_id,class_type_id,notes,status,is_cancelled\n"
            "K1,Mon,,25:00,17:00,T1,B1,S1,,,,,,,\n",
            "must be HH:MM",
        ),
        (
            "series.csv",
            "series_id,branch_id,teacher_id,student_id,subject_id,class_type_id,booth_id,start_date,"
            "end_date,start_time,end_time,duration,days_of_week,status,last_generated_through,notes\n"
            "SR1,,T1,S1,,,B1,2025-01-06,,16:00,17:00,,7,ACTIVE,,\n",
            "days_of_week",
        ),
        (
            "holidays.csv",
            "holiday_id,name,start_date,end_date,is_recurring,branch_id,notes\n"
            "H1,Oops,2025-02-10,2025-02-01,,,\n",
            "end_date must not be before start_date",
        ),
    ],
)
def test_validation_failures(tmp_path, name, body, message):
    write_assets(tmp_path, {name: body})
    with pytest.raises(ValueError, match=message):
        load_validated_frames(tmp_path)


def test_second_seed_rolls_back_whole_import(con, tmp_path):
    write_assets(tmp_path)
    seed_db(con, tmp_path)

    # every person id already exists, so the second import aborts on the first insert
    with pytest.raises(Exception):
        seed_db(con, tmp_path)

    assert len(list_persons(con)) == 3
    assert get_series(con, "SR1") is not None
