from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import pandas as pd

from availability_repo import insert_slot
from booking_repo import insert_booking
from csv_parse_helpers import (
    none_if_blank,
    parse_bool,
    parse_date,
    parse_date_opt,
    parse_int_set_pipe,
    parse_time_range_opt,
    split_pipe,
)
from csv_validator import (
    read_csv_or_fail,
    validate_availability,
    validate_booths,
    validate_bookings,
    validate_holidays,
    validate_persons,
    validate_series,
)
from holiday_repo import insert_holiday
from models import (
    AvailabilitySlot,
    Booth,
    ClassBooking,
    ClassSeries,
    HolidayWindow,
    Person,
)
from person_repo import insert_booth, insert_person
from series_repo import insert_series

logger = logging.getLogger(__name__)

CSV_FILES = {
    "persons": "persons.csv",
    "booths": "booths.csv",
    "availability": "availability.csv",
    "series": "series.csv",
    "bookings": "bookings.csv",
    "holidays": "holidays.csv",
}


def load_validated_frames(assets_dir: Path) -> dict[str, pd.DataFrame]:
    frames = {name: read_csv_or_fail(assets_dir / fname) for name, fname in CSV_FILES.items()}

    validate_persons(frames["persons"])
    validate_booths(frames["booths"])
    validate_availability(frames["availability"], frames["persons"])
    validate_series(frames["series"], frames["persons"], frames["booths"])
    validate_bookings(frames["bookings"], frames["persons"], frames["booths"], frames["series"])
    validate_holidays(frames["holidays"])

    return frames


def persons_from_df(df: pd.DataFrame) -> dict[str, Person]:
    out: dict[str, Person] = {}
    for _, row in df.iterrows():
        person_id = row["person_id"].strip()
        out[person_id] = Person(
            person_id=person_id,
            full_name=row["full_name"].strip(),
            role=row["role"].strip(),  # validator enforces allowed values
            subject_ids=frozenset(split_pipe(row["subjects"])),
            subject_type_ids=frozenset(split_pipe(row["subject_types"])),
            preferred_teacher_ids=frozenset(split_pipe(row["preferred_teacher_ids"])),
            slack_user_id=none_if_blank(row["slack_user_id"]),
        )
    return out


def booths_from_df(df: pd.DataFrame) -> dict[str, Booth]:
    out: dict[str, Booth] = {}
    for _, row in df.iterrows():
        booth_id = row["booth_id"].strip()
        out[booth_id] = Booth(
            booth_id=booth_id,
            name=row["name"].strip(),
            branch_id=none_if_blank(row["branch_id"]),
            # blank means active
            active=parse_bool(row["active"]) if row["active"].strip() else True,
        )
    return out


def slots_from_df(df: pd.DataFrame) -> list[AvailabilitySlot]:
    out: list[AvailabilitySlot] = []
    for _, row in df.iterrows():
        scope = row["scope"].strip()
        regular = scope == "REGULAR"
        out.append(
            AvailabilitySlot(
                slot_id=row["slot_id"].strip(),
                person_id=row["person_id"].strip(),
                scope=scope,
                status=row["status"].strip(),
                day=row["day"].strip() if regular else None,
                on_date=None if regular else parse_date(row["date"]),
                full_day=parse_bool(row["full_day"]),
                time_range=parse_time_range_opt(row["start_time"], row["end_time"]),
                reason=none_if_blank(row["reason"]),
                notes=none_if_blank(row["notes"]),
            )
        )
    return out


def series_from_df(df: pd.DataFrame) -> list[ClassSeries]:
    out: list[ClassSeries] = []
    for _, row in df.iterrows():
        out.append(
            ClassSeries(
                series_id=row["series_id"].strip(),
                start_date=parse_date(row["start_date"]),
                time_range=parse_time_range_opt(row["start_time"], row["end_time"]),
                days_of_week=frozenset(parse_int_set_pipe(row["days_of_week"])),
                branch_id=none_if_blank(row["branch_id"]),
                teacher_id=none_if_blank(row["teacher_id"]),
                student_id=none_if_blank(row["student_id"]),
                subject_id=none_if_blank(row["subject_id"]),
                class_type_id=none_if_blank(row["class_type_id"]),
                booth_id=none_if_blank(row["booth_id"]),
                end_date=parse_date_opt(row["end_date"]),
                duration=int(row["duration"]) if row["duration"].strip() else None,
                status=row["status"].strip(),
                last_generated_through=parse_date_opt(row["last_generated_through"]),
                notes=none_if_blank(row["notes"]),
            )
        )
    return out


def bookings_from_df(df: pd.DataFrame) -> list[ClassBooking]:
    out: list[ClassBooking] = []
    for _, row in df.iterrows():
        tr = parse_time_range_opt(row["start_time"], row["end_time"])
        out.append(
            ClassBooking(
                booking_id=row["booking_id"].strip(),
                day=row["day"].strip(),
                time_range=tr,
                on_date=parse_date_opt(row["date"]),
                teacher_id=none_if_blank(row["teacher_id"]),
                booth_id=none_if_blank(row["booth_id"]),
                student_ids=frozenset(split_pipe(row["student_ids"])),
                series_id=none_if_blank(row["series_id"]),
                branch_id=none_if_blank(row["branch_id"]),
                subject_id=none_if_blank(row["subject_id"]),
                class_type_id=none_if_blank(row["class_type_id"]),
                duration=tr.duration_min,
                notes=none_if_blank(row["notes"]),
                status=row["status"].strip() or "CONFIRMED",
                is_cancelled=parse_bool(row["is_cancelled"]),
            )
        )
    return out


def holidays_from_df(df: pd.DataFrame) -> list[HolidayWindow]:
    out: list[HolidayWindow] = []
    for _, row in df.iterrows():
        out.append(
            HolidayWindow(
                holiday_id=row["holiday_id"].strip(),
                name=row["name"].strip(),
                start_date=parse_date(row["start_date"]),
                end_date=parse_date(row["end_date"]),
                is_recurring=parse_bool(row["is_recurring"]),
                branch_id=none_if_blank(row["branch_id"]),
                notes=none_if_blank(row["notes"]),
            )
        )
    return out


def seed_db(con: sqlite3.Connection, assets_dir: Path) -> dict[str, int]:
    """
    Validates every CSV under `assets_dir` and inserts it in one transaction.
    Returns row counts per table.
    """
    frames = load_validated_frames(assets_dir)

    persons = persons_from_df(frames["persons"])
    booths = booths_from_df(frames["booths"])
    slots = slots_from_df(frames["availability"])
    series = series_from_df(frames["series"])
    bookings = bookings_from_df(frames["bookings"])
    holidays = holidays_from_df(frames["holidays"])

    con.execute("BEGIN IMMEDIATE")
    try:
        for p in persons.values():
            insert_person(con, p)
        for b in booths.values():
            insert_booth(con, b)
        for s in slots:
            insert_slot(con, s)
        for s in series:
            insert_series(con, s)
        for b in bookings:
            insert_booking(con, b)
        for h in holidays:
            insert_holiday(con, h)
        con.commit()
    except Exception:
        logger.exception("seed import from %s failed, rolled back", assets_dir)
        con.rollback()
        raise

    counts = {
        "persons": len(persons),
        "booths": len(booths),
        "availability": len(slots),
        "series": len(series),
        "bookings": len(bookings),
        "holidays": len(holidays),
    }
    logger.info("seeded %s", counts)
    return counts


def main() -> None:
    from config import ASSETS_DIR
    from db import get_con, init_db

    logging.basicConfig(level=logging.INFO)
    con = get_con()
    init_db(con)
    counts = seed_db(con, ASSETS_DIR)

    for name, n in counts.items():
        print(f"Loaded {n} {name}")


if __name__ == "__main__":
    main()
