from __future__ import annotations

from pathlib import Path

import pandas as pd

from csv_parse_helpers import parse_bool, parse_date, split_pipe
from interval_math import parse_hhmm
from models import DAYS

# data definitions
PERSONS_COLUMNS = [
    "person_id",
    "full_name",
    "role",
    "slack_user_id",
    "subjects",
    "subject_types",
    "preferred_teacher_ids",
]

BOOTHS_COLUMNS = ["booth_id", "name", "branch_id", "active"]

AVAILABILITY_COLUMNS = [
    "slot_id",
    "person_id",
    "scope",
    "status",
    "day",
    "date",
    "full_day",
    "start_time",
    "end_time",
    "reason",
    "notes",
]

BOOKINGS_COLUMNS = [
    "booking_id",
    "day",
    "date",
    "start_time",
    "end_time",
    "teacher_id",
    "booth_id",
    "student_ids",
    "series_id",
    "branch_id",
    "subject_id",
    "class_type_id",
    "notes",
    "status",
    "is_cancelled",
]

HOLIDAYS_COLUMNS = [
    "holiday_id",
    "name",
    "start_date",
    "end_date",
    "is_recurring",
    "branch_id",
    "notes",
]

SERIES_COLUMNS = [
    "series_id",
    "branch_id",
    "teacher_id",
    "student_id",
    "subject_id",
    "class_type_id",
    "booth_id",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "duration",
    "days_of_week",
    "status",
    "last_generated_through",
    "notes",
]

ALLOWED_ROLES = {"TEACHER", "STUDENT"}
ALLOWED_SCOPES = {"REGULAR", "EXCEPTION", "ABSENCE"}
ALLOWED_SLOT_STATUS = {"PENDING", "APPROVED", "REJECTED"}
ALLOWED_BOOKING_STATUS = {"CONFIRMED", "CONFLICTED"}
ALLOWED_SERIES_STATUS = {"ACTIVE", "PAUSED", "ENDED"}
ALLOWED_BOOLS = {"", "0", "1", "true", "false", "yes", "no", "y", "n"}


def fail(msg: str) -> None:
    raise ValueError(msg)


def read_csv_or_fail(path: Path) -> pd.DataFrame:
    if not path.exists():
        fail(f"File not found: {path}")
    try:
        return pd.read_csv(path, dtype=str).fillna("")
    except Exception as e:
        fail(f"Could not read CSV '{path}': {e}")


def require_columns(df: pd.DataFrame, required: list[str], name: str) -> None:
    missing = [c for c in required if c not in df.columns]
    extra = [c for c in df.columns if c not in required]
    if missing:
        fail(f"{name}: missing required columns: {missing}")
    if extra:
        fail(f"{name}: unexpected extra columns: {extra}")


# blank or duplicate ids
def require_unique_nonempty(df: pd.DataFrame, col: str, name: str) -> None:
    if (df[col].str.strip() == "").any():
        bad = df.index[df[col].str.strip() == ""].tolist()[:10]
        fail(f"{name}: '{col}' contains blank values: {bad}")

    dupes = df[col][df[col].duplicated()].unique().tolist()
    if dupes:
        fail(f"{name}: '{col}' has duplicate values: {dupes}")


def require_allowed(
    df: pd.DataFrame, col: str, allowed: set[str], name: str, allow_blank: bool = False
) -> None:
    ok = set(allowed) | ({""} if allow_blank else set())
    bad = df.loc[~df[col].str.strip().isin(ok), col].unique().tolist()
    if bad:
        fail(f"{name}: invalid {col} values: {bad} (allowed: {sorted(allowed)})")


def _is_time(x: str) -> bool:
    try:
        parse_hhmm(x)
        return True
    except ValueError:
        return False


def _is_date(x: str) -> bool:
    try:
        parse_date(x)
        return True
    except (ValueError, TypeError):
        return False


def _is_int(x: str) -> bool:
    try:
        int(x)
        return True
    except ValueError:
        return False


def require_times(df: pd.DataFrame, cols: list[str], name: str, allow_blank: bool = False) -> None:
    for col in cols:
        vals = df[col].str.strip()
        mask = ~vals.apply(_is_time).astype(bool)
        if allow_blank:
            mask &= vals != ""
        bad = df.loc[mask, col].unique().tolist()
        if bad:
            fail(f"{name}: {col} must be HH:MM. Bad values: {bad}")


def require_dates(df: pd.DataFrame, cols: list[str], name: str, allow_blank: bool = False) -> None:
    for col in cols:
        vals = df[col].str.strip()
        mask = ~vals.apply(_is_date).astype(bool)
        if allow_blank:
            mask &= vals != ""
        bad = df.loc[mask, col].unique().tolist()
        if bad:
            fail(f"{name}: {col} must be YYYY-MM-DD. Bad values: {bad}")


def require_refs(
    df: pd.DataFrame, col: str, known: set[str], name: str, target: str, multi: bool = False
) -> None:
    if multi:
        refs = {x for s in df[col].tolist() for x in split_pipe(s)}
    else:
        refs = {x.strip() for x in df[col].tolist() if x.strip()}
    bad = sorted(refs - known)
    if bad:
        fail(f"{name}: {col} references unknown {target}(s): {bad}")


def validate_persons(df: pd.DataFrame) -> None:
    require_columns(df, PERSONS_COLUMNS, "persons")
    require_unique_nonempty(df, "person_id", "persons")
    require_allowed(df, "role", ALLOWED_ROLES, "persons")

    teacher_ids = set(df.loc[df["role"] == "TEACHER", "person_id"].tolist())
    require_refs(df, "preferred_teacher_ids", teacher_ids, "persons", "teacher", multi=True)


def validate_booths(df: pd.DataFrame) -> None:
    require_columns(df, BOOTHS_COLUMNS, "booths")
    require_unique_nonempty(df, "booth_id", "booths")
    require_allowed(df, "active", ALLOWED_BOOLS, "booths")


def validate_availability(df: pd.DataFrame, persons_df: pd.DataFrame) -> None:
    require_columns(df, AVAILABILITY_COLUMNS, "availability")
    require_unique_nonempty(df, "slot_id", "availability")
    require_allowed(df, "scope", ALLOWED_SCOPES, "availability")
    require_allowed(df, "status", ALLOWED_SLOT_STATUS, "availability")
    require_allowed(df, "full_day", ALLOWED_BOOLS, "availability")
    require_times(df, ["start_time", "end_time"], "availability", allow_blank=True)
    require_dates(df, ["date"], "availability", allow_blank=True)

    # REGULAR rows carry a weekday, the dated scopes carry a date
    regular = df["scope"] == "REGULAR"
    bad_regular = df.index[regular & ~df["day"].isin(DAYS)].tolist()
    if bad_regular:
        fail(f"availability: REGULAR rows need a day in {list(DAYS)} (bad row idx): {bad_regular[:10]}")
    bad_dated = df.index[~regular & (df["date"].str.strip() == "")].tolist()
    if bad_dated:
        fail(f"availability: EXCEPTION/ABSENCE rows need a date (bad row idx): {bad_dated[:10]}")

    half = (df["start_time"].str.strip() == "") != (df["end_time"].str.strip() == "")
    if half.any():
        fail(f"availability: start_time and end_time must both be set or both blank (bad row idx): {df.index[half].tolist()[:10]}")

    full_with_times = df["full_day"].apply(parse_bool).astype(bool) & (df["start_time"].str.strip() != "")
    if full_with_times.any():
        fail(f"availability: full_day rows cannot carry times (bad row idx): {df.index[full_with_times].tolist()[:10]}")

    require_refs(df, "person_id", set(persons_df["person_id"].tolist()), "availability", "person_id")


def validate_series(df: pd.DataFrame, persons_df: pd.DataFrame, booths_df: pd.DataFrame) -> None:
    require_columns(df, SERIES_COLUMNS, "series")
    require_unique_nonempty(df, "series_id", "series")
    require_allowed(df, "status", ALLOWED_SERIES_STATUS, "series")
    require_times(df, ["start_time", "end_time"], "series")
    require_dates(df, ["start_date"], "series")
    require_dates(df, ["end_date", "last_generated_through"], "series", allow_blank=True)

    def bad_days(s: str) -> bool:
        vals = split_pipe(s)
        return not vals or any(not _is_int(v) or not 0 <= int(v) <= 6 for v in vals)

    bad = df.loc[df["days_of_week"].apply(bad_days).astype(bool), "days_of_week"].unique().tolist()
    if bad:
        fail(f"series: days_of_week must be pipe separated ints 0..6 (0=Sunday). Bad values: {bad}")

    bad_dur = df.loc[(df["duration"].str.strip() != "") & ~df["duration"].apply(_is_int).astype(bool), "duration"]
    if not bad_dur.empty:
        fail(f"series: duration must be int. Bad values: {bad_dur.unique().tolist()}")

    person_ids = set(persons_df["person_id"].tolist())
    require_refs(df, "teacher_id", person_ids, "series", "person_id")
    require_refs(df, "student_id", person_ids, "series", "person_id")
    require_refs(df, "booth_id", set(booths_df["booth_id"].tolist()), "series", "booth_id")


def validate_bookings(
    df: pd.DataFrame,
    persons_df: pd.DataFrame,
    booths_df: pd.DataFrame,
    series_df: pd.DataFrame,
) -> None:
    require_columns(df, BOOKINGS_COLUMNS, "bookings")
    require_unique_nonempty(df, "booking_id", "bookings")
    require_allowed(df, "day", set(DAYS), "bookings")
    require_allowed(df, "status", ALLOWED_BOOKING_STATUS, "bookings", allow_blank=True)
    require_allowed(df, "is_cancelled", ALLOWED_BOOLS, "bookings")
    require_times(df, ["start_time", "end_time"], "bookings")
    require_dates(df, ["date"], "bookings", allow_blank=True)

    # a dated row must fall on its own weekday
    def day_mismatch(row) -> bool:
        d = row["date"].strip()
        return bool(d) and _is_date(d) and DAYS[parse_date(d).weekday()] != row["day"]

    mismatched = df.index[df.apply(day_mismatch, axis=1)].tolist() if len(df) else []
    if mismatched:
        fail(f"bookings: day does not match date (bad row idx): {mismatched[:10]}")

    person_ids = set(persons_df["person_id"].tolist())
    require_refs(df, "teacher_id", person_ids, "bookings", "person_id")
    require_refs(df, "student_ids", person_ids, "bookings", "person_id", multi=True)
    require_refs(df, "booth_id", set(booths_df["booth_id"].tolist()), "bookings", "booth_id")
    require_refs(df, "series_id", set(series_df["series_id"].tolist()), "bookings", "series_id")


def validate_holidays(df: pd.DataFrame) -> None:
    require_columns(df, HOLIDAYS_COLUMNS, "holidays")
    require_unique_nonempty(df, "holiday_id", "holidays")
    require_allowed(df, "is_recurring", ALLOWED_BOOLS, "holidays")
    require_dates(df, ["start_date", "end_date"], "holidays")

    start = pd.to_datetime(df["start_date"], format="%Y-%m-%d")
    end = pd.to_datetime(df["end_date"], format="%Y-%m-%d")
    if not (end >= start).all():
        bad = df.index[~(end >= start)].tolist()
        fail(f"holidays: end_date must not be before start_date (bad row idx): {bad[:10]}")
