# src/db.py
from __future__ import annotations

import sqlite3
from pathlib import Path

from config import STATE_DB_PATH


def get_con(path: Path | str = STATE_DB_PATH) -> sqlite3.Connection:
    con = sqlite3.connect(path)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


def init_db(con: sqlite3.Connection) -> None:
    """
    Central schema bootstrap.
    Repos/services assume these tables + column names exist.
    Times are stored as minutes since midnight, dates as ISO strings.
    """
    con.executescript(
        """
        CREATE TABLE IF NOT EXISTS persons (
          person_id TEXT PRIMARY KEY,
          full_name TEXT NOT NULL,
          role TEXT NOT NULL,                   -- TEACHER | STUDENT
          slack_user_id TEXT,
          preferred_teacher_ids TEXT NOT NULL DEFAULT ''   -- pipe separated
        );

        -- subjects a teacher teaches / a student studies
        CREATE TABLE IF NOT EXISTS person_subjects (
          person_id TEXT NOT NULL REFERENCES persons(person_id) ON DELETE CASCADE,
          kind TEXT NOT NULL,                   -- SUBJECT | SUBJECT_TYPE
          code TEXT NOT NULL,
          PRIMARY KEY (person_id, kind, code)
        );

        CREATE TABLE IF NOT EXISTS booths (
          booth_id TEXT PRIMARY KEY,
          name TEXT NOT NULL,
          branch_id TEXT,
          active INTEGER NOT NULL DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS availability_slots (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          slot_id TEXT UNIQUE,
          person_id TEXT NOT NULL,
          scope TEXT NOT NULL,                  -- REGULAR | EXCEPTION | ABSENCE
          status TEXT NOT NULL,                 -- PENDING | APPROVED | REJECTED
          day TEXT,                             -- REGULAR only
          on_date TEXT,                         -- EXCEPTION / ABSENCE only
          full_day INTEGER NOT NULL DEFAULT 0,
          start_min INTEGER,                    -- NULL + full_day=0 means unavailable
          end_min INTEGER,
          reason TEXT,
          notes TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_slots_person ON availability_slots(person_id);

        CREATE TABLE IF NOT EXISTS class_series (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          series_id TEXT UNIQUE,
          branch_id TEXT,
          teacher_id TEXT,
          student_id TEXT,
          subject_id TEXT,
          class_type_id TEXT,
          booth_id TEXT,
          start_date TEXT NOT NULL,
          end_date TEXT,
          start_min INTEGER NOT NULL,
          end_min INTEGER NOT NULL,
          duration INTEGER,
          days_of_week TEXT NOT NULL,           -- pipe separated, 0=Sunday
          status TEXT NOT NULL,                 -- ACTIVE | PAUSED | ENDED
          last_generated_through TEXT,
          notes TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_series_branch ON class_series(branch_id);

        CREATE TABLE IF NOT EXISTS bookings (
          booking_id TEXT PRIMARY KEY,
          day TEXT NOT NULL,
          on_date TEXT,                         -- NULL for weekly blueprint rows
          start_min INTEGER NOT NULL,
          end_min INTEGER NOT NULL,
          teacher_id TEXT,
          booth_id TEXT,
          series_id TEXT,
          branch_id TEXT,
          subject_id TEXT,
          class_type_id TEXT,
          duration INTEGER,
          notes TEXT,
          status TEXT NOT NULL DEFAULT 'CONFIRMED',   -- CONFIRMED | CONFLICTED
          is_cancelled INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_bookings_day ON bookings(day);
        CREATE INDEX IF NOT EXISTS idx_bookings_date ON bookings(on_date);
        CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_series_date
          ON bookings(series_id, on_date)
          WHERE series_id IS NOT NULL AND on_date IS NOT NULL;

        CREATE TABLE IF NOT EXISTS booking_students (
          booking_id TEXT NOT NULL REFERENCES bookings(booking_id) ON DELETE CASCADE,
          student_id TEXT NOT NULL,
          PRIMARY KEY (booking_id, student_id)
        );

        CREATE TABLE IF NOT EXISTS holidays (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          holiday_id TEXT UNIQUE,
          name TEXT NOT NULL,
          start_date TEXT NOT NULL,
          end_date TEXT NOT NULL,
          is_recurring INTEGER NOT NULL DEFAULT 0,
          branch_id TEXT,
          notes TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_holidays_branch ON holidays(branch_id);
        """
    )
    con.commit()
