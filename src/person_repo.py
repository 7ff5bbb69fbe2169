# src/person_repo.py
from __future__ import annotations

import sqlite3
from collections import defaultdict

from csv_parse_helpers import join_pipe, split_pipe
from models import Booth, Person


def insert_person(con: sqlite3.Connection, p: Person) -> None:
    """IMPORTANT: does NOT commit. Caller decides."""
    con.execute(
        """
        INSERT INTO persons (person_id, full_name, role, slack_user_id, preferred_teacher_ids)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            p.person_id,
            p.full_name,
            p.role,
            p.slack_user_id,
            join_pipe(sorted(p.preferred_teacher_ids)),
        ),
    )
    rows = [(p.person_id, "SUBJECT", s) for s in sorted(p.subject_ids)]
    rows += [(p.person_id, "SUBJECT_TYPE", t) for t in sorted(p.subject_type_ids)]
    con.executemany(
        "INSERT INTO person_subjects (person_id, kind, code) VALUES (?, ?, ?)",
        rows,
    )


def list_persons(con: sqlite3.Connection) -> list[Person]:
    subjects: dict[str, set[str]] = defaultdict(set)
    types: dict[str, set[str]] = defaultdict(set)
    for r in con.execute("SELECT * FROM person_subjects").fetchall():
        target = subjects if r["kind"] == "SUBJECT" else types
        target[r["person_id"]].add(r["code"])

    rows = con.execute("SELECT * FROM persons ORDER BY person_id").fetchall()
    return [
        Person(
            person_id=r["person_id"],
            full_name=r["full_name"],
            role=r["role"],
            subject_ids=frozenset(subjects.get(r["person_id"], set())),
            subject_type_ids=frozenset(types.get(r["person_id"], set())),
            preferred_teacher_ids=frozenset(split_pipe(r["preferred_teacher_ids"])),
            slack_user_id=r["slack_user_id"],
        )
        for r in rows
    ]


def insert_booth(con: sqlite3.Connection, b: Booth) -> None:
    """IMPORTANT: does NOT commit. Caller decides."""
    con.execute(
        "INSERT INTO booths (booth_id, name, branch_id, active) VALUES (?, ?, ?, ?)",
        (b.booth_id, b.name, b.branch_id, int(b.active)),
    )


def list_booths(con: sqlite3.Connection) -> list[Booth]:
    rows = con.execute("SELECT * FROM booths ORDER BY booth_id").fetchall()
    return [
        Booth(
            booth_id=r["booth_id"],
            name=r["name"],
            branch_id=r["branch_id"],
            active=bool(r["active"]),
        )
        for r in rows
    ]
