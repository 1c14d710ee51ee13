"""SQLite database layer for records, profiles, and aggregation run tracking."""

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from jobstream.core.errors import ProfileNotFoundError
from jobstream.core.schemas import Record, SourceFailure
from jobstream.profile.schema import Profile

_RECORDS_TABLE = """
CREATE TABLE IF NOT EXISTS records (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    company     TEXT NOT NULL DEFAULT '',
    location    TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    url         TEXT NOT NULL DEFAULT '',
    source      TEXT NOT NULL,
    posted_at   TEXT,
    salary      TEXT NOT NULL DEFAULT '',
    job_type    TEXT NOT NULL DEFAULT '',
    email       TEXT NOT NULL DEFAULT '',
    score       INTEGER NOT NULL DEFAULT 0,
    has_flags   INTEGER NOT NULL DEFAULT 0,
    flags       TEXT NOT NULL DEFAULT '[]',
    applied     INTEGER NOT NULL DEFAULT 0,
    applied_at  TEXT,
    first_seen  TEXT NOT NULL
);
"""

_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS profiles (
    id    TEXT PRIMARY KEY,
    name  TEXT NOT NULL DEFAULT '',
    data  TEXT NOT NULL
);
"""

_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS aggregation_runs (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    mode           TEXT NOT NULL,
    profile_id     TEXT NOT NULL DEFAULT '',
    sources        INTEGER NOT NULL,
    raw_count      INTEGER NOT NULL,
    kept_count     INTEGER NOT NULL,
    failures_json  TEXT NOT NULL,
    started_at     TEXT NOT NULL,
    finished_at    TEXT NOT NULL
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_RECORDS_TABLE)
    conn.execute(_PROFILES_TABLE)
    conn.execute(_RUNS_TABLE)
    conn.commit()
    return conn


def upsert_record(conn: sqlite3.Connection, record: Record) -> bool:
    """Insert or refresh a record keyed by id.

    Idempotent: re-upserting the same record leaves one row. Applied state is
    kept from the stored row, so a fresh scrape never un-applies a job.

    Returns True if a new row was inserted, False if an existing row was updated.
    """
    exists = conn.execute("SELECT 1 FROM records WHERE id = ?", (record.id,)).fetchone()
    conn.execute(
        """
        INSERT INTO records
            (id, title, company, location, description, url, source, posted_at,
             salary, job_type, email, score, has_flags, flags, applied, applied_at,
             first_seen)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            title = excluded.title,
            company = excluded.company,
            location = excluded.location,
            description = excluded.description,
            url = excluded.url,
            posted_at = excluded.posted_at,
            salary = excluded.salary,
            job_type = excluded.job_type,
            email = excluded.email,
            score = excluded.score,
            has_flags = excluded.has_flags,
            flags = excluded.flags,
            applied = MAX(records.applied, excluded.applied),
            applied_at = COALESCE(records.applied_at, excluded.applied_at)
        """,
        (
            record.id,
            record.title,
            record.company,
            record.location,
            record.description,
            record.url,
            record.source,
            _iso(record.posted_at),
            record.salary,
            record.job_type,
            record.email,
            record.score,
            int(record.has_flags),
            json.dumps(list(record.flags)),
            int(record.applied),
            _iso(record.applied_at),
            datetime.now().isoformat(),
        ),
    )
    conn.commit()
    return exists is None


def upsert_records(conn: sqlite3.Connection, records: Iterable[Record]) -> int:
    """Upsert many records. Returns the number of newly inserted rows."""
    return sum(1 for r in records if upsert_record(conn, r))


def get_record(conn: sqlite3.Connection, record_id: str) -> Record | None:
    row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
    return _row_to_record(row) if row is not None else None


def all_records(conn: sqlite3.Connection) -> list[Record]:
    """Return every stored record, highest score first."""
    rows = conn.execute("SELECT * FROM records ORDER BY score DESC, id").fetchall()
    return [_row_to_record(r) for r in rows]


def mark_applied(
    conn: sqlite3.Connection,
    record_id: str,
    when: datetime | None = None,
) -> bool:
    """Flag a record as applied. Returns False if no such record exists."""
    cursor = conn.execute(
        "UPDATE records SET applied = 1, applied_at = ? WHERE id = ?",
        ((when or datetime.now()).isoformat(), record_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def save_profile(conn: sqlite3.Connection, profile: Profile) -> None:
    """Insert or replace a profile by id."""
    conn.execute(
        """
        INSERT INTO profiles (id, name, data) VALUES (?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET name = excluded.name, data = excluded.data
        """,
        (profile.id, profile.name, profile.model_dump_json()),
    )
    conn.commit()


def get_profile(conn: sqlite3.Connection, profile_id: str) -> Profile:
    """Load a profile by id (case-insensitive).

    Raises:
        ProfileNotFoundError: If no profile has that id.
    """
    row = conn.execute(
        "SELECT data FROM profiles WHERE id = ?", (profile_id.strip().lower(),),
    ).fetchone()
    if row is None:
        msg = f"Profile not found: {profile_id}"
        raise ProfileNotFoundError(msg)
    return Profile.model_validate_json(row["data"])


def list_profiles(conn: sqlite3.Connection) -> list[Profile]:
    rows = conn.execute("SELECT data FROM profiles ORDER BY name, id").fetchall()
    return [Profile.model_validate_json(r["data"]) for r in rows]


def delete_profile(conn: sqlite3.Connection, profile_id: str) -> bool:
    cursor = conn.execute("DELETE FROM profiles WHERE id = ?", (profile_id.strip().lower(),))
    conn.commit()
    return cursor.rowcount > 0


def insert_run(
    conn: sqlite3.Connection,
    mode: str,
    profile_id: str,
    sources: int,
    raw_count: int,
    kept_count: int,
    failures: list[SourceFailure],
    started_at: datetime,
    finished_at: datetime,
) -> int:
    """Record a completed aggregation run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO aggregation_runs
            (mode, profile_id, sources, raw_count, kept_count, failures_json,
             started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            mode,
            profile_id,
            sources,
            raw_count,
            kept_count,
            json.dumps([f.model_dump() for f in failures]),
            started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        id=row["id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        description=row["description"],
        url=row["url"],
        source=row["source"],
        posted_at=row["posted_at"],
        salary=row["salary"],
        job_type=row["job_type"],
        email=row["email"],
        score=row["score"],
        has_flags=bool(row["has_flags"]),
        flags=tuple(json.loads(row["flags"])),
        applied=bool(row["applied"]),
        applied_at=row["applied_at"],
    )
