"""SQLite database layer for rallywatch.

Handles schema creation, CRUD operations, and connection management.
All queries use parameterized statements to prevent SQL injection.
Timestamps are stored as ISO-8601 UTC strings so that lexical order
matches chronological order.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

import orjson

from rallywatch.models import (
    DB_FILENAME,
    Candidate,
    Coordinate,
    District,
    Rally,
    TrafficPrediction,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS candidates (
    id    INTEGER PRIMARY KEY,
    name  TEXT    NOT NULL,
    party TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS districts (
    id     INTEGER PRIMARY KEY,
    name   TEXT    NOT NULL,
    region TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS rallies (
    id           INTEGER PRIMARY KEY,
    title        TEXT    NOT NULL,
    candidate_id INTEGER REFERENCES candidates(id),
    district_id  INTEGER REFERENCES districts(id),
    venue_name   TEXT    NOT NULL,
    description  TEXT,
    start_time   TEXT    NOT NULL,
    end_time     TEXT    NOT NULL,
    latitude     REAL    NOT NULL,
    longitude    REAL    NOT NULL,
    source_url   TEXT,
    UNIQUE(title, start_time)
);

CREATE TABLE IF NOT EXISTS traffic_predictions (
    id                      INTEGER PRIMARY KEY,
    rally_id                INTEGER NOT NULL UNIQUE REFERENCES rallies(id),
    predicted_delay_minutes INTEGER NOT NULL,
    jam_level               TEXT    NOT NULL
        CHECK (jam_level IN ('low', 'moderate', 'heavy', 'critical')),
    description             TEXT,
    affected_roads          TEXT    NOT NULL DEFAULT '[]',
    created_at              TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_candidates_name
    ON candidates(name);
CREATE INDEX IF NOT EXISTS idx_districts_name
    ON districts(name);
CREATE INDEX IF NOT EXISTS idx_rallies_start
    ON rallies(start_time);
"""


def to_timestamp(value: datetime) -> str:
    """Render *value* as the stored UTC timestamp form.

    Args:
        value: A timezone-aware datetime.

    Returns:
        e.g. "2026-01-12T12:00:00+00:00".
    """
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def open_db(path: str = DB_FILENAME) -> sqlite3.Connection:
    """Open (or create) the SQLite database with recommended pragmas.

    Args:
        path: Filesystem path to the database file.

    Returns:
        An open sqlite3.Connection with WAL mode and foreign keys enabled.
    """
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they do not exist.

    Args:
        conn: An open database connection.
    """
    conn.executescript(SCHEMA_SQL)
    conn.commit()


# ── Candidates and districts ───────────────────────────────────────────────


def find_candidate_id(conn: sqlite3.Connection, name: str) -> int | None:
    """Return the id of the candidate named *name*, if any.

    Duplicate names resolve to the oldest row.
    """
    row = conn.execute(
        "SELECT id FROM candidates WHERE name = ? ORDER BY id LIMIT 1",
        (name,),
    ).fetchone()
    return None if row is None else int(row[0])


def insert_candidate(conn: sqlite3.Connection, candidate: Candidate) -> int:
    """Insert a candidate and return its new id.

    Args:
        conn: Database connection.
        candidate: Candidate to insert.

    Returns:
        The new candidate id.
    """
    cursor = conn.execute(
        "INSERT INTO candidates (name, party) VALUES (?, ?) RETURNING id",
        (candidate.name, candidate.party),
    )
    candidate_id: int = cursor.fetchone()[0]
    candidate.candidate_id = candidate_id
    return candidate_id


def find_district_id(conn: sqlite3.Connection, name: str) -> int | None:
    """Return the id of the district named *name*, if any.

    Duplicate names resolve to the oldest row.
    """
    row = conn.execute(
        "SELECT id FROM districts WHERE name = ? ORDER BY id LIMIT 1",
        (name,),
    ).fetchone()
    return None if row is None else int(row[0])


def insert_district(conn: sqlite3.Connection, district: District) -> int:
    """Insert a district and return its new id.

    Args:
        conn: Database connection.
        district: District to insert.

    Returns:
        The new district id.
    """
    cursor = conn.execute(
        "INSERT INTO districts (name, region) VALUES (?, ?) RETURNING id",
        (district.name, district.region),
    )
    district_id: int = cursor.fetchone()[0]
    district.district_id = district_id
    return district_id


# ── Rallies ────────────────────────────────────────────────────────────────


def upsert_rally(conn: sqlite3.Connection, rally: Rally) -> int:
    """Insert a rally, or overwrite the one with the same title and start.

    Args:
        conn: Database connection.
        rally: Rally to write.

    Returns:
        The rally id (new or existing).
    """
    cursor = conn.execute(
        """\
        INSERT INTO rallies
            (title, candidate_id, district_id, venue_name, description,
             start_time, end_time, latitude, longitude, source_url)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(title, start_time) DO UPDATE SET
            candidate_id = excluded.candidate_id,
            district_id  = excluded.district_id,
            venue_name   = excluded.venue_name,
            description  = excluded.description,
            end_time     = excluded.end_time,
            latitude     = excluded.latitude,
            longitude    = excluded.longitude,
            source_url   = excluded.source_url
        RETURNING id
        """,
        (
            rally.title,
            rally.candidate_id,
            rally.district_id,
            rally.venue_name,
            rally.description,
            to_timestamp(rally.start_time),
            to_timestamp(rally.end_time),
            rally.location.lat,
            rally.location.lon,
            rally.source_url,
        ),
    )
    rally_id: int = cursor.fetchone()[0]
    rally.rally_id = rally_id
    return rally_id


def _row_to_rally(row: sqlite3.Row) -> Rally:
    return Rally(
        title=row["title"],
        candidate_id=row["candidate_id"],
        district_id=row["district_id"],
        venue_name=row["venue_name"],
        description=row["description"] or "",
        start_time=datetime.fromisoformat(row["start_time"]),
        end_time=datetime.fromisoformat(row["end_time"]),
        location=Coordinate(lat=row["latitude"], lon=row["longitude"]),
        source_url=row["source_url"] or "",
        rally_id=row["id"],
    )


def get_rallies_between(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
) -> list[Rally]:
    """Return rallies starting within ``[start, end]``, earliest first.

    Args:
        conn: Database connection.
        start: Inclusive lower bound.
        end: Inclusive upper bound.

    Returns:
        Matching rallies.
    """
    rows = conn.execute(
        """\
        SELECT * FROM rallies
        WHERE start_time >= ? AND start_time <= ?
        ORDER BY start_time, id
        """,
        (to_timestamp(start), to_timestamp(end)),
    ).fetchall()
    return [_row_to_rally(row) for row in rows]


# ── Traffic predictions ────────────────────────────────────────────────────


def get_prediction_id(conn: sqlite3.Connection, rally_id: int) -> int | None:
    """Return the id of the prediction for *rally_id*, if one exists."""
    row = conn.execute(
        "SELECT id FROM traffic_predictions WHERE rally_id = ?",
        (rally_id,),
    ).fetchone()
    return None if row is None else int(row[0])


def insert_prediction(
    conn: sqlite3.Connection,
    prediction: TrafficPrediction,
    created_at: datetime | None = None,
) -> bool:
    """Insert a prediction unless the rally already has one.

    Args:
        conn: Database connection.
        prediction: Prediction to insert.
        created_at: Generation time; defaults to now.

    Returns:
        True if a row was written, False if one already existed.
    """
    created = created_at or datetime.now(timezone.utc)
    cursor = conn.execute(
        """\
        INSERT INTO traffic_predictions
            (rally_id, predicted_delay_minutes, jam_level, description,
             affected_roads, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(rally_id) DO NOTHING
        RETURNING id
        """,
        (
            prediction.rally_id,
            prediction.predicted_delay_minutes,
            prediction.jam_level,
            prediction.description,
            orjson.dumps(prediction.affected_roads).decode(),
            to_timestamp(created),
        ),
    )
    row = cursor.fetchone()
    if row is None:
        return False
    prediction.prediction_id = int(row[0])
    return True


def get_prediction(
    conn: sqlite3.Connection,
    rally_id: int,
) -> TrafficPrediction | None:
    """Load the prediction for *rally_id*, if one exists."""
    row = conn.execute(
        "SELECT * FROM traffic_predictions WHERE rally_id = ?",
        (rally_id,),
    ).fetchone()
    if row is None:
        return None
    return TrafficPrediction(
        rally_id=row["rally_id"],
        predicted_delay_minutes=row["predicted_delay_minutes"],
        jam_level=row["jam_level"],
        description=row["description"] or "",
        affected_roads=orjson.loads(row["affected_roads"]),
        prediction_id=row["id"],
    )


def count_rows(conn: sqlite3.Connection) -> dict[str, int]:
    """Return the row count of every collection."""
    return {
        table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        for table in ("candidates", "districts", "rallies", "traffic_predictions")
    }
