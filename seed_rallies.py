"""Seed the rallywatch database from a CSV of scheduled rallies.

Reads a CSV with ``Date, Candidate, District, Venue`` and an optional
``Time`` column and writes each row through the same resolver and
persister the ingestion pipeline uses. Safe to re-run (uses upsert
semantics).

Usage::

    python seed_rallies.py --csv rallies.csv
    python seed_rallies.py --csv rallies.csv --db rallywatch.db --geocode
"""

from __future__ import annotations

import argparse
import logging

import polars as pl

from rallywatch.config import DB_PATH, TOMTOM_API_KEY
from rallywatch.db import init_schema, open_db
from rallywatch.extract import build_event
from rallywatch.geo import TomTomClient
from rallywatch.models import CandidateEvent
from rallywatch.persist import RallyPersister
from rallywatch.pipeline import save_events
from rallywatch.resolve import EntityResolver

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = ("Date", "Candidate", "District", "Venue")


def _cell(row: dict[str, object], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value).strip()


def read_events(csv_path: str) -> list[CandidateEvent]:
    """Load rally rows from *csv_path* as events.

    Rows with an empty required column are skipped.

    Args:
        csv_path: Path to the CSV file.

    Returns:
        Events in file order.

    Raises:
        ValueError: If a required column is absent from the header.
    """
    df = pl.read_csv(csv_path, infer_schema_length=0)
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"{csv_path} lacks column(s): {', '.join(missing)}")
    logger.info("Loaded %d rows from %s", len(df), csv_path)

    events: list[CandidateEvent] = []
    for idx in range(len(df)):
        row = df.row(idx, named=True)
        values = {col: _cell(row, col) for col in REQUIRED_COLUMNS}
        if not all(values.values()):
            logger.warning("Skipping row %d: missing required value.", idx + 1)
            continue
        events.append(
            build_event(
                date=values["Date"],
                candidate=values["Candidate"],
                district=values["District"],
                venue=values["Venue"],
                time=_cell(row, "Time") or None,
            )
        )
    return events


def seed(csv_path: str, db_path: str, geocode: bool = False) -> tuple[int, int]:
    """Read the CSV and upsert its rallies into the database.

    Args:
        csv_path: Path to the CSV file.
        db_path: Path to the SQLite database file.
        geocode: Look up venue coordinates; otherwise every rally gets
            the default location.

    Returns:
        (saved, skipped) counts.
    """
    events = read_events(csv_path)

    conn = open_db(db_path)
    init_schema(conn)
    try:
        geo = TomTomClient(api_key=TOMTOM_API_KEY if geocode else "")
        saved, skipped = save_events(
            events,
            csv_path,
            EntityResolver(conn),
            RallyPersister(conn, geo),
            conn,
        )
    finally:
        conn.close()

    logger.info("Seeding complete: %d rallies saved, %d skipped.", saved, skipped)
    return saved, skipped


def main() -> None:
    """Parse CLI arguments and run the seeding."""
    parser = argparse.ArgumentParser(
        description="Seed the rallywatch database from a CSV of rallies.",
    )
    parser.add_argument(
        "--csv",
        type=str,
        required=True,
        help="Path to the rallies CSV",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--geocode",
        action="store_true",
        help="Geocode venues with TomTom (requires TOMTOM_API_KEY)",
    )
    args = parser.parse_args()
    seed(args.csv, args.db, geocode=args.geocode)


if __name__ == "__main__":
    main()
