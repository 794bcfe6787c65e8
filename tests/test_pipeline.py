"""Tests for rallywatch.pipeline ingestion and prediction runs."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from rallywatch.cache import load_cache
from rallywatch.db import init_schema
from rallywatch.documents import DocumentFetcher
from rallywatch.errors import FetchError, ParseError
from rallywatch.extract import extract_events
from rallywatch.geo import GeocodeResult, TomTomClient
from rallywatch.models import Coordinate
from rallywatch.persist import RallyPersister
from rallywatch.pipeline import (
    ingest_schedule,
    run_ingestion,
    run_predictions,
    run_update_check,
    save_events,
)
from rallywatch.resolve import EntityResolver
from rallywatch.updates import SocialUpdate, UpdateChecker

DOC_A = "https://www.ec.or.ug/docs/a-campaign.pdf"
DOC_B = "https://www.ec.or.ug/docs/b-campaign.pdf"

SCHEDULE_TEXT = """
PRESIDENTIAL ELECTIONS 2026 CAMPAIGN PROGRAMME
Date: 12/01/2026
Candidate: John Doe
District: Kampala
Venue: Kololo Airstrip
Time: 10:00 AM
Date: 13/01/2026
Candidate: Jane Roe
District: Gulu
Date: 14/01/2026
Candidate: Jane Roe
District: Gulu
Venue: Pece Stadium
"""


@pytest.fixture()
def db() -> sqlite3.Connection:
    """Create an in-memory database with schema."""
    conn = sqlite3.connect(":memory:")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    init_schema(conn)
    return conn


@pytest.fixture()
def geo() -> MagicMock:
    """A geo client that resolves every venue to one point."""
    client = MagicMock(spec=TomTomClient)
    client.geocode.return_value = GeocodeResult(Coordinate(0.33, 32.59))
    return client


def _fetcher(urls: set[str]) -> MagicMock:
    fetcher = MagicMock(spec=DocumentFetcher)
    fetcher.discover.return_value = urls
    fetcher.download.return_value = b"%PDF"
    return fetcher


def _count(db: sqlite3.Connection, table: str) -> int:
    return db.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class _LockedOnce:
    """Connection wrapper whose first commit fails as if the file were locked."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self.pending_failures = 1

    def commit(self) -> None:
        if self.pending_failures:
            self.pending_failures -= 1
            raise sqlite3.OperationalError("database is locked")
        self._conn.commit()

    def __getattr__(self, name: str):
        return getattr(self._conn, name)


class TestIngestSchedule:
    """Tests for one ingestion cycle."""

    @patch("rallywatch.pipeline.document_text")
    def test_saves_well_formed_events(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT
        summary = ingest_schedule(db, _fetcher({DOC_A}), geo)

        assert (summary.documents, summary.events, summary.saved) == (1, 2, 2)
        titles = [r[0] for r in db.execute("SELECT title FROM rallies ORDER BY start_time")]
        assert titles == ["John Doe Rally in Kampala", "Jane Roe Rally in Gulu"]
        assert _count(db, "candidates") == 2

    @patch("rallywatch.pipeline.document_text")
    def test_rerun_is_idempotent(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT
        ingest_schedule(db, _fetcher({DOC_A}), geo)
        ingest_schedule(db, _fetcher({DOC_A}), geo)

        assert _count(db, "rallies") == 2
        assert _count(db, "candidates") == 2
        assert _count(db, "districts") == 2

    @patch("rallywatch.pipeline.document_text")
    def test_same_event_in_two_documents(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT
        summary = ingest_schedule(db, _fetcher({DOC_A, DOC_B}), geo)

        assert summary.saved == 4
        assert _count(db, "rallies") == 2
        sources = {r[0] for r in db.execute("SELECT source_url FROM rallies")}
        assert sources == {DOC_B}

    @patch("rallywatch.pipeline.document_text")
    def test_failed_document_does_not_stop_others(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.side_effect = [ParseError("not a PDF"), SCHEDULE_TEXT]
        summary = ingest_schedule(db, _fetcher({DOC_A, DOC_B}), geo)

        assert summary.failed_documents == 1
        assert summary.documents == 1
        assert _count(db, "rallies") == 2

    @patch("rallywatch.pipeline.document_text")
    def test_download_failure_is_contained(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT
        fetcher = _fetcher({DOC_A, DOC_B})
        fetcher.download.side_effect = [FetchError(DOC_A, "404"), b"%PDF"]
        summary = ingest_schedule(db, fetcher, geo)

        assert summary.failed_documents == 1
        assert summary.saved == 2

    @patch("rallywatch.pipeline.document_text")
    def test_bad_date_skips_only_that_event(
        self, mock_text: MagicMock, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        mock_text.return_value = (
            "Date: someday\nCandidate: Ghost\nDistrict: Nowhere\nVenue: Field\n"
            + SCHEDULE_TEXT
        )
        summary = ingest_schedule(db, _fetcher({DOC_A}), geo)

        assert (summary.saved, summary.skipped) == (2, 1)
        assert db.execute("SELECT id FROM candidates WHERE name = 'Ghost'").fetchone() is None

    def test_failed_commit_skips_only_that_event(
        self, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        conn = _LockedOnce(db)
        events = extract_events(SCHEDULE_TEXT)
        saved, skipped = save_events(
            events, DOC_A, EntityResolver(conn), RallyPersister(conn, geo), conn
        )

        assert (saved, skipped) == (1, 1)
        titles = [r[0] for r in db.execute("SELECT title FROM rallies")]
        assert titles == ["Jane Roe Rally in Gulu"]

    def test_unreachable_landing_page_propagates(
        self, db: sqlite3.Connection, geo: MagicMock
    ) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.discover.side_effect = FetchError("https://www.ec.or.ug", "503")
        with pytest.raises(FetchError):
            ingest_schedule(db, fetcher, geo)

    def test_no_documents(self, db: sqlite3.Connection, geo: MagicMock) -> None:
        summary = ingest_schedule(db, _fetcher(set()), geo)
        assert summary.documents == 0
        assert _count(db, "rallies") == 0


class TestRunJobs:
    """Tests for the file-backed job entry points."""

    @patch("rallywatch.pipeline.document_text")
    def test_ingestion_then_predictions(
        self, mock_text: MagicMock, tmp_path: Path, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT.replace("2026", "2099")
        db_path = str(tmp_path / "rallies.db")
        cache_path = str(tmp_path / "cache.json")

        summary = run_ingestion(db_path, _fetcher({DOC_A}), geo, cache_path=cache_path)
        assert summary.saved == 2
        assert Path(cache_path).exists()

        geo.get_traffic_flow.return_value = None
        # rallies in 2099 fall outside the default horizon
        assert run_predictions(db_path, geo) == 0

    def test_ingestion_saves_cache_on_failure(self, tmp_path: Path, geo: MagicMock) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.discover.side_effect = FetchError("https://www.ec.or.ug", "503")
        cache_path = str(tmp_path / "cache.json")
        with pytest.raises(FetchError):
            run_ingestion(str(tmp_path / "r.db"), fetcher, geo, cache_path=cache_path)
        assert Path(cache_path).exists()

    def test_update_check(self) -> None:
        checker = MagicMock(spec=UpdateChecker)
        checker.check.return_value = [SocialUpdate("Campaign schedule", "https://x")]
        assert run_update_check(checker) == checker.check.return_value

    @patch("rallywatch.pipeline.document_text")
    def test_corrupt_cache_file_does_not_block_ingestion(
        self, mock_text: MagicMock, tmp_path: Path, geo: MagicMock
    ) -> None:
        mock_text.return_value = SCHEDULE_TEXT
        cache_path = tmp_path / "cache.json"
        cache_path.write_bytes(b'{"a": {"lat": 1')

        summary = run_ingestion(
            str(tmp_path / "r.db"), _fetcher({DOC_A}), geo, cache_path=str(cache_path)
        )

        assert summary.saved == 2
        assert load_cache(str(cache_path)) != {}
