"""Pipeline orchestrator: chains fetch, extract, resolve, and persist.

Each stage is idempotent (upsert semantics) so it is safe to re-run the
ingestion as often as the programme is republished. Failures are
contained per document and per event; only an unreachable landing page
aborts a cycle.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from tqdm import tqdm

from rallywatch import config
from rallywatch.cache import GeocodeCache, load_cache, save_cache
from rallywatch.db import count_rows, init_schema, open_db
from rallywatch.documents import DocumentFetcher, document_text
from rallywatch.errors import FetchError, ParseError, PersistError
from rallywatch.extract import extract_events
from rallywatch.geo import TomTomClient
from rallywatch.models import CandidateEvent
from rallywatch.persist import RallyPersister
from rallywatch.resolve import EntityResolver
from rallywatch.traffic import TrafficPredictor
from rallywatch.updates import SocialUpdate, UpdateChecker

logger = logging.getLogger(__name__)


@dataclass
class IngestionSummary:
    """Counts from one ingestion cycle."""

    documents: int = 0
    failed_documents: int = 0
    events: int = 0
    saved: int = 0
    skipped: int = 0


def save_events(
    events: list[CandidateEvent],
    source_url: str,
    resolver: EntityResolver,
    persister: RallyPersister,
    conn: sqlite3.Connection,
) -> tuple[int, int]:
    """Resolve and persist events one at a time, committing each.

    Args:
        events: Events in document order.
        source_url: Document the events came from.
        resolver: Entity resolver.
        persister: Rally persister.
        conn: Connection to commit on.

    Returns:
        (saved, skipped) counts.
    """
    saved = skipped = 0
    for event in events:
        try:
            candidate_id = resolver.resolve_candidate(event.candidate)
            district_id = resolver.resolve_district(event.district)
            persister.persist(event, candidate_id, district_id, source_url)
            conn.commit()
            saved += 1
        except ParseError as exc:
            logger.warning("Skipping event %s: %s", event.title, exc)
            conn.rollback()
            skipped += 1
        except PersistError as exc:
            logger.error("%s", exc)
            conn.rollback()
            skipped += 1
        except sqlite3.Error as exc:
            logger.error("Failed to commit rally %r: %s", event.title, exc)
            conn.rollback()
            skipped += 1
    return saved, skipped


def ingest_schedule(
    conn: sqlite3.Connection,
    fetcher: DocumentFetcher,
    geo: TomTomClient,
    cache: GeocodeCache | None = None,
) -> IngestionSummary:
    """Run one ingestion cycle against an open database.

    Args:
        conn: Open database connection with schema.
        fetcher: Document fetcher.
        geo: Geo client for venue geocoding.
        cache: Optional geocoding cache.

    Returns:
        Summary counts for the cycle.

    Raises:
        FetchError: If the landing page cannot be fetched.
    """
    resolver = EntityResolver(conn)
    persister = RallyPersister(conn, geo, cache=cache)
    summary = IngestionSummary()

    doc_urls = sorted(fetcher.discover())
    for url in tqdm(doc_urls, desc="Processing documents", unit="doc"):
        try:
            text = document_text(fetcher.download(url))
        except (FetchError, ParseError) as exc:
            logger.error("Failed to process document %s: %s", url, exc)
            summary.failed_documents += 1
            continue

        summary.documents += 1
        events = extract_events(text)
        logger.info("Parsed %d events from %s", len(events), url.rsplit("/", 1)[-1])
        summary.events += len(events)
        saved, skipped = save_events(events, url, resolver, persister, conn)
        summary.saved += saved
        summary.skipped += skipped

    logger.info(
        "Ingestion complete: %d documents (%d failed), %d events, %d saved, %d skipped.",
        summary.documents,
        summary.failed_documents,
        summary.events,
        summary.saved,
        summary.skipped,
    )
    return summary


def run_ingestion(
    db_path: str = config.DB_PATH,
    fetcher: DocumentFetcher | None = None,
    geo: TomTomClient | None = None,
    cache_path: str | None = config.GEOCODE_CACHE_FILE,
) -> IngestionSummary:
    """Open the database and run one ingestion cycle.

    Args:
        db_path: Path to the SQLite database file.
        fetcher: Document fetcher; a default one otherwise.
        geo: Geo client; a default one otherwise.
        cache_path: Geocoding cache file, or None to disable caching.

    Returns:
        Summary counts for the cycle.
    """
    conn = open_db(db_path)
    init_schema(conn)
    cache = load_cache(cache_path) if cache_path else None

    try:
        summary = ingest_schedule(
            conn,
            fetcher or DocumentFetcher(),
            geo or TomTomClient(),
            cache=cache,
        )
    finally:
        if cache is not None and cache_path:
            save_cache(cache, cache_path)
        _log_summary(conn)
        conn.close()
    return summary


def run_predictions(
    db_path: str = config.DB_PATH,
    geo: TomTomClient | None = None,
) -> int:
    """Open the database and generate missing traffic predictions.

    Args:
        db_path: Path to the SQLite database file.
        geo: Geo client; a default one otherwise.

    Returns:
        Number of predictions written.
    """
    conn = open_db(db_path)
    init_schema(conn)

    try:
        return TrafficPredictor(conn, geo or TomTomClient()).generate_predictions()
    finally:
        _log_summary(conn)
        conn.close()


def run_update_check(checker: UpdateChecker | None = None) -> list[SocialUpdate]:
    """Run the social feed check once."""
    return (checker or UpdateChecker()).check()


def _log_summary(conn: sqlite3.Connection) -> None:
    """Log a summary of the database contents.

    Args:
        conn: Open database connection.
    """
    counts = count_rows(conn)
    logger.info(
        "Database summary: %d candidates, %d districts, %d rallies, %d predictions.",
        counts["candidates"],
        counts["districts"],
        counts["rallies"],
        counts["traffic_predictions"],
    )
