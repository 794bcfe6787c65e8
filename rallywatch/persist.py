"""Turn resolved events into geocoded, upserted rally rows."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone

from rallywatch import config
from rallywatch.cache import GeocodeCache, cache_get, cache_put
from rallywatch.db import upsert_rally
from rallywatch.errors import ParseError, PersistError
from rallywatch.geo import TomTomClient
from rallywatch.models import DEFAULT_LOCATION, CandidateEvent, Coordinate, Rally

logger = logging.getLogger(__name__)

# Programme PDFs do not give reliable end times
RALLY_START_HOUR_UTC = 12
RALLY_DURATION = timedelta(hours=3)


def parse_event_date(date: str) -> tuple[datetime, datetime]:
    """Convert a ``DD/MM/YYYY`` string into start and end timestamps.

    Args:
        date: Date as printed in the programme.

    Returns:
        (start, end) as timezone-aware UTC datetimes.

    Raises:
        ParseError: If *date* is not a valid DD/MM/YYYY date.
    """
    try:
        day, month, year = (int(part) for part in date.strip().split("/"))
        start = datetime(year, month, day, RALLY_START_HOUR_UTC, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ParseError(f"Bad rally date {date!r}: {exc}") from exc
    return start, start + RALLY_DURATION


class RallyPersister:
    """Writes rallies, geocoding each venue on the way in.

    Args:
        conn: Open database connection.
        geo: Geo client used for venue lookups.
        cache: Optional geocoding cache, updated in place.
        country: Country appended to every geocoding query.
        default_location: Point used when geocoding yields nothing.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        geo: TomTomClient,
        cache: GeocodeCache | None = None,
        country: str = config.GEOCODE_COUNTRY,
        default_location: Coordinate = DEFAULT_LOCATION,
    ) -> None:
        self.conn = conn
        self.geo = geo
        self.cache = cache
        self.country = country
        self.default_location = default_location

    def locate(self, event: CandidateEvent) -> Coordinate:
        """Geocode the event's venue, falling back to the default point."""
        query = f"{event.venue}, {event.district}, {self.country}"
        if self.cache is not None:
            cached = cache_get(self.cache, query)
            if cached is not None:
                return cached.coordinate

        result = self.geo.geocode(query)
        if result is None:
            logger.warning("Geocoding failed for %s, using default location.", event.venue)
            return self.default_location

        logger.debug(
            "Geocoded %s to %s, %s", event.venue, result.coordinate.lat, result.coordinate.lon
        )
        if self.cache is not None:
            cache_put(self.cache, query, result)
        return result.coordinate

    def persist(
        self,
        event: CandidateEvent,
        candidate_id: int,
        district_id: int,
        source_url: str,
    ) -> Rally:
        """Upsert one event as a rally keyed on (title, start time).

        Args:
            event: Extracted event.
            candidate_id: Resolved candidate id.
            district_id: Resolved district id.
            source_url: Document the event came from.

        Returns:
            The written rally, with ``rally_id`` set.

        Raises:
            ParseError: If the event date is malformed.
            PersistError: If the write fails.
        """
        start, end = parse_event_date(event.date)
        rally = Rally(
            title=event.title,
            candidate_id=candidate_id,
            district_id=district_id,
            venue_name=event.venue,
            description=event.description or "",
            start_time=start,
            end_time=end,
            location=self.locate(event),
            source_url=source_url,
        )
        try:
            upsert_rally(self.conn, rally)
        except sqlite3.Error as exc:
            raise PersistError(f"Failed to save rally {event.title!r}: {exc}") from exc
        logger.info("Saved: %s", rally.title)
        return rally
