"""Shared data containers for the rallywatch pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 latitude/longitude pair.

    Attributes:
        lat: Latitude in decimal degrees.
        lon: Longitude in decimal degrees.
    """

    lat: float
    lon: float

    def as_param(self) -> str:
        """Render as the ``"lat,lon"`` form used in provider URLs."""
        return f"{self.lat},{self.lon}"


@dataclass
class CandidateEvent:
    """A rally extracted from one block of a schedule document.

    Transient: never persisted directly, only via ``Rally``.

    Attributes:
        title: Synthesized title, e.g. "John Doe Rally in Kampala".
        date: Raw date string as printed in the document (DD/MM/YYYY).
        time: Raw time string, defaulting to noon.
        venue: Venue name.
        district: District name.
        candidate: Candidate name.
        description: Synthesized description, if any.
    """

    title: str
    date: str
    time: str
    venue: str
    district: str
    candidate: str
    description: str | None = None


@dataclass
class Candidate:
    """A candidate referenced by at least one rally.

    Attributes:
        name: Full name (lookup key).
        party: Party name.
        candidate_id: Database primary key (set after insertion).
    """

    name: str
    party: str
    candidate_id: int | None = None


@dataclass
class District:
    """An administrative district hosting rallies.

    Attributes:
        name: District name (lookup key).
        region: Region the district belongs to.
        district_id: Database primary key (set after insertion).
    """

    name: str
    region: str
    district_id: int | None = None


@dataclass
class Rally:
    """A persisted campaign rally.

    Attributes:
        title: Rally title; with ``start_time`` forms the natural key.
        candidate_id: Foreign key to the candidate.
        district_id: Foreign key to the district.
        venue_name: Venue name as printed in the source document.
        description: Free-text description.
        start_time: Timezone-aware start timestamp.
        end_time: Timezone-aware end timestamp.
        location: Geocoded venue (or the default point).
        source_url: Document the rally was extracted from.
        rally_id: Database primary key (set after insertion).
    """

    title: str
    candidate_id: int | None
    district_id: int | None
    venue_name: str
    description: str
    start_time: datetime
    end_time: datetime
    location: Coordinate
    source_url: str = ""
    rally_id: int | None = None


@dataclass
class TrafficPrediction:
    """A congestion forecast for one rally.

    Attributes:
        rally_id: Foreign key to the rally (one prediction per rally).
        predicted_delay_minutes: Extra travel time expected.
        jam_level: One of ``JAM_LEVELS``.
        description: Human-readable summary.
        affected_roads: Road names expected to be congested.
        prediction_id: Database primary key (set after insertion).
    """

    rally_id: int
    predicted_delay_minutes: int
    jam_level: str
    description: str
    affected_roads: list[str] = field(default_factory=list)
    prediction_id: int | None = None


# Congestion classification, ordered from least to most severe
JAM_LEVELS: tuple[str, ...] = ("low", "moderate", "heavy", "critical")

# Defaults for lazily created entities
DEFAULT_PARTY = "Independent"
DEFAULT_REGION = "Central"

# Kampala city centre, used when a venue cannot be geocoded
DEFAULT_LOCATION = Coordinate(lat=0.3476, lon=32.5825)

# Default database filename
DB_FILENAME = "rallywatch.db"


def jam_level_rank(level: str) -> int:
    """Return the severity rank of a jam level (0 = low).

    Raises:
        ValueError: If *level* is not one of ``JAM_LEVELS``.
    """
    return JAM_LEVELS.index(level)
