"""Congestion forecasts for upcoming rallies.

A rally adds load on top of whatever the road is already doing, so even
free-flowing traffic is forecast as moderate. The live flow ratio only
raises the level:

=================  ==========  =====
ratio              jam level   delay
=================  ==========  =====
< 0.50             critical    60
0.50 to < 0.75     heavy       45
>= 0.75 / unknown  moderate    30
=================  ==========  =====
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from tqdm import tqdm

from rallywatch.db import get_prediction_id, get_rallies_between, insert_prediction
from rallywatch.errors import PersistError
from rallywatch.geo import TomTomClient, TrafficFlow
from rallywatch.models import Rally, TrafficPrediction

logger = logging.getLogger(__name__)

CRITICAL_RATIO = 0.50
HEAVY_RATIO = 0.75

DEFAULT_HORIZON = timedelta(days=7)

# Road-name resolution is not implemented yet
PLACEHOLDER_ROADS: tuple[str, ...] = ("Main Road", "Access Lane")


def classify_ratio(ratio: float | None) -> tuple[str, int]:
    """Map a flow ratio to a (jam level, delay minutes) pair.

    Args:
        ratio: Current speed over free-flow speed, or None if unknown.

    Returns:
        The jam level and the predicted extra delay in minutes.
    """
    if ratio is None:
        return "moderate", 30
    if ratio < CRITICAL_RATIO:
        return "critical", 60
    if ratio < HEAVY_RATIO:
        return "heavy", 45
    return "moderate", 30


def classify_flow(flow: TrafficFlow | None) -> tuple[str, int]:
    """Classify live flow data; missing data counts as unknown."""
    return classify_ratio(flow.ratio if flow is not None else None)


def describe(jam_level: str, delay_minutes: int) -> str:
    """Render the rider-facing description of a prediction."""
    return (
        f"Expected {jam_level} congestion due to campaign rally. "
        f"Plan for +{delay_minutes} mins travel time."
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrafficPredictor:
    """Creates one traffic prediction per upcoming rally.

    Args:
        conn: Open database connection.
        geo: Geo client used for flow lookups.
        horizon: How far ahead of now rallies are analysed.
        now: Clock, overridable for testing.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        geo: TomTomClient,
        horizon: timedelta = DEFAULT_HORIZON,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.conn = conn
        self.geo = geo
        self.horizon = horizon
        self.now = now

    def upcoming_rallies(self) -> list[Rally]:
        """Rallies starting between now and now + horizon."""
        start = self.now()
        return get_rallies_between(self.conn, start, start + self.horizon)

    def analyze_rally(self, rally: Rally) -> TrafficPrediction | None:
        """Forecast congestion for one rally unless it already has a forecast.

        Args:
            rally: A persisted rally.

        Returns:
            The new prediction, or None if one already existed.

        Raises:
            PersistError: If the rally is unsaved or the prediction cannot
                be read or written.
        """
        if rally.rally_id is None:
            raise PersistError(f"Rally {rally.title!r} has no id; save it first")
        try:
            if get_prediction_id(self.conn, rally.rally_id) is not None:
                return None

            flow = self.geo.get_traffic_flow(rally.location)
            jam_level, delay = classify_flow(flow)
            if flow is not None:
                logger.info(
                    "Flow for %s: %.0f vs %.0f free-flow (ratio %s)",
                    rally.title,
                    flow.current_speed,
                    flow.free_flow_speed,
                    "n/a" if flow.ratio is None else f"{flow.ratio:.2f}",
                )

            prediction = TrafficPrediction(
                rally_id=rally.rally_id,
                predicted_delay_minutes=delay,
                jam_level=jam_level,
                description=describe(jam_level, delay),
                affected_roads=list(PLACEHOLDER_ROADS),
            )
            if not insert_prediction(self.conn, prediction):
                return None
            self.conn.commit()
        except sqlite3.Error as exc:
            raise PersistError(
                f"Failed to save prediction for rally {rally.rally_id}: {exc}"
            ) from exc
        return prediction

    def generate_predictions(self) -> int:
        """Analyse every upcoming rally that has no forecast yet.

        Returns:
            Number of predictions written.
        """
        logger.info("Starting traffic prediction generation...")
        try:
            rallies = self.upcoming_rallies()
        except sqlite3.Error as exc:
            raise PersistError(f"Failed to fetch rallies for traffic analysis: {exc}") from exc

        if not rallies:
            logger.info("No upcoming rallies found for analysis.")
            return 0

        created = 0
        for rally in tqdm(rallies, desc="Analysing rallies", unit="rally"):
            try:
                if self.analyze_rally(rally) is not None:
                    created += 1
                    logger.info("Generated prediction for: %s", rally.title)
            except PersistError as exc:
                logger.error("%s", exc)

        logger.info("Generated %d / %d predictions.", created, len(rallies))
        return created
