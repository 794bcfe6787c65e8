"""JSON-based geocoding cache for rallywatch.

Persists successful venue lookups to disk so repeated ingestion cycles
do not re-query the geo provider for venues it has already resolved.
"""

from __future__ import annotations

import logging
import os
import pathlib
import tempfile

import orjson

from rallywatch.config import GEOCODE_CACHE_FILE
from rallywatch.geo import GeocodeResult
from rallywatch.models import Coordinate

logger = logging.getLogger(__name__)

GeocodeCache = dict[str, dict[str, float | str]]


def make_cache_key(query: str) -> str:
    """Build a deterministic cache key for a geocoding query.

    Args:
        query: Free-text geocoding query.

    Returns:
        The query, whitespace-collapsed and lower-cased.
    """
    return " ".join(query.split()).lower()


def cache_get(cache: GeocodeCache, query: str) -> GeocodeResult | None:
    """Return the cached result for *query*, if any.

    A malformed entry counts as a miss.
    """
    entry = cache.get(make_cache_key(query))
    if not entry:
        return None
    try:
        return GeocodeResult(
            coordinate=Coordinate(lat=float(entry["lat"]), lon=float(entry["lon"])),
            address=str(entry.get("address", "")),
        )
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning("Ignoring malformed cache entry for %r.", query)
        return None


def cache_put(cache: GeocodeCache, query: str, result: GeocodeResult) -> None:
    """Store *result* under *query*."""
    cache[make_cache_key(query)] = {
        "lat": result.coordinate.lat,
        "lon": result.coordinate.lon,
        "address": result.address,
    }


def load_cache(path: str = GEOCODE_CACHE_FILE) -> GeocodeCache:
    """Load the geocoding cache from disk.

    A file that is not a JSON object is ignored and an empty cache is
    returned; the next save replaces it.

    Args:
        path: Path to the JSON cache file.

    Returns:
        Mapping of cache key to ``{lat, lon, address}``.
    """
    p = pathlib.Path(path)
    if not p.exists():
        return {}
    try:
        data = orjson.loads(p.read_bytes())
    except orjson.JSONDecodeError as exc:
        logger.warning("Geocode cache %s is unreadable, starting empty: %s", path, exc)
        return {}
    if isinstance(data, dict):
        return data
    return {}


def save_cache(cache: GeocodeCache, path: str = GEOCODE_CACHE_FILE) -> None:
    """Persist the geocoding cache to disk.

    The file is written beside *path* and then moved into place, so
    readers never see a partial file.

    Args:
        cache: The cache dict to save.
        path: Path to write the JSON file.
    """
    target = pathlib.Path(path)
    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
    )
    tmp = pathlib.Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(orjson.dumps(cache, option=orjson.OPT_INDENT_2))
        tmp.replace(target)
    finally:
        tmp.unlink(missing_ok=True)
