"""Central configuration constants for rallywatch.

Every value can be overridden with an environment variable of the same
name:

- RALLYWATCH_DB_PATH: SQLite database path (default: rallywatch.db)
- TOMTOM_API_KEY: TomTom API key; geo lookups are skipped when unset
- EC_PAGE_URL: Landing page listing the campaign programme PDFs
- SOCIAL_FEED_URL: RSS feed checked for schedule announcements
- INGEST_INTERVAL_S / PREDICT_INTERVAL_S / UPDATES_INTERVAL_S: job cadences
"""

from __future__ import annotations

import os

from rallywatch.models import DB_FILENAME

# ---- Storage ----

DB_PATH = os.getenv("RALLYWATCH_DB_PATH", DB_FILENAME)
GEOCODE_CACHE_FILE = os.getenv("GEOCODE_CACHE_FILE", "geocode_cache.json")

# ---- Networking ----

REQUEST_TIMEOUT_S = float(os.getenv("REQUEST_TIMEOUT_S", "30"))
SOCIAL_TIMEOUT_S = 5.0

# ---- Document source ----

EC_BASE_URL = os.getenv("EC_BASE_URL", "https://www.ec.or.ug")
EC_PAGE_URL = os.getenv(
    "EC_PAGE_URL",
    f"{EC_BASE_URL}/presidential-campaign-programme-2025-2026",
)
DOCUMENT_SUFFIX = ".pdf"

# A discovered link is kept only if it mentions one of these
DOCUMENT_KEYWORDS: tuple[str, ...] = ("campaign", "programme")

# ---- Geo provider ----

TOMTOM_API_KEY = os.getenv("TOMTOM_API_KEY", "")
TOMTOM_BASE_URL = os.getenv("TOMTOM_BASE_URL", "https://api.tomtom.com")
GEOCODE_COUNTRY = os.getenv("GEOCODE_COUNTRY", "Uganda")
GEOCODE_COUNTRY_SET = os.getenv("GEOCODE_COUNTRY_SET", "UG")

# ---- Social updates ----

SOCIAL_FEED_URL = os.getenv("SOCIAL_FEED_URL", "https://nitter.net/UgandaEC/rss")
SOCIAL_KEYWORDS: tuple[str, ...] = ("campaign", "rally", "schedule")

# ---- Scheduling (seconds) ----

INGEST_INTERVAL_S = int(os.getenv("INGEST_INTERVAL_S", str(24 * 3600)))
PREDICT_INTERVAL_S = int(os.getenv("PREDICT_INTERVAL_S", str(24 * 3600)))
UPDATES_INTERVAL_S = int(os.getenv("UPDATES_INTERVAL_S", str(24 * 3600)))
