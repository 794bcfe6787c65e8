"""Shared HTTP utilities for rallywatch.

Consolidates the page and document fetches used by the document fetcher
and the update checker, translating transport failures into FetchError.
"""

from __future__ import annotations

import logging

import requests
from bs4 import BeautifulSoup

from rallywatch.config import REQUEST_TIMEOUT_S
from rallywatch.errors import FetchError

logger = logging.getLogger(__name__)

HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) "
        "RallyWatchBot/1.0 (campaign traffic advisories)"
    ),
}


def _get(
    session: requests.Session,
    url: str,
    timeout: float,
) -> requests.Response:
    """GET *url*, raising FetchError on any transport error or non-2xx."""
    try:
        resp = session.get(url, headers=HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(url, str(exc)) from exc
    return resp


def fetch_soup(
    url: str,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT_S,
) -> BeautifulSoup:
    """Fetch *url* and return a parsed BeautifulSoup tree.

    Args:
        url: Fully-qualified URL to fetch.
        session: Session to reuse; a fresh one is created otherwise.
        timeout: Per-request timeout in seconds.

    Returns:
        Parsed BeautifulSoup document.

    Raises:
        FetchError: If the request fails or the response is not OK.
    """
    resp = _get(session or requests.Session(), url, timeout)
    return BeautifulSoup(resp.text, "lxml")


def fetch_bytes(
    url: str,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT_S,
) -> bytes:
    """Fetch *url* and return the raw response body.

    Args:
        url: Fully-qualified URL to fetch.
        session: Session to reuse; a fresh one is created otherwise.
        timeout: Per-request timeout in seconds.

    Returns:
        Response body bytes.

    Raises:
        FetchError: If the request fails or the response is not OK.
    """
    resp = _get(session or requests.Session(), url, timeout)
    logger.debug("Downloaded %d bytes from %s", len(resp.content), url)
    return resp.content
