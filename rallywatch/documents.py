"""Discovery and download of published campaign programme documents.

The Electoral Commission republishes its schedule as PDFs linked from a
landing page. Discovery keeps only links with the document suffix whose
URL mentions one of a few relevance keywords, since the same page also
links unrelated circulars.
"""

from __future__ import annotations

import io
import logging

import requests
from bs4 import BeautifulSoup
from pdfminer.high_level import extract_text
from pdfminer.psparser import PSException

from rallywatch import config
from rallywatch.errors import ParseError
from rallywatch.http import fetch_bytes, fetch_soup

logger = logging.getLogger(__name__)


def normalize_link(href: str, base_url: str) -> str:
    """Resolve a site-relative *href* against *base_url*.

    Args:
        href: The anchor target as written on the page.
        base_url: Site root, without a trailing slash.

    Returns:
        An absolute URL.
    """
    href = href.strip()
    if href.startswith("http"):
        return href
    if not href.startswith("/"):
        href = "/" + href
    return base_url.rstrip("/") + href


def collect_document_links(
    soup: BeautifulSoup,
    base_url: str,
    suffix: str = config.DOCUMENT_SUFFIX,
    keywords: tuple[str, ...] = config.DOCUMENT_KEYWORDS,
) -> set[str]:
    """Extract relevant document URLs from a parsed landing page.

    Args:
        soup: Parsed landing page.
        base_url: Site root used for relative links.
        suffix: Required document suffix (e.g. ".pdf").
        keywords: A link is kept if its lower-cased URL contains any of these.

    Returns:
        Set of absolute document URLs.
    """
    links: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href.endswith(suffix):
            continue
        url = normalize_link(href, base_url)
        lowered = url.lower()
        if any(keyword in lowered for keyword in keywords):
            links.add(url)
    return links


def document_text(data: bytes) -> str:
    """Extract the plain text of a PDF document.

    Args:
        data: Raw PDF bytes.

    Returns:
        The document text.

    Raises:
        ParseError: If the bytes are not a readable PDF.
    """
    try:
        return extract_text(io.BytesIO(data)) or ""
    except (PSException, ValueError, TypeError) as exc:
        raise ParseError(f"Unreadable PDF: {exc}") from exc


class DocumentFetcher:
    """Finds and downloads schedule documents from the landing page.

    Args:
        session: HTTP session shared by all requests.
        page_url: Landing page listing the documents.
        base_url: Site root used to resolve relative links.
        suffix: Document suffix to look for.
        keywords: Relevance allow-list applied to each link.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        page_url: str = config.EC_PAGE_URL,
        base_url: str = config.EC_BASE_URL,
        suffix: str = config.DOCUMENT_SUFFIX,
        keywords: tuple[str, ...] = config.DOCUMENT_KEYWORDS,
        timeout: float = config.REQUEST_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        self.page_url = page_url
        self.base_url = base_url
        self.suffix = suffix
        self.keywords = keywords
        self.timeout = timeout

    def discover(self, page_url: str | None = None) -> set[str]:
        """Return the set of relevant document URLs on the landing page.

        Raises:
            FetchError: If the landing page cannot be fetched.
        """
        url = page_url or self.page_url
        logger.info("Checking for updates at %s...", url)
        soup = fetch_soup(url, session=self.session, timeout=self.timeout)
        links = collect_document_links(soup, self.base_url, self.suffix, self.keywords)
        logger.info("Found %d relevant document(s).", len(links))
        return links

    def download(self, doc_url: str) -> bytes:
        """Download one document.

        Raises:
            FetchError: If the document cannot be fetched.
        """
        logger.info("Downloading %s", doc_url)
        return fetch_bytes(doc_url, session=self.session, timeout=self.timeout)
