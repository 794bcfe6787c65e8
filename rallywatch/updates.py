"""Check the Electoral Commission's social feed for schedule announcements.

The feed is fetched through a public RSS mirror, which is rate limited
and often down; an unavailable feed is logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from rallywatch import config
from rallywatch.http import HEADERS

logger = logging.getLogger(__name__)


@dataclass
class SocialUpdate:
    """A feed item that mentions the campaign schedule.

    Attributes:
        title: Post text.
        link: Permalink.
        published: Publication date as given by the feed.
    """

    title: str
    link: str
    published: str = ""


def parse_feed(
    xml: str,
    keywords: tuple[str, ...] = config.SOCIAL_KEYWORDS,
) -> list[SocialUpdate]:
    """Extract relevant items from an RSS document.

    Args:
        xml: RSS feed body.
        keywords: An item is kept if its lower-cased title contains any.

    Returns:
        Matching updates in feed order.
    """
    soup = BeautifulSoup(xml, "xml")
    updates: list[SocialUpdate] = []
    for item in soup.find_all("item"):
        title_tag = item.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        lowered = title.lower()
        if not any(keyword in lowered for keyword in keywords):
            continue
        link_tag = item.find("link")
        date_tag = item.find("pubDate")
        updates.append(
            SocialUpdate(
                title=title,
                link=link_tag.get_text(strip=True) if link_tag else "",
                published=date_tag.get_text(strip=True) if date_tag else "",
            )
        )
    return updates


class UpdateChecker:
    """Polls the social feed for campaign schedule announcements.

    Args:
        session: HTTP session to use.
        feed_url: RSS feed URL.
        keywords: Title keywords marking an item as relevant.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        feed_url: str = config.SOCIAL_FEED_URL,
        keywords: tuple[str, ...] = config.SOCIAL_KEYWORDS,
        timeout: float = config.SOCIAL_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        self.feed_url = feed_url
        self.keywords = keywords
        self.timeout = timeout

    def check(self) -> list[SocialUpdate]:
        """Fetch the feed and return relevant updates.

        Returns:
            Relevant updates, or an empty list if the feed is unavailable.
        """
        logger.info("Checking social media updates at %s...", self.feed_url)
        try:
            resp = self.session.get(self.feed_url, headers=HEADERS, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Social feed request failed: %s", exc)
            return []

        if resp.status_code != 200:
            logger.warning(
                "Social feed unavailable (status %d). Skipping social check.",
                resp.status_code,
            )
            return []

        updates = parse_feed(resp.text, self.keywords)
        for update in updates:
            logger.info(
                "Found relevant social update: %s (%s) - %s",
                update.title,
                update.published,
                update.link,
            )
        return updates
