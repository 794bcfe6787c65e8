"""Text-to-event extraction for the campaign programme layout.

The programme PDFs print one rally per block::

    Date: 12/01/2026
    Candidate: John Doe
    District: Kampala
    Venue: Kololo Airstrip
    Time: 10:00 AM

Blocks start at the ``Date:`` marker; everything before the first marker
is preamble. Field lines may appear in any order after the date.
"""

from __future__ import annotations

import logging

from rallywatch.errors import ParseError
from rallywatch.models import CandidateEvent

logger = logging.getLogger(__name__)

BLOCK_MARKER = "Date:"
CANDIDATE_FIELD = "Candidate:"
DISTRICT_FIELD = "District:"
VENUE_FIELD = "Venue:"
TIME_FIELD = "Time:"

DEFAULT_TIME = "12:00 PM"


def build_event(
    date: str,
    candidate: str,
    district: str,
    venue: str,
    time: str | None = None,
) -> CandidateEvent:
    """Build a CandidateEvent, synthesizing its title and description.

    Args:
        date: Date string (DD/MM/YYYY).
        candidate: Candidate name.
        district: District name.
        venue: Venue name.
        time: Time string; defaults to noon.

    Returns:
        The assembled event.
    """
    return CandidateEvent(
        title=f"{candidate} Rally in {district}",
        date=date,
        time=time or DEFAULT_TIME,
        venue=venue,
        district=district,
        candidate=candidate,
        description=f"Official campaign rally for {candidate} at {venue}.",
    )


def find_field(lines: list[str], prefix: str) -> str:
    """Return the value of the first line starting with *prefix*.

    Args:
        lines: Trimmed block lines.
        prefix: Case-sensitive field prefix, e.g. "Venue:".

    Returns:
        The trimmed value, or an empty string if no line matches.
    """
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    return ""


def parse_block(block: str) -> CandidateEvent:
    """Parse the text following one ``Date:`` marker.

    Args:
        block: Raw block text, marker already removed.

    Returns:
        The extracted event.

    Raises:
        ParseError: If the date or a required field is missing.
    """
    lines = [line.strip() for line in block.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise ParseError("empty block")

    date = lines[0]
    fields = lines[1:]
    candidate = find_field(fields, CANDIDATE_FIELD)
    district = find_field(fields, DISTRICT_FIELD)
    venue = find_field(fields, VENUE_FIELD)

    missing = [
        name
        for name, value in (
            ("Candidate", candidate),
            ("District", district),
            ("Venue", venue),
        )
        if not value
    ]
    if missing:
        raise ParseError(f"block dated {date!r} lacks {', '.join(missing)}")

    return build_event(
        date=date,
        candidate=candidate,
        district=district,
        venue=venue,
        time=find_field(fields, TIME_FIELD) or None,
    )


def extract_events(text: str) -> list[CandidateEvent]:
    """Extract all well-formed rally events from a document's text.

    Malformed blocks are logged and skipped.

    Args:
        text: Full document text.

    Returns:
        Events in document order.
    """
    events: list[CandidateEvent] = []
    blocks = text.split(BLOCK_MARKER)[1:]
    for block in blocks:
        try:
            events.append(parse_block(block))
        except ParseError as exc:
            logger.debug("Skipping block: %s", exc)
    logger.debug("Extracted %d event(s) from %d block(s).", len(events), len(blocks))
    return events
