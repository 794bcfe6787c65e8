"""Exception types raised across the rallywatch pipeline.

Each error is recovered at the smallest scope that keeps the pipeline
moving: blocks, documents, events, rallies, and finally whole jobs.
"""

from __future__ import annotations


class RallyWatchError(Exception):
    """Base class for all rallywatch errors."""


class FetchError(RallyWatchError):
    """A landing page or document could not be retrieved."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ParseError(RallyWatchError):
    """A schedule block, date, or document body could not be parsed."""


class GeoLookupError(RallyWatchError):
    """The geo provider was unreachable, unconfigured, or returned nothing."""


class PersistError(RallyWatchError):
    """A storage read or write failed."""


class JobError(RallyWatchError):
    """An uncaught error escaped a scheduled job body."""

    def __init__(self, job_name: str, cause: BaseException) -> None:
        super().__init__(f"Job {job_name!r} failed: {cause}")
        self.job_name = job_name
        self.cause = cause
