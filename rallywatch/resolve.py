"""Resolve-or-create for candidates and districts named in rally blocks.

Lookup is by exact name. A missing entity is inserted with a default
party or region and its new id returned. The read and the insert are
separate statements, so two concurrent jobs resolving the same new name
can each insert a row; lookups then settle on the oldest row.
"""

from __future__ import annotations

import logging
import sqlite3

from rallywatch.db import (
    find_candidate_id,
    find_district_id,
    insert_candidate,
    insert_district,
)
from rallywatch.errors import PersistError
from rallywatch.models import DEFAULT_PARTY, DEFAULT_REGION, Candidate, District

logger = logging.getLogger(__name__)


class EntityResolver:
    """Maps candidate and district names to stable row ids.

    Args:
        conn: Open database connection.
        default_party: Party assigned to newly discovered candidates.
        default_region: Region assigned to newly discovered districts.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        default_party: str = DEFAULT_PARTY,
        default_region: str = DEFAULT_REGION,
    ) -> None:
        self.conn = conn
        self.default_party = default_party
        self.default_region = default_region

    def resolve_candidate(self, name: str) -> int:
        """Return the id for candidate *name*, creating it on first sight.

        Raises:
            PersistError: If the lookup or insert fails.
        """
        try:
            candidate_id = find_candidate_id(self.conn, name)
            if candidate_id is None:
                candidate_id = insert_candidate(
                    self.conn, Candidate(name=name, party=self.default_party)
                )
                logger.info("Discovered candidate %r (id %d).", name, candidate_id)
        except sqlite3.Error as exc:
            raise PersistError(f"Could not resolve candidate {name!r}: {exc}") from exc
        return candidate_id

    def resolve_district(self, name: str) -> int:
        """Return the id for district *name*, creating it on first sight.

        Raises:
            PersistError: If the lookup or insert fails.
        """
        try:
            district_id = find_district_id(self.conn, name)
            if district_id is None:
                district_id = insert_district(
                    self.conn, District(name=name, region=self.default_region)
                )
                logger.info("Discovered district %r (id %d).", name, district_id)
        except sqlite3.Error as exc:
            raise PersistError(f"Could not resolve district {name!r}: {exc}") from exc
        return district_id
