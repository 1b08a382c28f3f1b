"""
Notification deduplication for Waitlist Alerts.

Matches are recomputed from scratch on every run, so something has to
remember which alerts already went out. That is the notified_matches
ledger: one row per delivered (unit, agent) alert, keyed by
"<unit unique_id>:<agent>". A group whose key is in the ledger is never
sent again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import MatchedEntry, NotifiedMatch, UnitRecord, make_match_key, utcnow

logger = logging.getLogger(__name__)


@dataclass
class AlertCandidate:
    """A (unit, agent) group that has not been alerted yet."""
    unit: UnitRecord
    agent: str
    match_key: str
    entries: list[MatchedEntry]

    @property
    def entry_ids(self) -> list[str]:
        return [m.entry.id for m in self.entries]


class NotificationDeduplicator:
    """
    Filters recomputed matches down to alerts that haven't been sent.

    The ledger is read once per run (load()); record() writes through to
    the database with insert-if-absent semantics and updates the snapshot.

    Usage:
        dedup = NotificationDeduplicator(db)
        dedup.load()
        for candidate in dedup.filter_new(unit, groups):
            ...
            dedup.record(candidate)
    """

    def __init__(self, db):
        self.db = db
        self._sent_keys: Optional[set[str]] = None

    def load(self) -> int:
        """
        Take a snapshot of the ledger keys.

        Returns:
            Number of keys already in the ledger
        """
        self._sent_keys = set(self.db.get_notified_match_keys())
        logger.debug(f"Loaded {len(self._sent_keys)} notified match keys")
        return len(self._sent_keys)

    @property
    def sent_keys(self) -> set[str]:
        if self._sent_keys is None:
            self.load()
        return self._sent_keys

    def is_new(self, match_key: str) -> bool:
        return match_key not in self.sent_keys

    def filter_new(self, unit: UnitRecord, groups: dict[str, list[MatchedEntry]]) -> list[AlertCandidate]:
        """
        Keep only the agent groups for a unit that haven't been alerted.

        Args:
            unit: The available unit
            groups: Ranked matched entries keyed by agent

        Returns:
            AlertCandidate per new (unit, agent) pair
        """
        candidates = []
        for agent, entries in groups.items():
            key = make_match_key(unit.unique_id, agent)
            if not self.is_new(key):
                logger.debug(f"Already notified {key}, skipping")
                continue
            candidates.append(AlertCandidate(unit=unit, agent=agent, match_key=key, entries=entries))
        return candidates

    def record(self, candidate: AlertCandidate, notified_at: Optional[datetime] = None) -> bool:
        """
        Add a delivered alert to the ledger.

        Returns:
            True if this call wrote the row, False if another run already had

        Raises:
            DatabaseError: the ledger write failed
        """
        match = NotifiedMatch(
            match_key=candidate.match_key,
            agent=candidate.agent,
            unit_id=candidate.unit.unique_id,
            entry_ids=candidate.entry_ids,
            notified_at=notified_at or utcnow(),
        )
        inserted = self.db.insert_notified_match(match)
        self.sent_keys.add(candidate.match_key)
        if not inserted:
            logger.warning(f"Match {candidate.match_key} was recorded by a concurrent run")
        return inserted
