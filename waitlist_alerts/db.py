"""
Supabase database integration module.

Handles all database operations the engine needs:
- Reading waitlist entries (the entry store)
- Reading and appending to the notified_matches ledger
- Stamping matched_at on entries after a delivered alert

Tables required (see schema.sql):
- waitlist_entries: Waitlist registrations, mutated by agents and forms
- notified_matches: Append-only ledger, unique on match_key
"""

import logging
from datetime import datetime
from typing import Optional
from supabase import create_client, Client

from .config import get_supabase_config
from .errors import ConfigurationError, DatabaseError
from .models import (
    WaitlistEntry,
    EntryStatus,
    NotifiedMatch,
    OutcomeStatus,
)

logger = logging.getLogger(__name__)

ENTRIES_TABLE = "waitlist_entries"
LEDGER_TABLE = "notified_matches"


class Database:
    """
    Supabase database client wrapper.

    Provides methods for all database operations needed by the match engine.
    Every method raises DatabaseError if Supabase rejects the request.
    """

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client."""
        if client is None:
            config = get_supabase_config()
            if not config.url or not config.key:
                raise ConfigurationError("Supabase URL and key must be set in environment variables")
            client = create_client(config.url, config.key)
        self._client: Client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    def get_active_entries(self) -> list[WaitlistEntry]:
        """Get all waitlist entries with status Active."""
        try:
            result = (
                self._client.table(ENTRIES_TABLE)
                .select("*")
                .eq("status", EntryStatus.ACTIVE.value)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to load active entries: {e}") from e

        return self._parse_entries(result.data or [])

    def get_all_entries(self) -> list[WaitlistEntry]:
        """Get every waitlist entry, newest first."""
        try:
            result = (
                self._client.table(ENTRIES_TABLE)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to load entries: {e}") from e

        return self._parse_entries(result.data or [])

    def _parse_entries(self, rows: list[dict]) -> list[WaitlistEntry]:
        entries = []
        for data in rows:
            try:
                entries.append(WaitlistEntry.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed entry {data.get('id', 'unknown')}: {e}")
        return entries

    def mark_entries_matched(self, entry_ids: list[str], matched_at: datetime) -> int:
        """
        Stamp matched_at on entries that have never been matched.

        The "matched_at is null" filter makes this safe to repeat: an entry
        keeps the timestamp of its first match.

        Returns:
            Number of rows actually updated
        """
        if not entry_ids:
            return 0

        try:
            result = (
                self._client.table(ENTRIES_TABLE)
                .update({
                    "matched_at": matched_at.isoformat(),
                    "outcome_status": OutcomeStatus.MATCHED.value,
                })
                .in_("id", list(entry_ids))
                .is_("matched_at", "null")
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to stamp matched_at: {e}") from e

        return len(result.data or [])

    def mark_entries_matched_by_email(self, emails: list[str], matched_at: datetime) -> int:
        """
        Same as mark_entries_matched, keyed on contact email.

        Stored emails are entered by hand and keep their original casing,
        so addresses are compared lower-cased on this side and the stamp
        goes out by id.
        """
        wanted = {e.strip().lower() for e in emails if e and e.strip()}
        if not wanted:
            return 0

        try:
            result = (
                self._client.table(ENTRIES_TABLE)
                .select("id, email")
                .is_("matched_at", "null")
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to look up entries by email: {e}") from e

        ids = [
            str(row["id"]) for row in (result.data or [])
            if (row.get("email") or "").strip().lower() in wanted
        ]
        return self.mark_entries_matched(ids, matched_at)

    # =========================================================================
    # LEDGER OPERATIONS
    # =========================================================================

    def get_notified_match_keys(self) -> set[str]:
        """Snapshot of every match_key in the ledger."""
        try:
            result = self._client.table(LEDGER_TABLE).select("match_key").execute()
        except Exception as e:
            raise DatabaseError(f"Failed to load notified matches: {e}") from e

        return {row["match_key"] for row in (result.data or [])}

    def insert_notified_match(self, match: NotifiedMatch) -> bool:
        """
        Append a ledger row unless its match_key already exists.

        Uses an upsert that ignores conflicts on the unique match_key, so
        two concurrent runs can't both create the row.

        Returns:
            True if this call created the row, False if it was already there
        """
        try:
            result = (
                self._client.table(LEDGER_TABLE)
                .upsert(match.to_dict(), on_conflict="match_key", ignore_duplicates=True)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to record notified match {match.match_key}: {e}") from e

        inserted = bool(result.data)
        if inserted:
            logger.info(f"Recorded notified match: {match.match_key}")
        else:
            logger.info(f"Notified match already recorded: {match.match_key}")
        return inserted


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
