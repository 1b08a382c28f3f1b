"""
Tests for the Supabase wrapper, using a mocked client.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from waitlist_alerts.db import Database, ENTRIES_TABLE, LEDGER_TABLE
from waitlist_alerts.errors import DatabaseError
from waitlist_alerts.models import NotifiedMatch


def _client(data=None, error=None):
    """MagicMock whose query builder chains return itself."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "eq", "order", "update", "upsert", "in_", "is_"):
        getattr(query, method).return_value = query
    if error:
        query.execute.side_effect = error
    else:
        query.execute.return_value = MagicMock(data=data)
    return client, query


ROW = {
    "id": "e1",
    "entry_type": "Internal Transfer",
    "status": "Active",
    "property": "Warren",
    "unit_type_pref": "1BR,2BR",
    "max_budget": "1800",
    "move_in_date": "2026-03-01",
    "created_at": "2026-01-01T12:00:00Z",
    "assigned_agent": "Jane Agent",
}


def test_get_active_entries_parses_rows():
    client, query = _client(data=[ROW])

    entries = Database(client).get_active_entries()

    client.table.assert_called_with(ENTRIES_TABLE)
    query.eq.assert_called_with("status", "Active")
    assert len(entries) == 1
    assert entries[0].is_transfer
    assert entries[0].unit_types == {"1BR", "2BR"}
    assert entries[0].created_at.tzinfo is not None


def test_malformed_rows_are_skipped():
    client, _ = _client(data=[ROW, {"id": "bad", "entry_type": "Alien", "move_in_date": "2026-03-01"}, {"id": "x"}])
    assert [e.id for e in Database(client).get_active_entries()] == ["e1"]


def test_read_failure_is_database_error():
    client, _ = _client(error=RuntimeError("connection reset"))
    with pytest.raises(DatabaseError):
        Database(client).get_active_entries()


def test_mark_entries_matched_only_touches_unmatched():
    client, query = _client(data=[{"id": "e1"}])
    matched_at = datetime(2026, 3, 1, tzinfo=timezone.utc)

    updated = Database(client).mark_entries_matched(["e1", "e2"], matched_at)

    assert updated == 1
    query.in_.assert_called_with("id", ["e1", "e2"])
    query.is_.assert_called_with("matched_at", "null")
    payload = query.update.call_args.args[0]
    assert payload["matched_at"] == matched_at.isoformat()


def test_get_notified_match_keys():
    client, _ = _client(data=[{"match_key": "U1:Jane Agent"}, {"match_key": "U2:Sam Agent"}])
    assert Database(client).get_notified_match_keys() == {"U1:Jane Agent", "U2:Sam Agent"}
    client.table.assert_called_with(LEDGER_TABLE)


def test_insert_notified_match_new_row():
    client, query = _client(data=[{"match_key": "U1:Jane Agent"}])
    match = NotifiedMatch("U1:Jane Agent", "Jane Agent", "U1", ["e1"])

    assert Database(client).insert_notified_match(match) is True
    query.upsert.assert_called_with(match.to_dict(), on_conflict="match_key", ignore_duplicates=True)


def test_insert_notified_match_existing_row():
    client, _ = _client(data=[])
    match = NotifiedMatch("U1:Jane Agent", "Jane Agent", "U1", ["e1"])
    assert Database(client).insert_notified_match(match) is False


def test_insert_failure_is_database_error():
    client, _ = _client(error=RuntimeError("permission denied"))
    with pytest.raises(DatabaseError):
        Database(client).insert_notified_match(NotifiedMatch("k", "a", "u"))


def test_mark_entries_matched_by_email_ignores_stored_case():
    client, query = _client()
    query.execute.side_effect = [
        MagicMock(data=[
            {"id": "e1", "email": "Pat.Doe@Example.com"},
            {"id": "e2", "email": "someone@example.com"},
            {"id": "e3", "email": None},
        ]),
        MagicMock(data=[{"id": "e1"}]),
    ]
    matched_at = datetime(2026, 3, 1, tzinfo=timezone.utc)

    updated = Database(client).mark_entries_matched_by_email(["pat.doe@example.com"], matched_at)

    assert updated == 1
    query.select.assert_called_with("id, email")
    query.in_.assert_called_with("id", ["e1"])
    query.is_.assert_called_with("matched_at", "null")


def test_mark_entries_matched_by_email_without_hits_skips_update():
    client, query = _client(data=[{"id": "e2", "email": "someone@example.com"}])

    assert Database(client).mark_entries_matched_by_email(["pat@example.com"], datetime.now(timezone.utc)) == 0
    query.update.assert_not_called()


def test_reporting_columns_are_parsed():
    client, _ = _client(data=[dict(
        ROW,
        entry_source="self",
        internal_notes="called back",
        tour_scheduled_at="2026-03-10T15:00:00Z",
        lease_signed_at="2026-03-20T15:00:00+00:00",
    )])

    entry = Database(client).get_active_entries()[0]

    assert entry.is_self_added
    assert entry.tour_scheduled_at == datetime(2026, 3, 10, 15, tzinfo=timezone.utc)
    assert entry.applied_at is None
    assert entry.lease_signed_at.day == 20
