"""
pytest configuration and fixtures for Waitlist Alerts tests.
"""
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from waitlist_alerts.alerts import AlertSender
from waitlist_alerts.config import AgentDirectory, AppConfig
from waitlist_alerts.errors import DatabaseError, FeedUnavailableError
from waitlist_alerts.models import (
    EntryStatus,
    EntryType,
    NotifiedMatch,
    OutcomeStatus,
    SendResult,
    UnitRecord,
    WaitlistEntry,
)
from waitlist_alerts.outcomes import OutcomeRecorder
from waitlist_alerts.pipeline import MatchAlertPipeline


TODAY = date(2026, 3, 1)


# =============================================================================
# FACTORIES
# =============================================================================

def make_entry(id="entry-1", **overrides) -> WaitlistEntry:
    """Active prospect for a Warren 2BR, moving in on 2026-03-01."""
    data = dict(
        id=id,
        entry_type=EntryType.PROSPECT,
        status=EntryStatus.ACTIVE,
        property="Warren",
        unit_type_pref="2BR",
        move_in_date=date(2026, 3, 1),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        assigned_agent="Jane Agent",
        full_name=f"Person {id}",
        email=f"{id}@example.com",
        phone="312-555-0100",
    )
    data.update(overrides)
    return WaitlistEntry(**data)


def make_unit(unique_id="unit-505", **overrides) -> UnitRecord:
    """Available Warren 2BR at $1,800, available 2026-03-01."""
    data = dict(
        property="Warren",
        unit_type="2BR",
        rent_price=1800.0,
        unique_id=unique_id,
        unit_number="505",
        available_date="2026-03-01",
    )
    data.update(overrides)
    return UnitRecord(**data)


# =============================================================================
# FAKES
# =============================================================================

class FakeDatabase:
    """In-memory stand-in for Database with the same method surface."""

    def __init__(self, entries: Optional[list[WaitlistEntry]] = None):
        self.entries: list[WaitlistEntry] = list(entries or [])
        self.ledger: dict[str, NotifiedMatch] = {}
        self.fail_reads = False
        self.fail_ledger_reads = False
        self.fail_ledger_writes = False
        self.fail_stamps = False
        self.insert_calls = 0

    def get_active_entries(self) -> list[WaitlistEntry]:
        if self.fail_reads:
            raise DatabaseError("entries unavailable")
        return [e for e in self.entries if e.status == EntryStatus.ACTIVE]

    def get_all_entries(self) -> list[WaitlistEntry]:
        if self.fail_reads:
            raise DatabaseError("entries unavailable")
        return list(self.entries)

    def mark_entries_matched(self, entry_ids: list[str], matched_at: datetime) -> int:
        if self.fail_stamps:
            raise DatabaseError("update rejected")
        return self._stamp(lambda e: e.id in entry_ids, matched_at)

    def mark_entries_matched_by_email(self, emails: list[str], matched_at: datetime) -> int:
        if self.fail_stamps:
            raise DatabaseError("update rejected")
        wanted = {e.strip().lower() for e in emails}
        return self._stamp(lambda e: e.email.strip().lower() in wanted, matched_at)

    def _stamp(self, selected, matched_at: datetime) -> int:
        updated = 0
        for entry in self.entries:
            if selected(entry) and entry.matched_at is None:
                entry.matched_at = matched_at
                entry.outcome_status = OutcomeStatus.MATCHED
                updated += 1
        return updated

    def get_notified_match_keys(self) -> set[str]:
        if self.fail_ledger_reads:
            raise DatabaseError("ledger unavailable")
        return set(self.ledger)

    def insert_notified_match(self, match: NotifiedMatch) -> bool:
        self.insert_calls += 1
        if self.fail_ledger_writes:
            raise DatabaseError("ledger write rejected")
        if match.match_key in self.ledger:
            return False
        self.ledger[match.match_key] = match
        return True


class FakeEmailClient:
    """Records every send instead of talking to a provider."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_all = False
        self.fail_for: set[str] = set()

    def send(self, to_email: str, subject: str, html_content: str, text_content: str = "") -> SendResult:
        if self.fail_all or to_email in self.fail_for:
            return SendResult(error="provider rejected message", to_email=to_email)
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content,
        })
        return SendResult(message_id=f"msg-{len(self.sent)}", to_email=to_email)


class FakeFeed:
    """Unit feed returning a fixed list."""

    name = "fake feed"

    def __init__(self, units: Optional[list[UnitRecord]] = None):
        self.units = list(units or [])
        self.unavailable = False

    def fetch_units(self) -> list[UnitRecord]:
        if self.unavailable:
            raise FeedUnavailableError("sheet unreachable")
        return list(self.units)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def app_config():
    return AppConfig(app_url="https://waitlist.example.com")


@pytest.fixture
def directory():
    return AgentDirectory(
        agents={"Jane Agent": "jane@example.com", "Sam Agent": "sam@example.com"},
        fallback_email="leasing@example.com",
    )


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_email():
    return FakeEmailClient()


@pytest.fixture
def fake_feed():
    return FakeFeed()


@pytest.fixture
def sender(fake_email, directory):
    return AlertSender(email_client=fake_email, directory=directory)


@pytest.fixture
def pipeline(fake_db, fake_feed, sender, app_config):
    return MatchAlertPipeline(
        db=fake_db,
        feed=fake_feed,
        sender=sender,
        recorder=OutcomeRecorder(fake_db),
        config=app_config,
    )


@pytest.fixture
def unconfigured_db(monkeypatch):
    """No Supabase credentials in the environment and nothing cached."""
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("waitlist_alerts.config._supabase_config", None)
    monkeypatch.setattr("waitlist_alerts.db._db", None)
