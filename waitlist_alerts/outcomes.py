"""
Outcomes module for Waitlist Alerts.

Handles:
1. Stamping entries as matched the first time they appear in a delivered alert
2. Funnel statistics over entry outcomes
3. Year-to-date and current-week activity metrics, per Friday-Thursday week

matched_at is written with a "only if still null" guard, so an entry keeps
the date of its first match no matter how many alerts list it later.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from .db import get_db
from .errors import ConfigurationError, DatabaseError
from .models import OutcomeStatus, WaitlistEntry, utcnow

logger = logging.getLogger(__name__)

FRIDAY = 4  # date.weekday()


# =============================================================================
# OUTCOME RECORDER
# =============================================================================

class OutcomeRecorder:
    """
    Marks entries as matched after a successful send.

    Failures are logged and reported as 0 updates; the alert has already
    gone out and the ledger row is what prevents a resend. That includes
    a missing Supabase configuration, since the store is only resolved
    when there is something to stamp.

    Usage:
        recorder = OutcomeRecorder()
        recorder.record_matched(["entry-1", "entry-2"])
    """

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def record_matched(self, entry_ids: list[str], sent_at: Optional[datetime] = None) -> int:
        """
        Stamp matched_at on entries that don't have it yet.

        Args:
            entry_ids: Entries included in a delivered alert
            sent_at: Delivery time (defaults to now)

        Returns:
            Number of entries stamped by this call
        """
        ids = list(dict.fromkeys(i for i in entry_ids if i))
        if not ids:
            return 0

        try:
            updated = self.db.mark_entries_matched(ids, sent_at or utcnow())
        except (DatabaseError, ConfigurationError) as e:
            logger.error(f"Failed to update matched_at for {len(ids)} entries: {e}")
            return 0

        logger.info(f"Stamped matched_at on {updated}/{len(ids)} entries")
        return updated

    def record_matched_emails(self, emails: list[str], sent_at: Optional[datetime] = None) -> int:
        """Same as record_matched, for contacts identified by email."""
        cleaned = list(dict.fromkeys(e.strip().lower() for e in emails if e and e.strip()))
        if not cleaned:
            return 0

        try:
            updated = self.db.mark_entries_matched_by_email(cleaned, sent_at or utcnow())
        except (DatabaseError, ConfigurationError) as e:
            logger.error(f"Failed to update matched_at for {len(cleaned)} contacts: {e}")
            return 0

        logger.info(f"Stamped matched_at on {updated} entries by email")
        return updated


# =============================================================================
# OUTCOME ANALYSIS
# =============================================================================

@dataclass
class ReportPeriod:
    """A reporting window of whole days, both ends inclusive."""
    label: str
    start: date
    end: date

    def contains(self, value: Optional[datetime]) -> bool:
        """True if a UTC timestamp falls on a day inside the window."""
        if value is None:
            return False
        return self.start <= value.astimezone(timezone.utc).date() <= self.end

    @property
    def range_label(self) -> str:
        return f"{_short_date(self.start)} - {_short_date(self.end)}"


def _short_date(value: date) -> str:
    return f"{value:%b} {value.day}"


def ytd_period(today: Optional[date] = None) -> ReportPeriod:
    """January 1 through December 31 of today's year (UTC)."""
    today = today or utcnow().date()
    return ReportPeriod(f"YTD {today.year}", date(today.year, 1, 1), date(today.year, 12, 31))


def week_period(today: Optional[date] = None) -> ReportPeriod:
    """
    The leasing week containing today.

    Weeks run Friday through Thursday, so a Friday starts a new week and
    a Thursday closes the one that began six days earlier.
    """
    today = today or utcnow().date()
    start = today - timedelta(days=(today.weekday() - FRIDAY) % 7)
    return ReportPeriod("This Week", start, start + timedelta(days=6))


@dataclass
class PeriodMetrics:
    """Registration and follow-through counts for one reporting window."""
    period: ReportPeriod
    total_entries: int = 0  # created in the window
    self_entries: int = 0
    matched_count: int = 0  # created and first matched in the window
    tours_scheduled: int = 0
    applied: int = 0
    lease_signed: int = 0

    @property
    def agent_entries(self) -> int:
        return self.total_entries - self.self_entries

    def to_dict(self) -> dict:
        return {
            "label": self.period.label,
            "range": self.period.range_label,
            "metrics": {
                "totalEntries": self.total_entries,
                "agentEntries": self.agent_entries,
                "selfEntries": self.self_entries,
                "matchedCount": self.matched_count,
                "toursScheduled": self.tours_scheduled,
                "applied": self.applied,
                "leaseSigned": self.lease_signed,
            },
        }


def calculate_period_metrics(entries: list[WaitlistEntry], period: ReportPeriod) -> PeriodMetrics:
    """
    Count activity inside a window.

    Registrations and matches are counted over entries created in the
    window. Tours, applications and leases count whenever they happened
    in the window, regardless of when the entry was created.
    """
    created = [e for e in entries if period.contains(e.created_at)]
    return PeriodMetrics(
        period=period,
        total_entries=len(created),
        self_entries=sum(1 for e in created if e.is_self_added),
        matched_count=sum(1 for e in created if period.contains(e.matched_at)),
        tours_scheduled=sum(1 for e in entries if period.contains(e.tour_scheduled_at)),
        applied=sum(1 for e in entries if period.contains(e.applied_at)),
        lease_signed=sum(1 for e in entries if period.contains(e.lease_signed_at)),
    )


def property_breakdown(entries: list[WaitlistEntry]) -> dict[str, dict[str, int]]:
    """Entry counts per property, split by self-registered vs agent-added."""
    breakdown: dict[str, dict[str, int]] = {}
    for entry in entries:
        counts = breakdown.setdefault(entry.property, {"total": 0, "self": 0, "agent": 0})
        counts["total"] += 1
        counts["self" if entry.is_self_added else "agent"] += 1
    return breakdown


@dataclass
class OutcomeStats:
    """Funnel counts over all waitlist entries."""
    total_entries: int = 0
    matched_entries: int = 0  # entries with matched_at set
    by_status: dict[str, int] = field(default_factory=dict)
    ytd: Optional[PeriodMetrics] = None
    week: Optional[PeriodMetrics] = None
    by_property: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def match_rate(self) -> float:
        """Share of entries that have ever been matched (0-1)."""
        if self.total_entries == 0:
            return 0.0
        return self.matched_entries / self.total_entries

    @property
    def lease_rate(self) -> float:
        """Share of matched entries that ended in a lease (0-1)."""
        if self.matched_entries == 0:
            return 0.0
        return self.by_status.get(OutcomeStatus.LEASED.value, 0) / self.matched_entries

    def to_dict(self) -> dict:
        data = {
            "totalEntries": self.total_entries,
            "matchedEntries": self.matched_entries,
            "matchRate": round(self.match_rate, 4),
            "leaseRate": round(self.lease_rate, 4),
            "funnel": dict(self.by_status),
            "byProperty": {name: dict(counts) for name, counts in self.by_property.items()},
        }
        if self.ytd is not None:
            data["ytd"] = self.ytd.to_dict()
        if self.week is not None:
            data["week"] = self.week.to_dict()
        return data


def get_outcome_stats(db=None, today: Optional[date] = None) -> OutcomeStats:
    """
    Compute funnel statistics plus year-to-date and current-week metrics.

    Entries without an outcome_status count as active.
    """
    db = db or get_db()
    entries = db.get_all_entries()

    by_status = {status.value: 0 for status in OutcomeStatus}
    matched = 0
    for entry in entries:
        status = entry.outcome_status or OutcomeStatus.ACTIVE
        by_status[status.value] += 1
        if entry.matched_at is not None:
            matched += 1

    return OutcomeStats(
        total_entries=len(entries),
        matched_entries=matched,
        by_status=by_status,
        ytd=calculate_period_metrics(entries, ytd_period(today)),
        week=calculate_period_metrics(entries, week_period(today)),
        by_property=property_breakdown(entries),
    )
