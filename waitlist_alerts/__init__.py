"""
Waitlist Alerts - Unit Match Notification Engine

Watches the unit availability feed and tells leasing agents when an
available unit fits people on the waitlist. Transfers are ranked first,
each (unit, agent) alert goes out at most once, and matched entries are
stamped for funnel reporting.

Modules:
- config: Configuration and environment variables
- errors: Exception hierarchy
- models: Data models (dataclasses)
- db: Supabase integration for entries and the notification ledger
- sources: Unit availability feeds
- normalization: Map feed rows to unit records
- matching: Match predicate, ranking and agent grouping
- dedup: Notification ledger filtering
- alerts: Render and send alert emails
- outcomes: matched_at stamping and funnel statistics
- pipeline: Main orchestration
- scheduler: APScheduler polling caller
- server: Flask HTTP endpoints
"""

__version__ = "0.1.0"

# Convenient imports
from .models import (
    WaitlistEntry,
    UnitRecord,
    EntryType,
    EntryStatus,
    OutcomeStatus,
    MatchKind,
    MatchResult,
    MatchedEntry,
    Contact,
    NotifiedMatch,
    RunReport,
)
from .normalization import normalize_units, UnitNormalizer
from .matching import (
    check_date_window,
    matches,
    rank_entries,
    group_by_agent,
    find_unit_matches,
    WaitlistMatcher,
)
from .dedup import NotificationDeduplicator
from .alerts import AlertSender
from .outcomes import OutcomeRecorder, get_outcome_stats, OutcomeStats
from .pipeline import MatchAlertPipeline, run_match_alerts, notify_manual

__all__ = [
    # Models
    "WaitlistEntry",
    "UnitRecord",
    "EntryType",
    "EntryStatus",
    "OutcomeStatus",
    "MatchKind",
    "MatchResult",
    "MatchedEntry",
    "Contact",
    "NotifiedMatch",
    "RunReport",
    # Normalization
    "normalize_units",
    "UnitNormalizer",
    # Matching
    "check_date_window",
    "matches",
    "rank_entries",
    "group_by_agent",
    "find_unit_matches",
    "WaitlistMatcher",
    # Dedup
    "NotificationDeduplicator",
    # Alerts
    "AlertSender",
    # Outcomes
    "OutcomeRecorder",
    "get_outcome_stats",
    "OutcomeStats",
    # Pipeline
    "MatchAlertPipeline",
    "run_match_alerts",
    "notify_manual",
]
