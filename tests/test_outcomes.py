"""
Tests for matched_at stamping, funnel statistics and period metrics.
"""
from datetime import date, datetime, timezone

import pytest

from conftest import make_entry
from waitlist_alerts.models import OutcomeStatus
from waitlist_alerts.outcomes import (
    OutcomeRecorder,
    ReportPeriod,
    calculate_period_metrics,
    get_outcome_stats,
    property_breakdown,
    week_period,
    ytd_period,
)


FIRST = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
LATER = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


def test_stamping_is_idempotent(fake_db):
    fake_db.entries = [make_entry("e1"), make_entry("e2")]
    recorder = OutcomeRecorder(fake_db)

    assert recorder.record_matched(["e1", "e2"], FIRST) == 2
    assert recorder.record_matched(["e1", "e2"], LATER) == 0
    assert all(e.matched_at == FIRST for e in fake_db.entries)


def test_stamping_dedups_ids(fake_db):
    fake_db.entries = [make_entry("e1")]
    assert OutcomeRecorder(fake_db).record_matched(["e1", "e1", ""], FIRST) == 1


def test_empty_ids_do_nothing(fake_db):
    assert OutcomeRecorder(fake_db).record_matched([]) == 0


def test_database_failure_returns_zero(fake_db):
    fake_db.entries = [make_entry("e1")]
    fake_db.fail_stamps = True
    assert OutcomeRecorder(fake_db).record_matched(["e1"], FIRST) == 0


def test_stamping_by_email_normalizes_case(fake_db):
    fake_db.entries = [make_entry("e1", email="pat@example.com")]
    recorder = OutcomeRecorder(fake_db)

    assert recorder.record_matched_emails(["  PAT@Example.com "], FIRST) == 1
    assert recorder.record_matched_emails(["pat@example.com"], LATER) == 0
    assert fake_db.entries[0].matched_at == FIRST


def test_outcome_stats(fake_db):
    fake_db.entries = [
        make_entry("e1", matched_at=FIRST, outcome_status=OutcomeStatus.LEASED),
        make_entry("e2", matched_at=FIRST, outcome_status=OutcomeStatus.MATCHED),
        make_entry("e3"),
        make_entry("e4"),
    ]

    stats = get_outcome_stats(fake_db)

    assert stats.total_entries == 4
    assert stats.matched_entries == 2
    assert stats.match_rate == 0.5
    assert stats.lease_rate == 0.5
    assert stats.by_status["active"] == 2
    data = stats.to_dict()
    assert data["funnel"]["leased"] == 1
    assert data["matchRate"] == 0.5


def test_outcome_stats_empty(fake_db):
    stats = get_outcome_stats(fake_db)
    assert stats.match_rate == 0.0
    assert stats.lease_rate == 0.0


def test_stamping_by_email_matches_mixed_case_stored_address(fake_db):
    fake_db.entries = [make_entry("e1", email="Pat.Doe@Example.com")]

    assert OutcomeRecorder(fake_db).record_matched_emails(["pat.doe@example.com"], FIRST) == 1
    assert fake_db.entries[0].matched_at == FIRST


class TestUnconfiguredStore:
    def test_recorder_builds_without_credentials(self, unconfigured_db):
        OutcomeRecorder()

    def test_stamping_returns_zero(self, unconfigured_db):
        recorder = OutcomeRecorder()
        assert recorder.record_matched(["e1"], FIRST) == 0
        assert recorder.record_matched_emails(["pat@example.com"], FIRST) == 0


# =============================================================================
# PERIOD METRICS
# =============================================================================

class TestWeekPeriod:
    @pytest.mark.parametrize("today", [
        date(2026, 3, 6),   # Friday opens the week
        date(2026, 3, 7),   # Saturday
        date(2026, 3, 8),   # Sunday
        date(2026, 3, 12),  # Thursday closes it
    ])
    def test_runs_friday_through_thursday(self, today):
        period = week_period(today)
        assert period.start == date(2026, 3, 6)
        assert period.end == date(2026, 3, 12)
        assert period.range_label == "Mar 6 - Mar 12"

    def test_thursday_and_friday_fall_in_different_weeks(self):
        assert week_period(date(2026, 3, 5)).end == date(2026, 3, 5)
        assert week_period(date(2026, 3, 6)).start == date(2026, 3, 6)

    def test_week_can_span_a_year_boundary(self):
        period = week_period(date(2027, 1, 1))  # a Friday
        assert period.start == date(2027, 1, 1)
        assert week_period(date(2026, 12, 31)).start == date(2026, 12, 25)

    def test_contains_whole_days(self):
        period = week_period(date(2026, 3, 9))
        assert period.contains(datetime(2026, 3, 6, 0, 0, tzinfo=timezone.utc))
        assert period.contains(datetime(2026, 3, 12, 23, 59, 59, tzinfo=timezone.utc))
        assert not period.contains(datetime(2026, 3, 5, 23, 59, 59, tzinfo=timezone.utc))
        assert not period.contains(datetime(2026, 3, 13, 0, 0, tzinfo=timezone.utc))
        assert not period.contains(None)


def test_ytd_period():
    period = ytd_period(date(2026, 3, 9))
    assert period.label == "YTD 2026"
    assert (period.start, period.end) == (date(2026, 1, 1), date(2026, 12, 31))
    assert period.range_label == "Jan 1 - Dec 31"


class TestPeriodMetrics:
    def test_counts(self):
        period = ReportPeriod("This Week", date(2026, 3, 6), date(2026, 3, 12))
        entries = [
            make_entry("self-source", created_at=_at(date(2026, 3, 6)), entry_source="self"),
            make_entry("self-notes", created_at=_at(date(2026, 3, 7)), internal_notes="Came in via Public Form"),
            make_entry(
                "agent",
                created_at=_at(date(2026, 3, 8)),
                matched_at=_at(date(2026, 3, 9)),
                tour_scheduled_at=_at(date(2026, 3, 10)),
            ),
            # created last week, matched this week: not counted as matched
            make_entry(
                "old",
                created_at=_at(date(2026, 3, 1)),
                matched_at=_at(date(2026, 3, 6)),
                applied_at=_at(date(2026, 3, 11)),
                lease_signed_at=_at(date(2026, 3, 12)),
            ),
        ]

        metrics = calculate_period_metrics(entries, period)

        assert metrics.total_entries == 3
        assert metrics.self_entries == 2
        assert metrics.agent_entries == 1
        assert metrics.matched_count == 1
        assert metrics.tours_scheduled == 1
        assert metrics.applied == 1
        assert metrics.lease_signed == 1

    def test_to_dict_shape(self):
        period = ReportPeriod("This Week", date(2026, 3, 6), date(2026, 3, 12))
        data = calculate_period_metrics([], period).to_dict()
        assert data["label"] == "This Week"
        assert data["range"] == "Mar 6 - Mar 12"
        assert set(data["metrics"]) == {
            "totalEntries", "agentEntries", "selfEntries", "matchedCount",
            "toursScheduled", "applied", "leaseSigned",
        }


def test_property_breakdown():
    entries = [
        make_entry("w1"),
        make_entry("w2", entry_source="self"),
        make_entry("k1", property="Kenmore"),
    ]

    assert property_breakdown(entries) == {
        "Warren": {"total": 2, "self": 1, "agent": 1},
        "Kenmore": {"total": 1, "self": 0, "agent": 1},
    }


def test_outcome_stats_include_periods(fake_db):
    fake_db.entries = [make_entry("e1", created_at=_at(date(2026, 3, 6)))]

    data = get_outcome_stats(fake_db, today=date(2026, 3, 9)).to_dict()

    assert data["week"]["range"] == "Mar 6 - Mar 12"
    assert data["week"]["metrics"]["totalEntries"] == 1
    assert data["ytd"]["metrics"]["agentEntries"] == 1
    assert data["byProperty"]["Warren"]["total"] == 1
