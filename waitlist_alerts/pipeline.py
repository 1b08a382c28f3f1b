"""
Main Pipeline module for Waitlist Alerts.

Orchestrates one run of the match engine:
1. Load → Available units from the feed, active entries from Supabase
2. Match → Entries that qualify for each unit, ranked transfers-first
3. Group → Split each unit's matches by assigned agent
4. Dedup → Drop (unit, agent) groups already in the notified_matches ledger
5. Alert → Email each new group to its agent
6. Record → Ledger row, then matched_at on the entries, for delivered alerts

Runs are synchronous and keep no state between invocations apart from the
ledger. Whoever triggers a run (HTTP handler, poller, CLI) owns its timing.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from .alerts import AlertSender
from .config import UNASSIGNED_AGENT, AppConfig, get_app_config
from .db import get_db
from .dedup import AlertCandidate, NotificationDeduplicator
from .errors import (
    ConfigurationError,
    DatabaseError,
    FeedUnavailableError,
    PipelineError,
    ValidationError,
)
from .matching import WaitlistMatcher, audit_properties, group_by_agent
from .models import (
    Contact,
    NotificationOutcome,
    RunReport,
    UnitRecord,
    WaitlistEntry,
    parse_timestamp,
    utcnow,
)
from .outcomes import OutcomeRecorder, get_outcome_stats
from .sources import BaseUnitFeed, GoogleSheetsUnitFeed

logger = logging.getLogger(__name__)


# =============================================================================
# PIPELINE
# =============================================================================

class MatchAlertPipeline:
    """
    One configured instance of the match engine.

    Collaborators are injectable; anything left out is built from the
    environment on first use.

    Usage:
        pipeline = MatchAlertPipeline()
        report = pipeline.run()
    """

    def __init__(
        self,
        db=None,
        feed: Optional[BaseUnitFeed] = None,
        sender: Optional[AlertSender] = None,
        recorder: Optional[OutcomeRecorder] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or get_app_config()
        self._db = db
        self._feed = feed
        self._sender = sender
        self._recorder = recorder
        self.matcher = WaitlistMatcher(flex_window_days=self.config.flex_window_days)

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    @property
    def feed(self) -> BaseUnitFeed:
        if self._feed is None:
            self._feed = GoogleSheetsUnitFeed()
        return self._feed

    @property
    def sender(self) -> AlertSender:
        if self._sender is None:
            self._sender = AlertSender()
        return self._sender

    @property
    def recorder(self) -> OutcomeRecorder:
        if self._recorder is None:
            self._recorder = OutcomeRecorder(self._db)
        return self._recorder

    def run(
        self,
        today: Optional[date] = None,
        last_run: Optional[datetime] = None,
        now: Optional[datetime] = None,
        units: Optional[list[UnitRecord]] = None,
        entries: Optional[list[WaitlistEntry]] = None,
    ) -> RunReport:
        """
        Run the engine once.

        Args:
            today: Date used for units available immediately (default: local today)
            last_run: When the caller last ran; used for the optional throttle
            now: Current time (default: utcnow); naive values are taken as UTC
            units: Pre-fetched units; fetched from the feed when omitted
            entries: Pre-fetched entries; loaded from Supabase when omitted

        Returns:
            RunReport with counts and one outcome per attempted alert

        Raises:
            PipelineError: the feed, the entry store or the ledger is unreachable
        """
        now = parse_timestamp(now) if now else utcnow()
        today = today or date.today()
        report = RunReport(checked=now)

        skip_reason = self._throttle_reason(last_run, now)
        if skip_reason:
            logger.info(f"Skipping run: {skip_reason}")
            report.skipped = True
            report.skip_reason = skip_reason
            return report

        units = self._load_units() if units is None else units
        entries = self._load_entries() if entries is None else entries
        entries = [e for e in entries if e.is_active]

        try:
            dedup = NotificationDeduplicator(self.db)
            dedup.load()
            sender = self.sender
        except (DatabaseError, ConfigurationError) as e:
            raise PipelineError(f"Ledger or email setup unavailable: {e}") from e

        report.units_checked = len(units)
        report.entries_checked = len(entries)

        unit_matches = self.matcher.match_units(units, entries, today)
        report.matches_found = sum(len(um.entries) for um in unit_matches)

        for um in unit_matches:
            groups = group_by_agent(um.entries)
            for candidate in dedup.filter_new(um.unit, groups):
                report.notifications.append(self._notify(candidate, dedup, sender))

        report.property_audit = audit_properties(units, entries)

        logger.info(
            f"Run complete: {report.units_checked} units, {report.entries_checked} entries, "
            f"{report.matches_found} matches, {report.notifications_sent}/{len(report.notifications)} alerts sent"
        )
        return report

    def _throttle_reason(self, last_run: Optional[datetime], now: datetime) -> Optional[str]:
        minutes = self.config.min_poll_interval_minutes
        if last_run is None or minutes <= 0:
            return None
        last_run = parse_timestamp(last_run)
        if now - last_run < timedelta(minutes=minutes):
            return f"last run at {last_run.isoformat()} is within {minutes} minutes"
        return None

    def _load_units(self) -> list[UnitRecord]:
        try:
            return self.feed.fetch_units()
        except (FeedUnavailableError, ConfigurationError) as e:
            raise PipelineError(f"Unit feed unavailable: {e}") from e

    def _load_entries(self) -> list[WaitlistEntry]:
        try:
            return self.db.get_active_entries()
        except (DatabaseError, ConfigurationError) as e:
            raise PipelineError(f"Waitlist entries unavailable: {e}") from e

    def _notify(
        self,
        candidate: AlertCandidate,
        dedup: NotificationDeduplicator,
        sender: AlertSender,
    ) -> NotificationOutcome:
        """
        Send one (unit, agent) alert and record it if it went out.

        A failed send leaves the ledger untouched so the next run retries.
        A ledger failure after a successful send is logged and reported;
        the send itself still counts.
        """
        outcome = NotificationOutcome(
            agent=candidate.agent,
            unit_id=candidate.unit.unique_id,
            unit_label=candidate.unit.label,
            contacts=len(candidate.entries),
            success=False,
        )

        result = sender.send(candidate.agent, candidate.unit, candidate.entries)
        if not result.ok:
            outcome.error = result.error
            return outcome

        outcome.success = True
        outcome.email_id = result.message_id
        sent_at = utcnow()

        try:
            dedup.record(candidate, notified_at=sent_at)
            outcome.ledger_recorded = True
        except DatabaseError as e:
            logger.error(f"Alert {candidate.match_key} was sent but could not be recorded: {e}")
            outcome.error = f"Ledger write failed: {e}"

        self.recorder.record_matched(candidate.entry_ids, sent_at)
        return outcome


# =============================================================================
# MANUAL NOTIFY
# =============================================================================

def parse_manual_request(payload) -> tuple[UnitRecord, Optional[str], list[Contact]]:
    """
    Validate a manual notify request body.

    Raises:
        ValidationError: the body is missing fields or has no contacts
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    unit_data = payload.get("unit")
    if not isinstance(unit_data, dict):
        raise ValidationError("unit is required")
    for key in ("property", "unit_type"):
        if not unit_data.get(key):
            raise ValidationError(f"unit.{key} is required")

    contacts_data = payload.get("contacts")
    if not contacts_data:
        raise ValidationError("No contacts provided")
    if not isinstance(contacts_data, list) or not all(isinstance(c, dict) for c in contacts_data):
        raise ValidationError("contacts must be a list of objects")

    agent = payload.get("agent")
    if agent is not None and not isinstance(agent, str):
        raise ValidationError("agent must be a string")

    try:
        unit = UnitRecord.from_dict(unit_data)
        contacts = [Contact.from_dict(c) for c in contacts_data]
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid request: {e}") from e

    return unit, agent or None, contacts


def notify_manual(
    payload,
    sender: Optional[AlertSender] = None,
    recorder: Optional[OutcomeRecorder] = None,
) -> dict:
    """
    Send an alert for one unit chosen in the UI.

    Doesn't touch the ledger. Contacts are stamped as matched by email.

    Returns:
        Response body; "success" is False if delivery failed

    Raises:
        ValidationError: the request body is invalid
    """
    unit, agent, contacts = parse_manual_request(payload)
    sender = sender or AlertSender()
    display_agent = agent or UNASSIGNED_AGENT

    result = sender.send_manual(unit, agent, contacts)
    if not result.ok:
        return {
            "success": False,
            "error": result.error,
            "agentEmail": result.to_email,
        }

    recorder = recorder or OutcomeRecorder()
    recorder.record_matched_emails([c.email for c in contacts])

    return {
        "success": True,
        "message": f"Email sent to {display_agent} ({result.to_email})",
        "emailId": result.message_id,
        "agentEmail": result.to_email,
        "contactCount": len(contacts),
    }


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def run_match_alerts(
    units: Optional[list[UnitRecord]] = None,
    entries: Optional[list[WaitlistEntry]] = None,
    today: Optional[date] = None,
    last_run: Optional[datetime] = None,
    now: Optional[datetime] = None,
    **collaborators,
) -> RunReport:
    """
    Convenience function to run the engine once.

    Args:
        units: Pre-fetched units (default: fetch from the feed)
        entries: Pre-fetched entries (default: load from Supabase)
        today: Date used for units available immediately
        last_run: Caller's previous run time, for the optional throttle
        now: Current time
        **collaborators: db / feed / sender / recorder / config overrides

    Returns:
        RunReport
    """
    pipeline = MatchAlertPipeline(**collaborators)
    return pipeline.run(today=today, last_run=last_run, now=now, units=units, entries=entries)


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for running the engine."""
    import argparse

    parser = argparse.ArgumentParser(description="Waitlist Alerts Match Engine")
    parser.add_argument(
        "--run",
        action="store_true",
        help="Check for new matches and alert agents once"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print waitlist outcome statistics"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.run:
        report = run_match_alerts()
        print(json.dumps(report.to_dict(), indent=2))
    elif args.stats:
        stats = get_outcome_stats()
        print(json.dumps(stats.to_dict(), indent=2))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
