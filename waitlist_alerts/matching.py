"""
Matching module for Waitlist Alerts.

Decides whether a waitlist entry qualifies for an available unit and
orders the qualifying entries for the agent who will work them.

Mandatory conditions: same property, acceptable unit type, and the unit's
availability date inside the requested move-in window widened by a grace
period on each side. Optional conditions (preferred unit numbers, budget)
only filter when the entry actually sets them.
"""

import re
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from .config import get_app_config
from .errors import ValidationError
from .models import (
    MatchedEntry,
    MatchResult,
    UnitRecord,
    WaitlistEntry,
)
from .normalization import IMMEDIATE_AVAILABILITY

logger = logging.getLogger(__name__)

DEFAULT_FLEX_DAYS = 30


# =============================================================================
# DATE WINDOW
# =============================================================================

def resolve_available_date(unit: UnitRecord, today: date) -> date:
    """
    Date a unit can be moved into.

    Units with no date, or 'now'/'available', are available today.

    Raises:
        ValueError: the date is present but not an ISO date
    """
    raw = (unit.available_date or "").strip()
    if not raw or raw.lower() in IMMEDIATE_AVAILABILITY:
        return today
    return date.fromisoformat(raw[:10])


def check_date_window(
    entry_start: date,
    entry_end: Optional[date],
    unit_available: date,
    flex_days: int = DEFAULT_FLEX_DAYS,
) -> MatchResult:
    """
    Compare a unit's availability with a requested move-in window.

    The window [entry_start, entry_end] is inclusive; a missing end means a
    single day. Availability inside the window is an exact match. Up to
    flex_days before the start or after the end (inclusive) is a flexible
    match, noted as before/after the requested range.
    """
    entry_end = entry_end or entry_start

    if entry_end < entry_start:
        logger.debug(f"Reversed move-in range {entry_start} - {entry_end}")
        return MatchResult.no_match("Move-in range ends before it starts")

    if entry_start <= unit_available <= entry_end:
        return MatchResult.exact()

    flex = timedelta(days=flex_days)
    shown = unit_available.strftime("%m/%d/%Y")

    if entry_start - flex <= unit_available < entry_start:
        return MatchResult.flexible(f"Unit available before requested range ({shown})")

    if entry_end < unit_available <= entry_end + flex:
        return MatchResult.flexible(f"Unit available after requested range ({shown})")

    return MatchResult.no_match()


def validate_entry_dates(entry: WaitlistEntry) -> None:
    """
    Reject entries whose move-in range ends before it starts.

    Meant for code that creates or edits entries; the matcher itself just
    never matches such an entry.
    """
    if entry.move_in_date_end and entry.move_in_date_end < entry.move_in_date:
        raise ValidationError(
            f"Entry {entry.id}: move_in_date_end {entry.move_in_date_end} "
            f"is before move_in_date {entry.move_in_date}"
        )


# =============================================================================
# PREDICATE
# =============================================================================

def matches(
    entry: WaitlistEntry,
    unit: UnitRecord,
    today: date,
    flex_days: int = DEFAULT_FLEX_DAYS,
) -> MatchResult:
    """
    Decide whether one entry qualifies for one unit.

    Args:
        entry: The waitlist entry
        unit: The available unit
        today: Date used for units that are available immediately
        flex_days: Grace period on either side of the move-in window

    Returns:
        MatchResult tagged exact/flexible, or a non-match

    Raises:
        ValueError: the unit's available date can't be parsed
    """
    if not entry.is_active:
        return MatchResult.no_match()

    # Mandatory
    if entry.property != unit.property:
        return MatchResult.no_match()
    if unit.unit_type not in entry.unit_types:
        return MatchResult.no_match()

    # Optional - only filter when the entry sets a value
    preferred = entry.preferred_unit_numbers
    if preferred and unit.unit_number.strip().lower() not in preferred:
        return MatchResult.no_match()
    if entry.max_budget > 0 and unit.rent_price > entry.max_budget:
        return MatchResult.no_match()

    unit_available = resolve_available_date(unit, today)
    return check_date_window(entry.move_in_date, entry.move_in_date_end, unit_available, flex_days)


# =============================================================================
# RANKING AND GROUPING
# =============================================================================

def rank_entries(matched: list[MatchedEntry]) -> list[MatchedEntry]:
    """
    Order matched entries for contact.

    Internal transfers always come before prospects. Within each group the
    earliest registration comes first. Ties keep their input order.
    """
    return sorted(matched, key=lambda m: (not m.entry.is_transfer, m.entry.created_at))


def group_by_agent(matched: list[MatchedEntry]) -> dict[str, list[MatchedEntry]]:
    """
    Split ranked entries by assigned agent, keeping their order.

    Entries without an agent are left out; nobody would receive the alert.
    """
    groups: dict[str, list[MatchedEntry]] = {}
    for m in matched:
        agent = m.entry.agent
        if agent is None:
            continue
        groups.setdefault(agent, []).append(m)
    return groups


# =============================================================================
# MATCHER
# =============================================================================

@dataclass
class UnitMatches:
    """All ranked entries that qualify for one unit."""
    unit: UnitRecord
    entries: list[MatchedEntry]


class WaitlistMatcher:
    """
    Matches available units against waitlist entries.

    Usage:
        matcher = WaitlistMatcher()
        unit_matches = matcher.match_units(units, entries, today)
    """

    def __init__(self, flex_window_days: Optional[int] = None):
        if flex_window_days is None:
            flex_window_days = get_app_config().flex_window_days
        self.flex_window_days = flex_window_days

    def match(self, entry: WaitlistEntry, unit: UnitRecord, today: date) -> MatchResult:
        """Match a single entry against a single unit."""
        return matches(entry, unit, today, self.flex_window_days)

    def match_unit(
        self,
        unit: UnitRecord,
        entries: list[WaitlistEntry],
        today: date,
    ) -> list[MatchedEntry]:
        """
        Find and rank every entry that qualifies for a unit.

        Raises:
            ValueError: the unit's available date can't be parsed
        """
        matched = []
        for entry in entries:
            result = self.match(entry, unit, today)
            if result.is_match:
                matched.append(MatchedEntry(entry=entry, kind=result.kind, note=result.note))
        return rank_entries(matched)

    def match_units(
        self,
        units: list[UnitRecord],
        entries: list[WaitlistEntry],
        today: date,
    ) -> list[UnitMatches]:
        """
        Match every unit, skipping units whose data can't be read.

        Returns:
            UnitMatches for units with at least one qualifying entry
        """
        results = []

        for unit in units:
            try:
                ranked = self.match_unit(unit, entries, today)
            except ValueError as e:
                logger.warning(f"Skipping unit {unit.unique_id} ({unit.label}): {e}")
                continue
            if ranked:
                results.append(UnitMatches(unit=unit, entries=ranked))

        total = sum(len(um.entries) for um in results)
        logger.info(f"Found {total} matches across {len(results)}/{len(units)} units and {len(entries)} entries")
        return results


# =============================================================================
# PROPERTY AUDIT
# =============================================================================

def _loose_property_name(name: str) -> str:
    name = re.sub(r"[._]", " ", name.lower())
    name = re.sub(r"\bnorth\b", "n", name)
    name = re.sub(r"\bwest\b", "w", name)
    return re.sub(r"\s+", " ", name).strip()


def audit_properties(units: list[UnitRecord], entries: list[WaitlistEntry]) -> dict:
    """
    Report entry properties that never equal a feed property.

    Property matching is exact, so an entry saved as 'N. Clark' never sees
    'North Clark' units. This lists such names and the unit property they
    probably meant.
    """
    unit_properties = sorted({u.property for u in units})
    entry_properties = sorted({e.property for e in entries})
    loose = {_loose_property_name(p): p for p in unit_properties}

    mismatches = []
    for prop in entry_properties:
        if prop in unit_properties:
            continue
        mismatches.append({
            "entryProperty": prop,
            "probableUnitProperty": loose.get(_loose_property_name(prop)),
        })

    return {
        "unitProperties": unit_properties,
        "entryProperties": entry_properties,
        "mismatches": mismatches,
    }


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def find_unit_matches(
    units: list[UnitRecord],
    entries: list[WaitlistEntry],
    today: date,
    flex_window_days: Optional[int] = None,
) -> list[UnitMatches]:
    """Convenience function to match units against entries."""
    matcher = WaitlistMatcher(flex_window_days=flex_window_days)
    return matcher.match_units(units, entries, today)
