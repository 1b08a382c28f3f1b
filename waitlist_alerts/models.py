"""
Data models for Waitlist Alerts.

Defines canonical dataclasses for waitlist entries, feed units, the
notification ledger and run reports. Storage rows go through
to_dict()/from_dict() so the rest of the code never touches raw dicts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional
from enum import Enum

from .config import UNASSIGNED_AGENT


class EntryType(str, Enum):
    """Kinds of waitlist registration."""
    INTERNAL_TRANSFER = "Internal Transfer"
    PROSPECT = "Prospect"


class EntryStatus(str, Enum):
    """Agent-managed status. Only ACTIVE entries are matched."""
    ACTIVE = "Active"
    CONTACTED = "Contacted"
    LEASED = "Leased"
    CLOSED = "Closed"


class OutcomeStatus(str, Enum):
    """Funnel position of an entry after it has been matched."""
    ACTIVE = "active"
    MATCHED = "matched"
    TOURING = "touring"
    APPLIED = "applied"
    LEASED = "leased"
    DECLINED = "declined"
    REMOVED = "removed"


class MatchKind(str, Enum):
    """How a unit's availability relates to the requested window."""
    EXACT = "exact"
    FLEXIBLE = "flexible"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp from storage. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value) -> Optional[date]:
    """Parse a calendar date from 'YYYY-MM-DD' or a full ISO timestamp."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


# Older self-registered rows predate entry_source and are tagged in notes
SELF_ADDED_MARKERS = ("self-registered", "self registered", "public form")


def _split_csv(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple, set)):
        parts = value
    else:
        parts = str(value).split(",")
    return [str(p).strip() for p in parts if str(p).strip()]


@dataclass
class WaitlistEntry:
    """
    A waitlist registration (Internal Transfer or Prospect).

    Mutated externally (status, assignment) and by the outcome recorder
    (matched_at). The engine never creates or deletes entries.
    """
    id: str
    entry_type: EntryType
    status: EntryStatus
    property: str
    unit_type_pref: str
    move_in_date: date
    created_at: datetime

    move_in_date_end: Optional[date] = None
    preferred_units: Optional[str] = None
    max_budget: float = 0.0  # 0 means "no ceiling"
    assigned_agent: Optional[str] = None
    matched_at: Optional[datetime] = None

    # Contact details (shown to agents, used by the manual notify path)
    full_name: str = ""
    email: str = ""
    phone: str = ""
    outcome_status: Optional[OutcomeStatus] = None

    # Reporting: who created the entry and how far it got after an alert
    entry_source: Optional[str] = None
    internal_notes: str = ""
    tour_scheduled_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    lease_signed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.ACTIVE

    @property
    def is_transfer(self) -> bool:
        return self.entry_type == EntryType.INTERNAL_TRANSFER

    @property
    def unit_types(self) -> set[str]:
        """Acceptable unit-type labels from the comma-separated preference."""
        return set(_split_csv(self.unit_type_pref))

    @property
    def preferred_unit_numbers(self) -> set[str]:
        """Preferred unit numbers, lower-cased. Empty means any unit."""
        return {u.lower() for u in _split_csv(self.preferred_units)}

    @property
    def agent(self) -> Optional[str]:
        """The assigned agent, or None if nobody owns this entry."""
        agent = (self.assigned_agent or "").strip()
        if not agent or agent == UNASSIGNED_AGENT:
            return None
        return agent

    @property
    def is_self_added(self) -> bool:
        """True if the person registered through the public form."""
        if self.entry_source == "self":
            return True
        notes = self.internal_notes.lower()
        return any(marker in notes for marker in SELF_ADDED_MARKERS)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_type": self.entry_type.value,
            "status": self.status.value,
            "property": self.property,
            "unit_type_pref": self.unit_type_pref,
            "preferred_units": self.preferred_units,
            "max_budget": self.max_budget,
            "move_in_date": self.move_in_date.isoformat(),
            "move_in_date_end": self.move_in_date_end.isoformat() if self.move_in_date_end else None,
            "assigned_agent": self.assigned_agent,
            "created_at": self.created_at.isoformat(),
            "matched_at": self.matched_at.isoformat() if self.matched_at else None,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "outcome_status": self.outcome_status.value if self.outcome_status else None,
            "entry_source": self.entry_source,
            "internal_notes": self.internal_notes,
            "tour_scheduled_at": self.tour_scheduled_at.isoformat() if self.tour_scheduled_at else None,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "lease_signed_at": self.lease_signed_at.isoformat() if self.lease_signed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WaitlistEntry":
        """Create from a waitlist_entries row."""
        move_in = parse_date(data.get("move_in_date"))
        if move_in is None:
            raise ValueError("move_in_date is required")

        preferred = data.get("preferred_units")
        if isinstance(preferred, (list, tuple)):
            preferred = ", ".join(str(p) for p in preferred)

        return cls(
            id=str(data["id"]),
            entry_type=EntryType(data.get("entry_type", "Prospect")),
            status=EntryStatus(data.get("status", "Active")),
            property=data.get("property") or "",
            unit_type_pref=data.get("unit_type_pref") or "",
            preferred_units=preferred or None,
            max_budget=float(data.get("max_budget") or 0),
            move_in_date=move_in,
            move_in_date_end=parse_date(data.get("move_in_date_end")),
            assigned_agent=data.get("assigned_agent"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            matched_at=parse_timestamp(data.get("matched_at")),
            full_name=data.get("full_name") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            outcome_status=OutcomeStatus(data["outcome_status"]) if data.get("outcome_status") else None,
            entry_source=data.get("entry_source"),
            internal_notes=data.get("internal_notes") or "",
            tour_scheduled_at=parse_timestamp(data.get("tour_scheduled_at")),
            applied_at=parse_timestamp(data.get("applied_at")),
            lease_signed_at=parse_timestamp(data.get("lease_signed_at")),
        )


@dataclass
class UnitRecord:
    """
    A leasable unit surfaced by the availability feed.

    Recomputed on every poll and never persisted. unique_id must be stable
    across polls for the same listing row since it is half of the match key.
    """
    property: str
    unit_type: str
    rent_price: float
    unique_id: str
    unit_number: str = ""
    # None / "now" / "available" mean available immediately
    available_date: Optional[str] = None

    @property
    def label(self) -> str:
        if self.unit_number:
            return f"{self.property} - Unit {self.unit_number}"
        return self.property

    def to_dict(self) -> dict:
        return {
            "property": self.property,
            "unit_number": self.unit_number,
            "unit_type": self.unit_type,
            "rent_price": self.rent_price,
            "available_date": self.available_date,
            "unique_id": self.unique_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UnitRecord":
        return cls(
            property=data.get("property") or "",
            unit_number=str(data.get("unit_number") or ""),
            unit_type=data.get("unit_type") or "",
            rent_price=float(data.get("rent_price") or 0),
            available_date=data.get("available_date") or None,
            unique_id=str(data.get("unique_id") or ""),
        )


@dataclass
class MatchResult:
    """Tagged result of the match predicate for one entry/unit pair."""
    is_match: bool
    kind: Optional[MatchKind] = None
    note: Optional[str] = None

    @classmethod
    def no_match(cls, note: Optional[str] = None) -> "MatchResult":
        return cls(is_match=False, note=note)

    @classmethod
    def exact(cls) -> "MatchResult":
        return cls(is_match=True, kind=MatchKind.EXACT)

    @classmethod
    def flexible(cls, note: str) -> "MatchResult":
        return cls(is_match=True, kind=MatchKind.FLEXIBLE, note=note)


@dataclass
class MatchedEntry:
    """An entry that qualified for a unit, with how it qualified."""
    entry: WaitlistEntry
    kind: MatchKind
    note: Optional[str] = None

    @property
    def is_flexible(self) -> bool:
        return self.kind == MatchKind.FLEXIBLE


@dataclass
class Contact:
    """A person listed in an alert, as sent by the manual notify form."""
    name: str
    email: str = ""
    phone: str = ""
    entry_type: str = EntryType.PROSPECT.value
    budget: float = 0.0
    move_in_date: Optional[str] = None
    move_in_date_end: Optional[str] = None
    note: Optional[str] = None

    @property
    def is_transfer(self) -> bool:
        return self.entry_type == EntryType.INTERNAL_TRANSFER.value

    @classmethod
    def from_entry(cls, matched: MatchedEntry) -> "Contact":
        entry = matched.entry
        return cls(
            name=entry.full_name,
            email=entry.email,
            phone=entry.phone,
            entry_type=entry.entry_type.value,
            budget=entry.max_budget,
            move_in_date=entry.move_in_date.isoformat(),
            move_in_date_end=entry.move_in_date_end.isoformat() if entry.move_in_date_end else None,
            note=matched.note if matched.is_flexible else None,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Contact":
        move_in = data.get("move_in_date") or None
        if move_in is not None and not isinstance(move_in, str):
            raise ValueError(f"move_in_date must be a YYYY-MM-DD string, got {move_in!r}")
        return cls(
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            phone=str(data.get("phone") or ""),
            entry_type=data.get("entry_type") or EntryType.PROSPECT.value,
            budget=float(data.get("budget") or 0),
            move_in_date=move_in,
        )


def make_match_key(unique_id: str, agent: str) -> str:
    """Ledger identity for a (unit, agent) alert."""
    return f"{unique_id}:{agent}"


@dataclass
class NotifiedMatch:
    """
    Ledger row for an alert that was delivered.

    Written once per successful send and never updated or deleted.
    match_key is unique in storage.
    """
    match_key: str
    agent: str
    unit_id: str
    entry_ids: list[str] = field(default_factory=list)
    notified_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "match_key": self.match_key,
            "agent": self.agent,
            "unit_id": self.unit_id,
            "entry_ids": list(self.entry_ids),
            "notified_at": self.notified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotifiedMatch":
        return cls(
            match_key=data["match_key"],
            agent=data["agent"],
            unit_id=data["unit_id"],
            entry_ids=list(data.get("entry_ids") or []),
            notified_at=parse_timestamp(data.get("notified_at")) or utcnow(),
        )


@dataclass
class SendResult:
    """Outcome of handing one message to the email provider."""
    message_id: Optional[str] = None
    error: Optional[str] = None
    to_email: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class NotificationOutcome:
    """Per (unit, agent) group result included in a run report."""
    agent: str
    unit_id: str
    unit_label: str
    contacts: int
    success: bool
    email_id: Optional[str] = None
    error: Optional[str] = None
    ledger_recorded: bool = False

    def to_dict(self) -> dict:
        data = {
            "agent": self.agent,
            "unit": self.unit_id,
            "unitLabel": self.unit_label,
            "contacts": self.contacts,
            "success": self.success,
            "emailId": self.email_id,
            "ledgerRecorded": self.ledger_recorded,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class RunReport:
    """Summary returned to whoever triggered a run."""
    checked: datetime = field(default_factory=utcnow)
    success: bool = True
    units_checked: int = 0
    entries_checked: int = 0
    matches_found: int = 0
    notifications: list[NotificationOutcome] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None
    property_audit: dict = field(default_factory=dict)

    @property
    def notifications_sent(self) -> int:
        return sum(1 for n in self.notifications if n.success)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "checked": self.checked.isoformat(),
            "unitsChecked": self.units_checked,
            "entriesChecked": self.entries_checked,
            "matchesFound": self.matches_found,
            "notificationsSent": self.notifications_sent,
            "notifications": [n.to_dict() for n in self.notifications],
        }
        if self.skipped:
            data["skipped"] = True
            data["reason"] = self.skip_reason
        if self.property_audit:
            data["propertyAudit"] = self.property_audit
        return data
