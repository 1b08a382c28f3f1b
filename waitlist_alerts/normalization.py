"""
Normalization module for Waitlist Alerts.

Maps raw rows from the availability spreadsheet into the canonical
UnitRecord schema. The sheet uses its own property codes, Google's
Date(y,m,d) literals and free-form bedroom labels; this module handles
all of that mapping.
"""

import re
import logging
from typing import Optional

from .errors import FeedRowError
from .models import UnitRecord

logger = logging.getLogger(__name__)


# =============================================================================
# PROPERTY CODES
# =============================================================================

# Sheet property code -> property nickname used on waitlist entries
PROPERTY_CODE_MAP: dict[str, str] = {
    "Broadway": "Broadway",
    "Countryside_T": "Countryside T",
    "Countryside_C": "Countryside C",
    "Fullerton": "Fullerton",
    "Green_Bay_246": "Green Bay 246",
    "Green_Bay_440": "Green Bay 440",
    "Green_Bay_546": "Green Bay 546",
    "Greenleaf": "Greenleaf",
    "Kedzie": "Kedzie",
    "Kennedy": "Kennedy",
    "Liberty": "Liberty",
    "N_Clark": "North Clark",
    "Park": "Park",
    "Rogers": "Rogers",
    "Sheffield": "Sheffield",
    "Talman": "Talman",
    "Warren": "Warren",
    "W_Chicago": "W. Chicago",
    "W_Montrose": "W. Montrose",
    "Elston": "Elston",
}

AVAILABLE_STATUS = "Available"

# Availability values that mean "move in any time"
IMMEDIATE_AVAILABILITY = {"now", "available"}

GOOGLE_DATE_RE = re.compile(r"Date\((\d+),(\d+),(\d+)")
SLASH_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
UNIT_NUMBER_RE = re.compile(r"Unit:\s*(\S+)", re.IGNORECASE)


# =============================================================================
# FIELD PARSERS
# =============================================================================

def map_property_name(code: str) -> str:
    """Map a sheet property code to the nickname entries use."""
    code = (code or "").strip()
    return PROPERTY_CODE_MAP.get(code, code.replace("_", " "))


def parse_sheet_date(value) -> Optional[str]:
    """
    Parse a sheet date into 'YYYY-MM-DD'.

    Handles Google's 'Date(2026,1,1)' literal (month is 0-indexed),
    'M/D/YYYY' and ISO dates. Returns None when nothing matches.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = GOOGLE_DATE_RE.search(text)
    if match:
        year, month, day = int(match.group(1)), int(match.group(2)) + 1, int(match.group(3))
        return f"{year:04d}-{month:02d}-{day:02d}"

    match = SLASH_DATE_RE.search(text)
    if match:
        month, day, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        return f"{year:04d}-{month:02d}-{day:02d}"

    match = ISO_DATE_RE.match(text)
    if match:
        return match.group(0)

    return None


def parse_rent(value) -> float:
    """Parse rent from a number or a string like '$1,750'. Unknown is 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[$,\s]", "", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def bedrooms_to_unit_type(bedrooms) -> Optional[str]:
    """
    Convert a bedroom count or label to a unit type ('Studio', '1BR', ...).

    Labels like '3BD + Den' use their leading number. Returns None if the
    value says nothing about bedrooms.
    """
    if bedrooms is None or bedrooms == "":
        return None

    if isinstance(bedrooms, (int, float)):
        count = int(bedrooms)
        return "Studio" if count == 0 else f"{count}BR"

    text = str(bedrooms)
    match = re.search(r"(\d+)", text)
    if match:
        count = int(match.group(1))
        return "Studio" if count == 0 else f"{count}BR"
    if "studio" in text.lower():
        return "Studio"
    return None


def unit_type_from_sq_footage(sq_footage: float) -> str:
    """Fallback unit type when the bedroom column is blank."""
    if sq_footage >= 1800:
        return "3BR"
    if sq_footage >= 1000:
        return "2BR"
    if sq_footage >= 600:
        return "1BR"
    return "Studio"


def extract_unit_number(address_and_apt: str) -> str:
    """Pull the unit number out of '4027 N. Broadway\\nUnit: 505'."""
    match = UNIT_NUMBER_RE.search(address_and_apt or "")
    return match.group(1) if match else ""


# =============================================================================
# NORMALIZER CLASS
# =============================================================================

class UnitNormalizer:
    """
    Normalizes raw feed rows into UnitRecord objects.

    A raw row is a dict with the keys produced by the feed:
    property_code, unique_id, status, address, bedrooms, sq_footage,
    available_date, rent.

    Usage:
        normalizer = UnitNormalizer()
        units = normalizer.normalize_batch(rows)
    """

    def normalize_batch(self, rows: list[dict]) -> list[UnitRecord]:
        """
        Normalize a batch of rows, skipping the ones that can't be mapped.

        Args:
            rows: List of raw row dictionaries from a feed

        Returns:
            List of available UnitRecord objects
        """
        units = []
        skipped = 0

        for row in rows:
            try:
                unit = self.normalize(row)
            except FeedRowError as e:
                skipped += 1
                logger.warning(f"Skipping feed row {row.get('unique_id') or '?'}: {e}")
                continue
            if unit:
                units.append(unit)

        logger.info(f"Normalized {len(units)} available units from {len(rows)} rows ({skipped} skipped)")
        return units

    def normalize(self, row: dict) -> Optional[UnitRecord]:
        """
        Normalize a single row.

        Returns:
            UnitRecord, or None if the row isn't an available unit

        Raises:
            FeedRowError: the row is available but can't be trusted
        """
        if (row.get("status") or "").strip() != AVAILABLE_STATUS:
            return None

        unique_id = str(row.get("unique_id") or "").strip()
        if not unique_id:
            raise FeedRowError("missing unique id")

        property_code = (row.get("property_code") or "").strip()
        if not property_code:
            raise FeedRowError("missing property")

        unit_type = bedrooms_to_unit_type(row.get("bedrooms"))
        if unit_type is None:
            unit_type = unit_type_from_sq_footage(parse_rent(row.get("sq_footage")))

        return UnitRecord(
            property=map_property_name(property_code),
            unit_number=extract_unit_number(row.get("address") or ""),
            unit_type=unit_type,
            rent_price=parse_rent(row.get("rent")),
            available_date=self._normalize_available_date(row.get("available_date")),
            unique_id=unique_id,
        )

    def _normalize_available_date(self, value) -> Optional[str]:
        if value is None or str(value).strip() == "":
            return None
        text = str(value).strip()
        if text.lower() in IMMEDIATE_AVAILABILITY:
            return text.lower()

        parsed = parse_sheet_date(text)
        if parsed is None:
            raise FeedRowError(f"unparseable available date {text!r}")
        return parsed


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def normalize_units(rows: list[dict]) -> list[UnitRecord]:
    """Convenience function to normalize feed rows."""
    normalizer = UnitNormalizer()
    return normalizer.normalize_batch(rows)
