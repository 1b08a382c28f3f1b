"""
Google Sheets availability feed.

Reads the leasing team's availability spreadsheet through the public
gviz JSON endpoint. The response is wrapped in a JavaScript callback,
e.g. `google.visualization.Query.setResponse({...});`, which we strip
before decoding.
"""

import re
import json
import logging
from typing import Optional
from urllib.parse import urlencode

import requests

from .base import BaseUnitFeed
from ..errors import ConfigurationError, FeedUnavailableError

logger = logging.getLogger(__name__)

WRAPPER_PREFIX_RE = re.compile(r"^[^(]*\(")
WRAPPER_SUFFIX_RE = re.compile(r"\);?\s*$")

# Column positions in the DASH sheet
COL_PROPERTY = 0
COL_UNIQUE_ID = 4
COL_STATUS = 5
COL_ADDRESS = 6
COL_BEDROOMS = 7
COL_SQ_FOOTAGE = 9
COL_AVAILABLE_DATE = 10
COL_RENT = 11


def _cell_value(cells: list, index: int):
    """Raw value of a gviz cell, falling back to its formatted text."""
    if index >= len(cells) or not cells[index]:
        return None
    cell = cells[index]
    value = cell.get("v")
    if value is None or value == "":
        value = cell.get("f")
    return value


def decode_gviz_payload(text: str) -> dict:
    """Strip the JS callback wrapper and decode the JSON payload."""
    body = WRAPPER_SUFFIX_RE.sub("", WRAPPER_PREFIX_RE.sub("", text.strip(), count=1))
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise FeedUnavailableError(f"Could not decode sheet payload: {e}") from e


def rows_from_gviz(payload: dict) -> list[dict]:
    """Map gviz table rows to the raw row dicts the normalizer expects."""
    table = payload.get("table") or {}
    rows = []

    for row in table.get("rows") or []:
        cells = (row or {}).get("c") or []
        if not cells or not cells[0]:
            continue

        rows.append({
            "property_code": _cell_value(cells, COL_PROPERTY) or "",
            "unique_id": _cell_value(cells, COL_UNIQUE_ID) or "",
            "status": _cell_value(cells, COL_STATUS) or "",
            "address": _cell_value(cells, COL_ADDRESS) or "",
            "bedrooms": _cell_value(cells, COL_BEDROOMS),
            "sq_footage": _cell_value(cells, COL_SQ_FOOTAGE) or 0,
            "available_date": _cell_value(cells, COL_AVAILABLE_DATE),
            "rent": _cell_value(cells, COL_RENT) or 0,
        })

    return rows


class GoogleSheetsUnitFeed(BaseUnitFeed):
    """
    Availability feed backed by a Google Sheet.

    Usage:
        feed = GoogleSheetsUnitFeed(sheet_id="...", sheet_name="DASH")
        units = feed.fetch_units()
    """

    name = "Google Sheets"

    BASE_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq"

    def __init__(
        self,
        sheet_id: Optional[str] = None,
        sheet_name: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(session=session)
        self.sheet_id = sheet_id or self.config.sheet_id
        self.sheet_name = sheet_name or self.config.sheet_name
        if not self.sheet_id:
            raise ConfigurationError("UNIT_SHEET_ID must be set to read the availability sheet")

    @property
    def url(self) -> str:
        query = urlencode({"tqx": "out:json", "sheet": self.sheet_name})
        return f"{self.BASE_URL.format(sheet_id=self.sheet_id)}?{query}"

    def fetch_rows(self) -> list[dict]:
        response = self._get(self.url)
        payload = decode_gviz_payload(response.text)
        rows = rows_from_gviz(payload)
        logger.debug(f"Sheet {self.sheet_name} returned {len(rows)} rows")
        return rows
