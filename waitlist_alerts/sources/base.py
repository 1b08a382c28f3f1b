"""
Base class for unit availability feeds.

All feeds inherit from BaseUnitFeed and implement fetch_rows(), which
returns raw row dictionaries. Normalization into UnitRecord is shared.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
import requests

from ..config import get_app_config
from ..errors import FeedUnavailableError
from ..models import UnitRecord
from ..normalization import normalize_units

logger = logging.getLogger(__name__)


class BaseUnitFeed(ABC):
    """
    Abstract base class for unit feeds.

    Provides common functionality:
    - HTTP requests with a shared session and timeout
    - Turning transport failures into FeedUnavailableError
    - Normalizing rows into UnitRecord objects

    Subclasses must implement:
    - name: Human-readable feed name for logs
    - fetch_rows(): Get raw row dictionaries from the source
    """

    name: str = "feed"  # Subclass should set this

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[int] = None):
        """Initialize the feed."""
        self.config = get_app_config()
        self.timeout = timeout or self.config.request_timeout
        self.session = session or requests.Session()

        self.session.headers.update({
            "User-Agent": "WaitlistAlerts/1.0",
            "Accept": "application/json,text/plain;q=0.9,*/*;q=0.8",
        })

    def _get(self, url: str, **kwargs) -> requests.Response:
        """
        Make a GET request.

        Raises:
            FeedUnavailableError: the request failed or returned an error status
        """
        try:
            kwargs.setdefault("timeout", self.timeout)
            response = self.session.get(url, **kwargs)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            logger.error(f"Request failed for {url}: {e}")
            raise FeedUnavailableError(f"{self.name} unavailable: {e}") from e

    @abstractmethod
    def fetch_rows(self) -> list[dict]:
        """
        Fetch raw rows from the source.

        Returns:
            List of row dictionaries (not yet normalized)
        """
        pass

    def fetch_units(self) -> list[UnitRecord]:
        """
        Main entry point: fetch rows and normalize them.

        Rows that can't be mapped are skipped by the normalizer. A feed that
        can't be reached at all raises FeedUnavailableError.

        Returns:
            List of available UnitRecord objects
        """
        logger.info(f"Fetching units from {self.name}")
        rows = self.fetch_rows()
        units = normalize_units(rows)
        logger.info(f"Got {len(units)} available units from {self.name}")
        return units
