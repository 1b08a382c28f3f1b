"""
Sources package - Unit availability feeds.

Each feed module handles:
1. Fetching raw rows from the source
2. Mapping them to the shared row shape
3. Normalizing them into UnitRecord objects
"""

from .base import BaseUnitFeed
from .google_sheets import GoogleSheetsUnitFeed

__all__ = [
    "BaseUnitFeed",
    "GoogleSheetsUnitFeed",
]
