"""
Earnings persistence and the types shared by its callers.
"""

from .core.types import FilterCriteria, QueryOptions
from .database.earnings_repository import EarningsRepository

__all__ = [
    "FilterCriteria",
    "QueryOptions",
    "EarningsRepository",
]
