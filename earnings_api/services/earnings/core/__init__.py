"""
Core earnings types.
"""

from .types import FilterCriteria, QueryOptions, as_utc

__all__ = [
    "FilterCriteria",
    "QueryOptions",
    "as_utc",
]
