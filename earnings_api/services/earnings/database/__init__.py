"""
Earnings database access.
"""

from .earnings_repository import EarningsRepository

__all__ = ["EarningsRepository"]
