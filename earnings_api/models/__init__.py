"""
Database models for the earnings API.
"""

from .base import BaseModel
from .earnings import Earnings, EarningsStatus, PaymentConfirmationMethod
from .stakeholder import Stakeholder

__all__ = [
    "BaseModel",
    "Earnings",
    "EarningsStatus",
    "PaymentConfirmationMethod",
    "Stakeholder",
]
