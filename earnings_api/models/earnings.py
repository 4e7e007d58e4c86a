"""
Earnings model - an amount owed (and eventually paid) to a grower.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Integer, Boolean, Numeric, DateTime, Index, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class EarningsStatus(str, Enum):
    """Lifecycle of an earnings record."""
    CALCULATED = "calculated"
    CANCELLED = "cancelled"
    PAID = "paid"


class PaymentConfirmationMethod(str, Enum):
    """How a payment was confirmed."""
    SINGLE = "single"
    BATCH = "batch"


class Earnings(BaseModel):
    """Earnings owed to a worker for captures verified under a contract."""

    __tablename__ = "earnings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )

    # Parties
    worker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        comment="Grower stakeholder being paid"
    )

    funder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        comment="Organization funding the payment"
    )

    contract_id: Mapped[uuid.UUID] = mapped_column(Uuid)

    sub_organization: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Amount
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))

    currency: Mapped[str] = mapped_column(String(10))

    captures_count: Mapped[int] = mapped_column(Integer, default=0)

    # Calculation
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    consolidation_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    consolidation_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    consolidation_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=EarningsStatus.CALCULATED.value
    )

    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Payment confirmation
    payment_confirmation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    payment_system: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    payment_confirmation_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    payment_confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Effective payment date"
    )

    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        Index("idx_earnings_worker", "worker_id"),
        Index("idx_earnings_funder", "funder_id"),
        Index("idx_earnings_status_calculated", "status", "calculated_at"),
    )

    def __repr__(self) -> str:
        return f"<Earnings(id={self.id}, worker={self.worker_id}, amount={self.amount} {self.currency}, status={self.status})>"
