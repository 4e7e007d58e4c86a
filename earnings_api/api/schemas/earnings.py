"""
Earnings-related Pydantic schemas for API.
Defines request validation and response shapes for earnings endpoints.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from earnings_api.core.config import settings

from .common import SortOrder


SortField = Literal[
    "id",
    "grower",
    "funder",
    "amount",
    "payment_system",
    "effective_payment_date",
]


class EarningsQuery(BaseModel):
    """Filters, paging and sorting accepted by the earnings list and export."""
    model_config = ConfigDict(extra="forbid")

    earnings_status: Optional[str] = Field(default=None, min_length=1)
    grower: Optional[str] = Field(default=None, min_length=1)
    funder_id: Optional[uuid.UUID] = None
    worker_id: Optional[uuid.UUID] = None
    contract_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(
        default=settings.default_page_size,
        gt=0,
        le=settings.max_page_size,
        description="Number of items per page"
    )
    offset: int = Field(default=0, gt=-1, description="Number of items to skip")
    sort_by: Optional[SortField] = None
    order: Optional[SortOrder] = None


class EarningsUpdate(BaseModel):
    """
    Payment confirmation for one earnings record.

    Used for the single PATCH body and for every row of a batch import.
    The record is addressed by exactly one of ``id`` or ``earnings_id``;
    ``worker_id``, ``amount`` and ``currency`` must repeat what was calculated.
    """
    model_config = ConfigDict(extra="forbid")

    id: Optional[uuid.UUID] = None
    earnings_id: Optional[uuid.UUID] = None
    worker_id: uuid.UUID
    amount: Decimal
    currency: str = Field(min_length=1)
    payment_confirmation_id: Optional[str] = Field(default=None, min_length=1)
    payment_system: Optional[str] = Field(default=None, min_length=1)
    paid_at: Optional[datetime] = None
    phone: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def check_single_identifier(self) -> "EarningsUpdate":
        if (self.id is None) == (self.earnings_id is None):
            raise ValueError("Exactly one of 'id' or 'earnings_id' must be provided")
        return self

    @property
    def target_id(self) -> uuid.UUID:
        return self.earnings_id or self.id


class EarningsRecord(BaseModel):
    """Earnings record as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    worker_id: uuid.UUID
    grower: Optional[str] = None
    phone: Optional[str] = None
    funder_id: uuid.UUID
    funder: Optional[str] = None
    contract_id: uuid.UUID
    sub_organization: Optional[uuid.UUID] = None
    amount: Decimal
    currency: str
    captures_count: Optional[int] = None
    calculated_at: Optional[datetime] = None
    consolidation_id: Optional[uuid.UUID] = None
    consolidation_period_start: Optional[datetime] = None
    consolidation_period_end: Optional[datetime] = None
    status: str
    active: Optional[bool] = None
    payment_confirmation_id: Optional[str] = None
    payment_system: Optional[str] = None
    payment_confirmation_method: Optional[str] = None
    payment_confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    batch_id: Optional[uuid.UUID] = None


class PaginationLinks(BaseModel):
    """Navigation links for a page of results."""
    model_config = ConfigDict(populate_by_name=True)

    self_link: str = Field(serialization_alias="self")
    prev: Optional[str] = None
    next: Optional[str] = None


class EarningsListResponse(BaseModel):
    """Paginated earnings list."""
    model_config = ConfigDict(populate_by_name=True)

    earnings: List[EarningsRecord]
    total_count: int = Field(ge=0, serialization_alias="totalCount")
    links: PaginationLinks


class BatchImportResponse(BaseModel):
    """Result of a CSV batch import."""
    status: str = "completed"
    count: int = Field(ge=0)
