"""
Types shared by the earnings query, update and batch paths.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class FilterCriteria:
    """Repository-level filters derived from the validated query string."""
    status: Optional[str] = None
    grower: Optional[str] = None
    funder_id: Optional[uuid.UUID] = None
    worker_id: Optional[uuid.UUID] = None
    contract_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_query(cls, query: Any) -> "FilterCriteria":
        grower = (query.grower or "").strip() or None
        return cls(
            status=query.earnings_status,
            grower=grower,
            funder_id=query.funder_id,
            worker_id=query.worker_id,
            contract_id=query.contract_id,
            start_date=as_utc(query.start_date),
            end_date=as_utc(query.end_date),
        )


@dataclass(frozen=True)
class QueryOptions:
    """Paging and ordering. ``limit=None`` means unbounded (exports)."""
    limit: Optional[int] = 100
    offset: int = 0
    sort_by: Optional[str] = None
    order: str = "asc"

    @property
    def descending(self) -> bool:
        return self.order == "desc"

    @classmethod
    def from_query(cls, query: Any, paginate: bool = True) -> "QueryOptions":
        order = query.order.value if query.order is not None else "asc"
        if not paginate:
            return cls(limit=None, offset=0, sort_by=query.sort_by, order=order)
        return cls(
            limit=query.limit,
            offset=query.offset,
            sort_by=query.sort_by,
            order=order,
        )
