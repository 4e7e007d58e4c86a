"""
Earnings query and payment update logic.

Independent of the routing layer: functions take a repository and validated
request models, and raise application exceptions on failure.
"""

from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

import structlog

from earnings_api.api.schemas.earnings import (
    EarningsListResponse,
    EarningsQuery,
    EarningsRecord,
    EarningsUpdate,
    PaginationLinks,
)
from earnings_api.core.exceptions import (
    EarningsMismatchError,
    EarningsNotFoundError,
    EarningsStatusError,
)
from earnings_api.models.earnings import EarningsStatus, PaymentConfirmationMethod
from earnings_api.services.earnings.core.types import FilterCriteria, QueryOptions, as_utc


logger = structlog.get_logger(__name__)

PAYABLE_STATUS = EarningsStatus.CALCULATED.value


def _page_link(url: str, filters: Dict[str, Any], limit: int, offset: int) -> str:
    params = {"limit": limit, "offset": offset, **filters}
    return f"{url}?{urlencode(params)}"


def build_links(query: EarningsQuery, url: str, total_count: int) -> PaginationLinks:
    """
    Navigation links for the current page.

    ``next`` is only offered while rows remain past this page and ``prev``
    only when a whole page fits before the current offset. Filters and sort
    parameters are carried into every link.
    """
    filters = query.model_dump(mode="json", exclude_none=True, exclude={"limit", "offset"})
    limit, offset = query.limit, query.offset

    next_link = None
    if offset + limit < total_count:
        next_link = _page_link(url, filters, limit, offset + limit)

    prev_link = None
    if offset - limit >= 0:
        prev_link = _page_link(url, filters, limit, offset - limit)

    return PaginationLinks(
        self_link=_page_link(url, filters, limit, offset),
        prev=prev_link,
        next=next_link,
    )


async def get_earnings(repository, query: EarningsQuery, url: str) -> EarningsListResponse:
    """Fetch one page of earnings matching the query."""
    criteria = FilterCriteria.from_query(query)
    options = QueryOptions.from_query(query)

    rows = await repository.get_by_filter(criteria, options)
    total_count = await repository.count_by_filter(criteria)

    logger.info(
        "Earnings page fetched",
        returned=len(rows),
        total=total_count,
        limit=options.limit,
        offset=options.offset,
    )

    return EarningsListResponse(
        earnings=[EarningsRecord.model_validate(row) for row in rows],
        total_count=total_count,
        links=build_links(query, url, total_count),
    )


def get_batch_earnings(repository, query: EarningsQuery) -> AsyncIterator[Dict[str, Any]]:
    """All earnings matching the query's filters, unpaginated, as a row stream."""
    return repository.stream_by_filter(
        FilterCriteria.from_query(query),
        QueryOptions.from_query(query, paginate=False),
    )


def _mismatched_fields(record: Dict[str, Any], payload: EarningsUpdate) -> list:
    mismatched = []
    if record["worker_id"] != payload.worker_id:
        mismatched.append("worker_id")
    if record["amount"] != payload.amount:
        mismatched.append("amount")
    if record["currency"] != payload.currency:
        mismatched.append("currency")
    return mismatched


async def update_earnings(
    repository,
    payload: EarningsUpdate,
    method: PaymentConfirmationMethod = PaymentConfirmationMethod.SINGLE,
    now: Optional[datetime] = None,
) -> EarningsRecord:
    """
    Confirm payment of a calculated earnings record.

    Raises:
        EarningsNotFoundError: no record with the given id
        EarningsStatusError: record is already paid or cancelled
        EarningsMismatchError: worker, amount or currency differ from the record
    """
    earnings_id = payload.target_id
    record = await repository.get_by_id(earnings_id)
    if record is None:
        raise EarningsNotFoundError(str(earnings_id))

    if record["status"] != PAYABLE_STATUS:
        raise EarningsStatusError(str(earnings_id), record["status"])

    mismatched = _mismatched_fields(record, payload)
    if mismatched:
        raise EarningsMismatchError(str(earnings_id), mismatched)

    now = now or datetime.now(timezone.utc)
    values = {
        "status": EarningsStatus.PAID.value,
        "paid_at": as_utc(payload.paid_at) or now,
        "payment_confirmed_at": now,
        "payment_confirmation_method": method.value,
    }
    if payload.payment_confirmation_id is not None:
        values["payment_confirmation_id"] = payload.payment_confirmation_id
    if payload.payment_system is not None:
        values["payment_system"] = payload.payment_system

    updated = await repository.update(earnings_id, values, status=PAYABLE_STATUS)
    if updated is None:
        # Another confirmation landed between the read and the write
        current = await repository.get_by_id(earnings_id)
        if current is None:
            raise EarningsNotFoundError(str(earnings_id))
        raise EarningsStatusError(str(earnings_id), current["status"])

    logger.info(
        "Earnings marked as paid",
        earnings_id=str(earnings_id),
        method=method.value,
        payment_system=updated.get("payment_system"),
    )
    return EarningsRecord.model_validate(updated)
