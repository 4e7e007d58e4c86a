"""
Repository for earnings data operations.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from sqlalchemy import Select, Update, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from earnings_api.core.exceptions import DatabaseError
from earnings_api.models.earnings import Earnings
from earnings_api.models.stakeholder import Stakeholder
from earnings_api.services.earnings.core.types import FilterCriteria, QueryOptions


logger = structlog.get_logger(__name__)

Grower = aliased(Stakeholder, name="grower_stakeholder")
Funder = aliased(Stakeholder, name="funder_stakeholder")


def _display_name(stakeholder):
    return func.coalesce(
        stakeholder.org_name,
        func.concat_ws(" ", stakeholder.first_name, stakeholder.last_name),
    )


grower_name = _display_name(Grower)
funder_name = _display_name(Funder)

SORT_COLUMNS = {
    "id": Earnings.id,
    "grower": grower_name,
    "funder": funder_name,
    "amount": Earnings.amount,
    "payment_system": Earnings.payment_system,
    "effective_payment_date": Earnings.paid_at,
}


class EarningsRepository:
    """
    Repository for earnings reads and payment updates.

    Rows come back as plain dicts: the earnings columns plus the joined
    ``grower``, ``funder`` and ``phone`` values.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logger.bind(service="earnings_repository")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Commit on clean exit, roll back if the block raises."""
        if self.session.in_transaction():
            async with self.session.begin_nested():
                yield
        else:
            async with self.session.begin():
                yield

    # Statement building

    def base_select(self) -> Select:
        return (
            select(
                Earnings,
                grower_name.label("grower"),
                funder_name.label("funder"),
                Grower.phone.label("phone"),
            )
            .outerjoin(Grower, Grower.id == Earnings.worker_id)
            .outerjoin(Funder, Funder.id == Earnings.funder_id)
        )

    def apply_filter(self, stmt: Select, criteria: FilterCriteria) -> Select:
        if criteria.status:
            stmt = stmt.where(Earnings.status == criteria.status)
        if criteria.grower:
            stmt = stmt.where(grower_name.ilike(f"%{criteria.grower}%"))
        if criteria.funder_id:
            stmt = stmt.where(Earnings.funder_id == criteria.funder_id)
        if criteria.worker_id:
            stmt = stmt.where(Earnings.worker_id == criteria.worker_id)
        if criteria.contract_id:
            stmt = stmt.where(Earnings.contract_id == criteria.contract_id)
        if criteria.start_date:
            stmt = stmt.where(Earnings.calculated_at >= criteria.start_date)
        if criteria.end_date:
            stmt = stmt.where(Earnings.calculated_at <= criteria.end_date)
        return stmt

    def apply_options(self, stmt: Select, options: QueryOptions) -> Select:
        column = SORT_COLUMNS.get(options.sort_by)
        if column is None:
            stmt = stmt.order_by(Earnings.calculated_at.desc(), Earnings.id)
        else:
            stmt = stmt.order_by(column.desc() if options.descending else column.asc(), Earnings.id)

        if options.limit is not None:
            stmt = stmt.limit(options.limit)
        if options.offset:
            stmt = stmt.offset(options.offset)
        return stmt

    def filter_statement(self, criteria: FilterCriteria, options: QueryOptions) -> Select:
        return self.apply_options(self.apply_filter(self.base_select(), criteria), options)

    def count_statement(self, criteria: FilterCriteria) -> Select:
        # The grower join is only needed when filtering on the grower name
        stmt = select(func.count(Earnings.id)).select_from(Earnings)
        if criteria.grower:
            stmt = stmt.outerjoin(Grower, Grower.id == Earnings.worker_id)
        return self.apply_filter(stmt, criteria)

    def update_statement(
        self,
        earnings_id: uuid.UUID,
        values: Dict[str, Any],
        status: Optional[str] = None,
    ) -> Update:
        stmt = update(Earnings).where(Earnings.id == earnings_id)
        if status is not None:
            stmt = stmt.where(Earnings.status == status)
        return stmt.values(**values).execution_options(synchronize_session=False)

    @staticmethod
    def _row_to_dict(row: Any) -> Dict[str, Any]:
        earnings, grower, funder, phone = row
        return {**earnings.to_dict(), "grower": grower, "funder": funder, "phone": phone}

    # Queries

    async def get_by_id(self, earnings_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        result = await self.session.execute(
            self.base_select().where(Earnings.id == earnings_id)
        )
        row = result.first()
        return self._row_to_dict(row) if row is not None else None

    async def get_by_filter(self, criteria: FilterCriteria, options: QueryOptions) -> List[Dict[str, Any]]:
        result = await self.session.execute(self.filter_statement(criteria, options))
        rows = [self._row_to_dict(row) for row in result.all()]

        self.logger.debug("Fetched earnings page", count=len(rows), limit=options.limit, offset=options.offset)
        return rows

    async def count_by_filter(self, criteria: FilterCriteria) -> int:
        result = await self.session.execute(self.count_statement(criteria))
        return int(result.scalar_one())

    async def stream_by_filter(
        self,
        criteria: FilterCriteria,
        options: QueryOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield matching rows through a server-side cursor."""
        stmt = self.filter_statement(criteria, options).execution_options(yield_per=500)
        result = await self.session.stream(stmt)
        async for row in result:
            yield self._row_to_dict(row)

    async def update(
        self,
        earnings_id: uuid.UUID,
        values: Dict[str, Any],
        status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Write ``values`` to one record and return the fresh row.

        With ``status`` set, the row is only written while it still has that
        status; ``None`` is returned when it has moved on.
        """
        result = await self.session.execute(self.update_statement(earnings_id, values, status))
        if result.rowcount == 0 and status is not None:
            self.logger.info("Earnings update skipped, status changed", earnings_id=str(earnings_id))
            return None
        if result.rowcount != 1:
            raise DatabaseError(
                "Failed to update earnings record",
                {"earnings_id": str(earnings_id), "rowcount": result.rowcount}
            )

        # Identity map may still hold the pre-update instance
        self.session.expire_all()
        row = await self.get_by_id(earnings_id)
        if row is None:
            raise DatabaseError("Updated earnings record vanished", {"earnings_id": str(earnings_id)})
        return row
