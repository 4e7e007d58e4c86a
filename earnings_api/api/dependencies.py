"""
API dependencies for FastAPI endpoints.
Provides database sessions and repositories to route handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, AsyncIterator, Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from earnings_api.core.database import get_async_session
from earnings_api.services.earnings.database.earnings_repository import EarningsRepository


RepositoryScope = Callable[[], AsyncContextManager[EarningsRepository]]


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_async_session() as session:
        yield session


async def get_earnings_repository(
    db: AsyncSession = Depends(get_database)
) -> EarningsRepository:
    """Earnings repository bound to the request's session."""
    return EarningsRepository(db)


@asynccontextmanager
async def open_earnings_repository() -> AsyncIterator[EarningsRepository]:
    """Repository with its own session, for work that outlives the handler."""
    async with get_async_session() as session:
        yield EarningsRepository(session)


def get_earnings_repository_scope() -> RepositoryScope:
    """
    Dependency returning a factory for self-managed repository sessions.

    Streaming responses keep reading after the handler returns, so they
    open their own session instead of using the request-scoped one.
    """
    return open_earnings_repository
