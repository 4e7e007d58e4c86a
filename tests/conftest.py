"""
Shared fixtures: an in-memory earnings repository and an HTTP client wired to it.
"""

import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from earnings_api.api.dependencies import get_earnings_repository, get_earnings_repository_scope
from earnings_api.core.config import settings
from earnings_api.main import app


WORKER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_WORKER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
FUNDER_ID = uuid.UUID("33333333-3333-4333-8333-333333333333")
CONTRACT_ID = uuid.UUID("44444444-4444-4444-8444-444444444444")


def make_earnings(**overrides) -> dict:
    row = {
        "id": uuid.uuid4(),
        "worker_id": WORKER_ID,
        "grower": "Jane Planter",
        "phone": "+255700000001",
        "funder_id": FUNDER_ID,
        "funder": "Greenstand Fund",
        "contract_id": CONTRACT_ID,
        "sub_organization": None,
        "amount": Decimal("120.00"),
        "currency": "USD",
        "captures_count": 40,
        "calculated_at": datetime(2023, 3, 1, tzinfo=timezone.utc),
        "consolidation_id": None,
        "consolidation_period_start": datetime(2023, 2, 1, tzinfo=timezone.utc),
        "consolidation_period_end": datetime(2023, 2, 28, tzinfo=timezone.utc),
        "status": "calculated",
        "active": True,
        "payment_confirmation_id": None,
        "payment_system": None,
        "payment_confirmation_method": None,
        "payment_confirmed_at": None,
        "paid_at": None,
        "batch_id": None,
    }
    row.update(overrides)
    return row


class FakeEarningsRepository:
    """In-memory stand-in for EarningsRepository with snapshot rollback."""

    def __init__(self, rows=()):
        self.rows = {row["id"]: dict(row) for row in rows}
        self.commits = 0
        self.rollbacks = 0
        self.stream_error = None
        self.last_options = None
        self.closed_scopes = 0

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.rows)
        try:
            yield
        except Exception:
            self.rows = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    def _matching(self, criteria):
        for row in self.rows.values():
            if criteria.status and row["status"] != criteria.status:
                continue
            if criteria.grower and criteria.grower.lower() not in (row["grower"] or "").lower():
                continue
            if criteria.worker_id and row["worker_id"] != criteria.worker_id:
                continue
            if criteria.funder_id and row["funder_id"] != criteria.funder_id:
                continue
            if criteria.contract_id and row["contract_id"] != criteria.contract_id:
                continue
            if criteria.start_date and row["calculated_at"] < criteria.start_date:
                continue
            if criteria.end_date and row["calculated_at"] > criteria.end_date:
                continue
            yield row

    def _ordered(self, rows, options):
        if options.sort_by is None:
            return sorted(rows, key=lambda r: r["calculated_at"], reverse=True)
        key = "paid_at" if options.sort_by == "effective_payment_date" else options.sort_by
        return sorted(
            rows,
            key=lambda r: (r[key] is None, r[key] if r[key] is not None else 0),
            reverse=options.descending,
        )

    async def get_by_id(self, earnings_id):
        row = self.rows.get(earnings_id)
        return dict(row) if row is not None else None

    async def get_by_filter(self, criteria, options):
        self.last_options = options
        rows = self._ordered(self._matching(criteria), options)
        end = None if options.limit is None else options.offset + options.limit
        return [dict(row) for row in rows[options.offset:end]]

    async def count_by_filter(self, criteria):
        return sum(1 for _ in self._matching(criteria))

    async def stream_by_filter(self, criteria, options):
        self.last_options = options
        if self.stream_error is not None:
            raise self.stream_error
        for row in self._ordered(self._matching(criteria), options):
            yield dict(row)

    async def update(self, earnings_id, values, status=None):
        row = self.rows[earnings_id]
        if status is not None and row["status"] != status:
            return None
        row.update(values)
        return dict(row)


@pytest.fixture
def earnings_rows():
    return [
        make_earnings(calculated_at=datetime(2023, 3, 1, tzinfo=timezone.utc)),
        make_earnings(
            worker_id=OTHER_WORKER_ID,
            grower="Amani Otieno",
            phone="+254700000002",
            amount=Decimal("75.50"),
            calculated_at=datetime(2023, 2, 1, tzinfo=timezone.utc),
        ),
        make_earnings(
            status="paid",
            amount=Decimal("30.00"),
            payment_system="mpesa",
            payment_confirmation_id="MP-001",
            paid_at=datetime(2023, 1, 20, tzinfo=timezone.utc),
            calculated_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def repository(earnings_rows):
    return FakeEarningsRepository(earnings_rows)


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(directory))
    return directory


@pytest.fixture
def open_repository(repository):
    @asynccontextmanager
    async def open_scope():
        try:
            yield repository
        finally:
            repository.closed_scopes += 1

    return open_scope


@pytest.fixture
async def client(repository, open_repository, upload_dir):
    app.dependency_overrides[get_earnings_repository] = lambda: repository
    app.dependency_overrides[get_earnings_repository_scope] = lambda: open_repository

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
