"""
Test the earnings HTTP endpoints against the in-memory repository.
"""

import uuid

import pytest

from earnings_api.api.routes.earnings import export_batch_earnings
from earnings_api.api.schemas.earnings import EarningsQuery
from earnings_api.services.batch_earnings_service import BATCH_COLUMNS, to_batch_row

from .conftest import OTHER_WORKER_ID

HEADER = ",".join(BATCH_COLUMNS)


def _csv(*records, **overrides):
    lines = [HEADER]
    for record in records:
        row = to_batch_row(record)
        row.update(overrides)
        lines.append(",".join(row[column] for column in BATCH_COLUMNS))
    return ("\n".join(lines) + "\n").encode()


def _payment(record, **overrides):
    body = {
        "id": str(record["id"]),
        "worker_id": str(record["worker_id"]),
        "amount": str(record["amount"]),
        "currency": record["currency"],
        "payment_system": "mpesa",
        "payment_confirmation_id": "MP-900",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_list_earnings(client):
    response = await client.get("/earnings", params={"limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["totalCount"] == 3
    assert len(body["earnings"]) == 2
    assert body["links"] == {
        "self": "http://test/earnings?limit=2&offset=0",
        "prev": None,
        "next": "http://test/earnings?limit=2&offset=2",
    }


@pytest.mark.asyncio
async def test_list_earnings_filters(client):
    response = await client.get(
        "/earnings",
        params={"worker_id": str(OTHER_WORKER_ID), "earnings_status": "calculated"},
    )

    body = response.json()
    assert body["totalCount"] == 1
    assert body["earnings"][0]["grower"] == "Amani Otieno"
    assert body["earnings"][0]["amount"] == "75.50"


@pytest.mark.asyncio
async def test_list_earnings_sorting(client, repository):
    response = await client.get("/earnings", params={"sort_by": "amount", "order": "desc"})

    amounts = [row["amount"] for row in response.json()["earnings"]]
    assert amounts == ["120.00", "75.50", "30.00"]
    assert repository.last_options.sort_by == "amount"


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [
    {"limit": 0},
    {"limit": 101},
    {"offset": -1},
    {"sort_by": "worker_id"},
    {"order": "sideways"},
    {"funder_id": "abc"},
    {"unexpected": "1"},
    {"earnings_status": ""},
])
async def test_list_earnings_rejects_bad_query(client, params):
    response = await client.get("/earnings", params=params)

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["details"]["errors"]


@pytest.mark.asyncio
async def test_patch_earnings(client, repository, earnings_rows):
    record = earnings_rows[0]

    response = await client.patch("/earnings", json=_payment(record))

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(record["id"])
    assert body["status"] == "paid"
    assert body["payment_confirmation_method"] == "single"
    assert repository.commits == 1


@pytest.mark.asyncio
async def test_patch_earnings_requires_single_identifier(client, earnings_rows):
    body = _payment(earnings_rows[0], earnings_id=str(earnings_rows[0]["id"]))

    response = await client.patch("/earnings", json=body)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_patch_earnings_not_found(client, earnings_rows):
    response = await client.patch("/earnings", json=_payment(earnings_rows[0], id=str(uuid.uuid4())))

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_patch_earnings_conflict_rolls_back(client, repository, earnings_rows):
    response = await client.patch("/earnings", json=_payment(earnings_rows[0], currency="KES"))

    assert response.status_code == 409
    assert response.json()["details"]["fields"] == ["currency"]
    assert repository.rollbacks == 1
    assert repository.commits == 0


@pytest.mark.asyncio
async def test_export_batch_earnings(client):
    response = await client.get("/earnings/batch", params={"earnings_status": "calculated"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/csv; charset=utf-8"
    assert response.headers["content-disposition"] == "attachment; filename=batchEarnings.csv"
    lines = response.text.splitlines()
    assert lines[0] == HEADER
    assert len(lines) == 3


@pytest.mark.asyncio
async def test_export_batch_earnings_query_failure(client, repository):
    repository.stream_error = RuntimeError("relation does not exist")

    response = await client.get("/earnings/batch")

    assert response.status_code == 422
    assert response.json()["message"] == "relation does not exist"


@pytest.mark.asyncio
async def test_export_batch_earnings_validates_query(client):
    response = await client.get("/earnings/batch", params={"limit": 500})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_export_batch_earnings_releases_scope(client, repository):
    response = await client.get("/earnings/batch")

    assert response.status_code == 200
    assert repository.closed_scopes == 1


@pytest.mark.asyncio
async def test_export_batch_earnings_query_failure_releases_scope(client, repository):
    repository.stream_error = RuntimeError("relation does not exist")

    await client.get("/earnings/batch")

    assert repository.closed_scopes == 1


@pytest.mark.asyncio
async def test_export_batch_earnings_releases_scope_when_body_is_not_read(repository, open_repository):
    response = await export_batch_earnings(EarningsQuery(), open_repository)

    await response.background()

    assert repository.closed_scopes == 1


@pytest.mark.asyncio
async def test_import_batch_earnings(client, repository, earnings_rows, upload_dir):
    first, second = earnings_rows[0], earnings_rows[1]
    content = _csv(first, second, payment_system="mpesa")

    response = await client.patch(
        "/earnings/batch",
        files={"csv": ("payments.csv", content, "text/csv")},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "completed", "count": 2}
    assert repository.rows[first["id"]]["status"] == "paid"
    assert repository.rows[second["id"]]["payment_confirmation_method"] == "batch"
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_import_batch_earnings_round_trips_export(client, repository):
    exported = await client.get("/earnings/batch", params={"earnings_status": "calculated"})

    response = await client.patch(
        "/earnings/batch",
        files={"csv": ("batchEarnings.csv", exported.content, "text/csv")},
    )

    assert response.json()["count"] == 2
    assert all(row["status"] == "paid" for row in repository.rows.values())


@pytest.mark.asyncio
async def test_import_batch_earnings_failure_rolls_back(client, repository, earnings_rows, upload_dir):
    first, paid = earnings_rows[0], earnings_rows[2]
    content = _csv(first, paid)

    response = await client.patch(
        "/earnings/batch",
        files={"csv": ("payments.csv", content, "text/csv")},
    )

    assert response.status_code == 409
    assert repository.rollbacks == 1
    assert repository.rows[first["id"]]["status"] == "calculated"
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_import_batch_earnings_rejects_non_csv(client, repository, upload_dir):
    response = await client.patch(
        "/earnings/batch",
        files={"csv": ("payments.json", b"{}", "application/json")},
    )

    assert response.status_code == 406
    assert response.json()["message"] == "Only text/csv is supported"
    assert not upload_dir.exists()


@pytest.mark.asyncio
async def test_import_batch_earnings_requires_file(client):
    response = await client.patch("/earnings/batch")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_import_batch_earnings_rejects_undecodable_file(client, repository, earnings_rows, upload_dir):
    content = _csv(earnings_rows[0], phone="José").decode().encode("latin-1")

    response = await client.patch(
        "/earnings/batch",
        files={"csv": ("payments.csv", content, "text/csv")},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert "could not be read" in body["message"]
    assert "row" in body["details"]
    assert repository.rows[earnings_rows[0]["id"]]["status"] == "calculated"
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_patch_earnings_rejects_empty_payment_system(client, repository, earnings_rows):
    response = await client.patch("/earnings", json=_payment(earnings_rows[0], payment_system=""))

    assert response.status_code == 422
    assert repository.rows[earnings_rows[0]["id"]]["status"] == "calculated"
