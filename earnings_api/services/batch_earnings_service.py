"""
Batch earnings "service layer": CSV export and import.

Export turns the earnings stream into CSV text chunks. Import stores the
upload in a temp file, then replays each row through the single-record
update path.
"""

from __future__ import annotations

import csv
import io
import os
import tempfile
import uuid
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Tuple

import structlog
from fastapi import UploadFile
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from earnings_api.api.schemas.common import format_validation_errors
from earnings_api.api.schemas.earnings import EarningsQuery, EarningsUpdate
from earnings_api.core.exceptions import (
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from earnings_api.models.earnings import PaymentConfirmationMethod
from earnings_api.services.earnings_service import get_batch_earnings, update_earnings


logger = structlog.get_logger(__name__)

BATCH_COLUMNS = [
    "earnings_id",
    "worker_id",
    "phone",
    "currency",
    "amount",
    "payment_confirmation_id",
    "payment_system",
    "paid_at",
]

CSV_CONTENT_TYPE = "text/csv"

READ_CHUNK_BYTES = 1024 * 1024  # 1 MiB


# Export

def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def to_batch_row(record: Dict[str, Any]) -> Dict[str, str]:
    """Flatten an earnings row into the batch CSV shape."""
    source = {**record, "earnings_id": record.get("id")}
    return {column: _cell(source.get(column)) for column in BATCH_COLUMNS}


def _render(row: Optional[Dict[str, str]] = None) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=BATCH_COLUMNS, lineterminator="\n")
    if row is None:
        writer.writeheader()
    else:
        writer.writerow(row)
    return buffer.getvalue()


async def _csv_chunks(
    first: Optional[Dict[str, Any]],
    rows: AsyncIterator[Dict[str, Any]],
) -> AsyncIterator[str]:
    count = 0
    yield _render()
    if first is not None:
        yield _render(to_batch_row(first))
        count += 1
        async for record in rows:
            yield _render(to_batch_row(record))
            count += 1

    logger.info("Batch earnings export streamed", rows=count)


async def export_earnings_csv(repository, query: EarningsQuery) -> AsyncIterator[str]:
    """
    Start the export and return its CSV chunk stream.

    The first row is fetched here so that query failures surface before
    any response bytes are sent. The header row is always emitted.
    """
    rows = get_batch_earnings(repository, query)
    first = await anext(rows, None)
    return _csv_chunks(first, rows)


# Import

def validate_csv_upload(file: UploadFile) -> None:
    """Only ``text/csv`` uploads are accepted."""
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
    if content_type != CSV_CONTENT_TYPE:
        raise UnsupportedMediaTypeError(
            "Only text/csv is supported",
            {"content_type": file.content_type}
        )


async def save_upload(file: UploadFile, upload_dir: str, max_bytes: int) -> Path:
    """
    Copy the upload into a temp file under ``upload_dir``, enforcing ``max_bytes``.

    The caller owns the returned path and must remove it.
    """
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)

    fd, name = tempfile.mkstemp(prefix=f"earnings_{uuid.uuid4().hex}_", suffix=".csv", dir=directory)
    path = Path(name)
    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = await file.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise PayloadTooLargeError(max_bytes)
                await run_in_threadpool(out.write, chunk)
    except Exception:
        remove_upload(path)
        raise

    logger.info("Batch upload stored", path=str(path), size_bytes=written, filename=file.filename)
    return path


def remove_upload(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    logger.debug("Batch upload removed", path=str(path))


def read_batch_rows(path: Path) -> Iterator[Tuple[int, Dict[str, str]]]:
    """
    Yield ``(line_number, row)`` for each CSV data row.

    Blank cells are dropped so optional fields read as missing. A BOM
    written by spreadsheet tools is ignored. Undecodable or malformed
    input is reported as a validation error for the row being read.
    """
    with open(path, newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        while True:
            try:
                raw = next(reader)
            except StopIteration:
                return
            except (UnicodeDecodeError, csv.Error) as e:
                line_number = reader.line_num + 1
                raise ValidationError(
                    f"Row {line_number} could not be read",
                    {"row": line_number, "error": str(e)}
                ) from e

            line_number = reader.line_num
            if None in raw:
                raise ValidationError(
                    f"Row {line_number} has more cells than the header",
                    {"row": line_number}
                )
            row = {}
            for key, value in raw.items():
                value = (value or "").strip()
                if value:
                    row[key.strip()] = value
            if row:
                yield line_number, row


def load_batch_rows(path: Path) -> List[Tuple[int, Dict[str, str]]]:
    """Read the whole file. Called from a worker thread."""
    return list(read_batch_rows(path))


def parse_batch_row(line_number: int, row: Dict[str, str]) -> EarningsUpdate:
    try:
        return EarningsUpdate.model_validate(row)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Row {line_number} is invalid",
            {"row": line_number, "errors": format_validation_errors(e.errors())}
        ) from e


async def batch_update_earnings(repository, path: Path) -> int:
    """
    Apply every row of the CSV at ``path`` as a batch payment confirmation.

    Stops at the first failing row; the caller's transaction decides
    whether earlier rows persist. Returns the number of rows applied.
    """
    count = 0
    for line_number, row in await run_in_threadpool(load_batch_rows, path):
        payload = parse_batch_row(line_number, row)
        try:
            await update_earnings(repository, payload, method=PaymentConfirmationMethod.BATCH)
        except Exception:
            logger.warning("Batch row failed", row=line_number, earnings_id=str(payload.target_id))
            raise
        count += 1

    logger.info("Batch earnings rows applied", count=count)
    return count
