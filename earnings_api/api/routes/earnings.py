"""
Earnings routes.
Handles listing, payment confirmation, and CSV batch export/import.
"""

from contextlib import AsyncExitStack
from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

import structlog

from earnings_api.api.dependencies import (
    RepositoryScope,
    get_earnings_repository,
    get_earnings_repository_scope,
)
from earnings_api.api.schemas.earnings import (
    BatchImportResponse,
    EarningsListResponse,
    EarningsQuery,
    EarningsRecord,
    EarningsUpdate,
)
from earnings_api.core.config import settings
from earnings_api.core.exceptions import EarningsApiException, ValidationError
from earnings_api.services import batch_earnings_service
from earnings_api.services.earnings.database.earnings_repository import EarningsRepository
from earnings_api.services.earnings_service import get_earnings, update_earnings


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=EarningsListResponse,
    summary="List Earnings",
    description="Filter, sort and page through earnings records"
)
async def list_earnings(
    request: Request,
    query: Annotated[EarningsQuery, Query()],
    repository: EarningsRepository = Depends(get_earnings_repository),
):
    url = str(request.url.replace(query=""))
    return await get_earnings(repository, query, url)


@router.patch(
    "",
    response_model=EarningsRecord,
    summary="Confirm Earnings Payment",
    description="Mark a single earnings record as paid"
)
async def patch_earnings(
    payload: EarningsUpdate,
    repository: EarningsRepository = Depends(get_earnings_repository),
):
    try:
        async with repository.transaction():
            return await update_earnings(repository, payload)
    except Exception as e:
        logger.warning(
            "Earnings update rolled back",
            earnings_id=str(payload.target_id),
            error=str(e),
        )
        raise


@router.get(
    "/batch",
    response_class=StreamingResponse,
    summary="Export Earnings CSV",
    description="Download all earnings matching the filters as CSV"
)
async def export_batch_earnings(
    query: Annotated[EarningsQuery, Query()],
    open_repository: RepositoryScope = Depends(get_earnings_repository_scope),
):
    stack = AsyncExitStack()
    repository = await stack.enter_async_context(open_repository())
    try:
        chunks = await batch_earnings_service.export_earnings_csv(repository, query)
    except Exception as e:
        await stack.__aexit__(type(e), e, e.__traceback__)
        if isinstance(e, EarningsApiException):
            raise
        logger.error("Batch earnings export failed", error=str(e), exc_info=True)
        raise ValidationError(str(e)) from e

    async def content():
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()
            await stack.aclose()

    # Released by the body or the background task, whichever runs first
    return StreamingResponse(
        content(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=batchEarnings.csv"},
        background=BackgroundTask(stack.aclose),
    )


@router.patch(
    "/batch",
    response_model=BatchImportResponse,
    summary="Import Earnings CSV",
    description="Confirm payments for every row of an uploaded CSV in one transaction"
)
async def import_batch_earnings(
    csv_file: UploadFile = File(..., alias="csv"),
    repository: EarningsRepository = Depends(get_earnings_repository),
):
    batch_earnings_service.validate_csv_upload(csv_file)
    path = await batch_earnings_service.save_upload(
        csv_file,
        upload_dir=settings.upload_dir,
        max_bytes=settings.max_upload_bytes,
    )

    try:
        async with repository.transaction():
            count = await batch_earnings_service.batch_update_earnings(repository, path)
    except Exception as e:
        logger.warning("Batch earnings import rolled back", filename=csv_file.filename, error=str(e))
        raise
    finally:
        batch_earnings_service.remove_upload(path)

    logger.info("Batch earnings import completed", filename=csv_file.filename, count=count)
    return BatchImportResponse(status="completed", count=count)
