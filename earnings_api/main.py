"""
Main FastAPI application for the earnings API.
Configures the API server with routes, middleware, and error handlers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from earnings_api.api.middleware import add_middleware
from earnings_api.api.routes import earnings
from earnings_api.api.schemas.common import (
    HealthCheckResponse,
    create_error_response,
    format_validation_errors,
)
from earnings_api.core.config import settings
from earnings_api.core.database import DatabaseManager, close_database, init_database
from earnings_api.core.exceptions import EarningsApiException
from earnings_api.core.logging import setup_logging


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting earnings API", version=settings.app_version, environment=settings.environment)
    await init_database()

    yield

    logger.info("Shutting down earnings API")
    await close_database()


def _error_json(status_code: int, message: str, error_code: str, details=None) -> JSONResponse:
    body = create_error_response(message=message, error_code=error_code, details=details)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def earnings_api_exception_handler(request: Request, exc: EarningsApiException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.code,
        error=exc.message,
    )
    return _error_json(exc.status_code, exc.message, exc.code, exc.details or None)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = format_validation_errors(exc.errors())
    logger.info("Request validation failed", method=request.method, path=request.url.path, errors=errors)
    return _error_json(
        422,
        "Request validation failed",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Read, confirm payment of, and batch import/export earnings records.",
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)

    app.add_exception_handler(EarningsApiException, earnings_api_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and database connectivity"
    )
    async def health_check():
        if await DatabaseManager.health_check():
            return HealthCheckResponse(version=settings.app_version)

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=jsonable_encoder(HealthCheckResponse(
                status="unhealthy",
                version=settings.app_version,
                services={"database": "unhealthy", "api": "healthy"},
            ))
        )

    app.include_router(
        earnings.router,
        prefix="/earnings",
        tags=["Earnings"]
    )

    logger.info("FastAPI application created successfully")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "earnings_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
