"""
FastAPI application factory and main entry point.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gtm_analyzer.api.middleware import WideEventMiddleware
from gtm_analyzer.api.routes import analyze, health
from gtm_analyzer.core.config import Settings, settings as default_settings
from gtm_analyzer.core.exceptions import (
    AnalysisError,
    ConflictError,
    ExternalServiceError,
    GTMAnalyzerException,
    ResourceNotFoundError,
    ValidationError,
)
from gtm_analyzer.core.logging import configure_logging
from gtm_analyzer.services.analyzer import Analyzer
from gtm_analyzer.services.fetcher import Fetcher
from gtm_analyzer.services.job_store import JobStore
from gtm_analyzer.worker.retention import run_retention_loop
from gtm_analyzer.worker.scheduler import Scheduler

configure_logging(
    json_logs=not default_settings.debug,  # JSON in production, console in dev
    log_level="DEBUG" if default_settings.debug else "INFO",
)

logger = structlog.get_logger()


def _error_response(status_code: int, exc: GTMAnalyzerException, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": exc.message,
                "type": error_type,
                "details": exc.details,
            }
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the retention sweeper; stop the worker and close the fetcher on exit."""
    settings: Settings = app.state.settings
    logger.info("Starting GTM Analyzer API", version=settings.app_version)

    sweeper = asyncio.create_task(
        run_retention_loop(
            app.state.job_store,
            max_age_seconds=settings.job_retention_seconds,
            max_jobs=settings.job_max_count,
            interval_seconds=settings.retention_sweep_interval,
        ),
        name="gtm-analyzer-retention",
    )

    yield

    logger.info("Shutting down GTM Analyzer API")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await app.state.scheduler.shutdown()
    await app.state.fetcher.aclose()
    logger.info("Fetcher closed")


def create_app(settings: Settings | None = None, fetcher: Fetcher | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Overrides the environment-derived settings
        fetcher: Overrides the HTTP fetcher (tests inject stubs here)
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Detects Google Tag Manager containers and first-party proxying",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Shared components, one set per application
    job_store = JobStore()
    fetcher = fetcher or Fetcher.from_settings(settings)
    app.state.settings = settings
    app.state.job_store = job_store
    app.state.fetcher = fetcher
    app.state.scheduler = Scheduler(job_store, fetcher, Analyzer())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(WideEventMiddleware)

    # Health first: "/" must answer before anything else
    app.include_router(health.router, tags=["Health"])
    app.include_router(analyze.router, tags=["Analysis"])

    # Exception Handlers
    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors"""
        logger.warning("Request validation error", url=str(request.url), errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "message": "Validation failed",
                    "type": "validation_error",
                    "details": jsonable_errors(exc),
                }
            },
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.info("Rejected input", url=str(request.url), message=exc.message)
        return _error_response(400, exc, "validation_error")

    @app.exception_handler(ResourceNotFoundError)
    async def not_found_exception_handler(request: Request, exc: ResourceNotFoundError):
        logger.info("Resource not found", url=str(request.url), message=exc.message)
        return _error_response(404, exc, "not_found_error")

    @app.exception_handler(ConflictError)
    async def conflict_exception_handler(request: Request, exc: ConflictError):
        logger.warning("Conflict error", url=str(request.url), message=exc.message)
        return _error_response(409, exc, "conflict_error")

    @app.exception_handler(ExternalServiceError)
    async def external_service_exception_handler(request: Request, exc: ExternalServiceError):
        """Fetch failures surface as bad gateway"""
        logger.warning("External service error", url=str(request.url), message=exc.message)
        return _error_response(502, exc, "fetch_error")

    @app.exception_handler(AnalysisError)
    async def analysis_exception_handler(request: Request, exc: AnalysisError):
        logger.error("Analysis error", url=str(request.url), message=exc.message)
        return _error_response(500, exc, "analysis_error")

    @app.exception_handler(GTMAnalyzerException)
    async def app_exception_handler(request: Request, exc: GTMAnalyzerException):
        logger.error("App error", url=str(request.url), message=exc.message)
        return _error_response(500, exc, "application_error")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error("Unexpected error", url=str(request.url), error=str(exc), exc_info=True)

        # Don't expose internal details in production
        message = str(exc) if settings.debug else "An unexpected error occurred"

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": message,
                    "type": "internal_server_error",
                }
            },
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without non-serializable context objects."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gtm_analyzer.api.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
