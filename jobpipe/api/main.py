"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobpipe import __version__
from jobpipe.api.middleware import create_request_logging_middleware
from jobpipe.api.routes import health_router, jobs_router
from jobpipe.broker.base import QueueBroker
from jobpipe.broker.redis import RedisQueueBroker
from jobpipe.config import Settings, get_settings
from jobpipe.db import Database, run_migrations
from jobpipe.errors import (
    BrokerUnavailableError,
    InfrastructureError,
    JobNotFoundError,
    JobValidationError,
)
from jobpipe.observability.logging import setup_logging
from jobpipe.observability.metrics import setup_metrics
from jobpipe.observability.tracing import instrument_fastapi, setup_tracing
from jobpipe.worker.handlers import HandlerRegistry, default_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Creates the store and broker clients unless they were injected, runs the
    schema migration and verifies the broker before serving. Any failure here
    aborts startup. Only clients created here are closed on shutdown.
    """
    settings: Settings = app.state.settings

    # Startup
    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)

    owned_database = app.state.database is None
    owned_broker = app.state.broker is None

    if owned_database:
        app.state.database = Database.from_settings(settings)
        app.state.database.connect()
    if owned_broker:
        app.state.broker = RedisQueueBroker.from_settings(settings)

    try:
        await run_migrations(app.state.database)
        if not await app.state.broker.ping():
            raise BrokerUnavailableError(f"Cannot reach broker at {settings.redis_url}")

        logger.info("Application started")

        yield

    finally:
        # Shutdown
        if owned_broker:
            await app.state.broker.close()
            app.state.broker = None
        if owned_database:
            await app.state.database.dispose()
            app.state.database = None
        app.state.producer = None
        logger.info("Application shutdown")


def _error(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map pipeline errors to HTTP responses."""

    @app.exception_handler(JobValidationError)
    async def validation_error_handler(request: Request, exc: JobValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_job", str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", str(exc.errors()))

    @app.exception_handler(JobNotFoundError)
    async def not_found_handler(request: Request, exc: JobNotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, "not_found", str(exc))

    @app.exception_handler(InfrastructureError)
    async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
        logger.error(
            "Infrastructure error while handling request",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "service_unavailable", str(exc))


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    broker: QueueBroker | None = None,
    registry: HandlerRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings.
        database: Connected job store. Created at startup when omitted.
        broker: Queue broker. Created at startup when omitted.
        registry: Handlers defining the accepted job types.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Job Dispatch API",
        description="Asynchronous job dispatch pipeline with PostgreSQL and Redis",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings or get_settings()
    app.state.database = database
    app.state.broker = broker
    app.state.registry = registry if registry is not None else default_registry
    app.state.producer = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=create_request_logging_middleware(),
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """
    Run the API server.

    uvicorn exits non-zero if the lifespan startup fails.
    """
    settings = get_settings()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
