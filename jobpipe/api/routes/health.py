"""
Health check routes.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from jobpipe import __version__
from jobpipe.api.dependencies import get_broker, get_database
from jobpipe.broker.base import QueueBroker
from jobpipe.db.connection import Database
from jobpipe.errors import BrokerUnavailableError, StoreUnavailableError
from jobpipe.observability.metrics import get_metrics
from jobpipe.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_ok(database: Database) -> bool:
    try:
        async with database.session() as session:
            await session.execute(text("SELECT 1"))
    except (StoreUnavailableError, SQLAlchemyError):
        return False
    return True


@router.get(
    "/",
    response_class=PlainTextResponse,
    summary="Banner",
    description="Confirm the API process is running.",
)
async def root() -> str:
    return "Job dispatch API is running"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API, database and broker connections.",
)
async def health_check(
    database: Database = Depends(get_database),
    broker: QueueBroker = Depends(get_broker),
) -> HealthResponse:
    """
    Perform a health check.

    Checks database and broker connectivity and returns service status.
    """
    db_status = "healthy" if await _database_ok(database) else "unhealthy"
    broker_status = "healthy" if await broker.ping() else "unhealthy"

    overall = "healthy"
    if db_status != "healthy" or broker_status != "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        broker=broker_status,
        timestamp=datetime.now(UTC),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(
    database: Database = Depends(get_database),
    broker: QueueBroker = Depends(get_broker),
) -> dict:
    """Readiness check: both store and broker must answer."""
    ready = await _database_ok(database) and await broker.ping()
    return {"ready": ready}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(broker: QueueBroker = Depends(get_broker)) -> Response:
    """
    Expose Prometheus metrics, refreshing the queue depth gauge first.
    """
    metrics_collector = get_metrics()
    try:
        metrics_collector.update_queue_depth(await broker.length())
    except BrokerUnavailableError:
        logger.warning("Queue depth unavailable, serving last known value")

    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
