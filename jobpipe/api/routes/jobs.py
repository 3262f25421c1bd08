"""
Job submission and status routes.
"""

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobpipe.api.dependencies import get_broker, get_producer, get_session
from jobpipe.broker.base import QueueBroker
from jobpipe.constants import JobStatus
from jobpipe.db.models import Job
from jobpipe.db.repository import JobRepository
from jobpipe.errors import BrokerUnavailableError, JobNotFoundError
from jobpipe.producer import Producer
from jobpipe.types.api import (
    ErrorResponse,
    JobStatsResponse,
    JobStatusResponse,
    SubmitJobRequest,
    SubmitJobResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])


def _job_to_response(job: Job) -> JobStatusResponse:
    """Convert a Job model to a JobStatusResponse."""
    return JobStatusResponse(
        job_id=job.id,
        job_type=job.type,
        status=job.status,
        retries=job.retries,
        created_at=job.created_at,
        updated_at=job.updated_at,
        last_error=job.last_error,
    )


@router.post(
    "/submit-job",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description="Validate, store and enqueue a new job.",
    responses={
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def submit_job(
    request: SubmitJobRequest,
    producer: Producer = Depends(get_producer),
) -> SubmitJobResponse:
    """
    Submit a new job.

    Args:
        request: Job type and payload.
        producer: The application's producer.

    Returns:
        SubmitJobResponse with the new job id and QUEUED status.
    """
    job = await producer.submit(request.job_type, request.payload)

    return SubmitJobResponse(job_id=job.id, status=job.status)


@router.get(
    "/job-status/{job_id}",
    response_model=JobStatusResponse,
    summary="Get job status",
    description="Get the current status and attempt count of a job.",
    responses={404: {"model": ErrorResponse}},
)
async def get_job_status(
    job_id: str,
    session: AsyncSession = Depends(get_session),
) -> JobStatusResponse:
    """
    Get job status by ID.

    Raises:
        JobNotFoundError: If the id is malformed or the job does not exist.
    """
    try:
        job_uuid = UUID(job_id)
    except ValueError:
        raise JobNotFoundError(job_id)

    job = await JobRepository(session).get_by_id(job_uuid)

    if job is None:
        raise JobNotFoundError(job_id)

    return _job_to_response(job)


@router.get(
    "/jobs/stats",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Get job counts by status and the broker queue depth.",
)
async def get_job_stats(
    session: AsyncSession = Depends(get_session),
    broker: QueueBroker = Depends(get_broker),
) -> JobStatsResponse:
    """
    Get job statistics.

    The queue depth is omitted when the broker cannot be reached.
    """
    stats = await JobRepository(session).count_by_status()

    try:
        queue_depth = await broker.length()
    except BrokerUnavailableError:
        logger.warning("Queue depth unavailable")
        queue_depth = None

    return JobStatsResponse(stats=stats, queue_depth=queue_depth)


@router.get(
    "/jobs/stale",
    response_model=list[JobStatusResponse],
    summary="List stale jobs",
    description=(
        "List jobs that have not changed status for a while: PROCESSING jobs "
        "abandoned by a crashed worker, or QUEUED jobs whose id never reached "
        "the broker. Nothing is recovered automatically."
    ),
)
async def list_stale_jobs(
    job_status: JobStatus = Query(default=JobStatus.PROCESSING, alias="status"),
    older_than_seconds: int = Query(default=300, ge=0, alias="olderThanSeconds"),
    limit: int = Query(default=100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
) -> list[JobStatusResponse]:
    """List jobs stuck in ``status`` for at least ``olderThanSeconds``."""
    jobs = await JobRepository(session).list_stale(
        status=job_status,
        older_than=timedelta(seconds=older_than_seconds),
        limit=limit,
    )
    return [_job_to_response(job) for job in jobs]
