"""
Job repository for database operations.
Implements the data access patterns the lifecycle engine relies on.
"""

import logging
from datetime import timedelta
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jobpipe.constants import TERMINAL_STATUSES, JobStatus
from jobpipe.db.models import Job, utcnow
from jobpipe.errors import InvalidTransitionError
from jobpipe.lifecycle import Transition, allowed_targets

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job database operations.

    Implements atomic single-row operations for:
    - Job insertion
    - Lookup by id
    - Conditional status transitions (compare-and-swap on status)
    - Stale job queries for operators
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def insert(self, job_type: str, payload: dict[str, Any]) -> Job:
        """
        Insert a new job in QUEUED status with zero retries.

        Args:
            job_type: Handler tag for the job.
            payload: The job payload.

        Returns:
            The created Job.
        """
        now = utcnow()
        stmt = (
            insert(Job)
            .values(
                type=job_type,
                payload=payload,
                status=JobStatus.QUEUED,
                retries=0,
                created_at=now,
                updated_at=now,
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one()

        logger.info(
            "Created new job",
            extra={"job_id": str(job.id), "job_type": job_type},
        )
        return job

    async def get_by_id(self, job_id: UUID) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job UUID.

        Returns:
            The Job or None if not found.
        """
        stmt = (
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_status(
        self,
        job_id: UUID,
        new_status: JobStatus,
        *,
        expected_status: JobStatus | None = None,
        increment_retries: bool = False,
        last_error: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> Job | None:
        """
        Change a job's status in a single atomic UPDATE.

        With ``expected_status`` the update only succeeds while the stored status
        still equals it, which makes it the serialization point between workers
        racing on the same job. Jobs in a terminal status are never updated.

        Args:
            job_id: The job UUID.
            new_status: Status to set.
            expected_status: Required current status, if any.
            increment_retries: Whether to count an execution attempt.
            last_error: Error message to record for a failed attempt.
            result: Handler output to record for a successful attempt.

        Returns:
            Updated Job, or None if the job is missing or the condition failed.

        Raises:
            InvalidTransitionError: If ``new_status`` is not reachable from
                ``expected_status`` in one step.
        """
        if expected_status is not None and new_status not in allowed_targets(expected_status):
            raise InvalidTransitionError(expected_status, target=new_status)

        conditions = [
            Job.id == job_id,
            Job.status.notin_(sorted(TERMINAL_STATUSES)),
        ]
        if expected_status is not None:
            conditions.append(Job.status == expected_status)

        values: dict[str, Any] = {
            "status": new_status,
            "updated_at": utcnow(),
        }
        if increment_retries:
            values["retries"] = Job.retries + 1
        if last_error is not None:
            values["last_error"] = last_error
        if result is not None:
            values["result"] = result

        stmt = (
            update(Job)
            .where(and_(*conditions))
            .values(**values)
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result_obj = await self._session.execute(stmt)
        job = result_obj.scalar_one_or_none()

        if job is None:
            logger.debug(
                "Conditional status update matched no row",
                extra={
                    "job_id": str(job_id),
                    "expected_status": expected_status,
                    "new_status": new_status,
                },
            )

        return job

    async def transition(
        self,
        job_id: UUID,
        transition: Transition,
        *,
        last_error: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> Job | None:
        """
        Apply a lifecycle transition as a compare-and-swap on its source status.

        Args:
            job_id: The job UUID.
            transition: Row of the lifecycle transition table.
            last_error: Error message for failure transitions.
            result: Handler output for success transitions.

        Returns:
            Updated Job or None if the job was not in ``transition.source``.
        """
        return await self.update_status(
            job_id,
            transition.target,
            expected_status=transition.source,
            increment_retries=transition.increments_retries,
            last_error=last_error,
            result=result,
        )

    async def count_by_status(self) -> dict[str, int]:
        """
        Get job counts grouped by status.

        Returns:
            Dictionary of status -> count, with every status present.
        """
        stmt = select(Job.status, func.count()).group_by(Job.status)
        result = await self._session.execute(stmt)

        counts = {status.value: 0 for status in JobStatus}
        for status, count in result.all():
            counts[JobStatus(status).value] = count
        return counts

    async def list_stale(
        self,
        status: JobStatus,
        older_than: timedelta,
        limit: int = 100,
    ) -> Sequence[Job]:
        """
        List jobs that have sat in ``status`` without an update for too long.

        PROCESSING jobs found here were most likely abandoned by a crashed
        worker; QUEUED ones may be orphans whose id never reached the broker.

        Args:
            status: Status to inspect.
            older_than: Minimum age of the last update.
            limit: Maximum number of jobs to return.

        Returns:
            Matching jobs, oldest update first.
        """
        cutoff = utcnow() - older_than
        stmt = (
            select(Job)
            .where(and_(Job.status == status, Job.updated_at < cutoff))
            .order_by(Job.updated_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
