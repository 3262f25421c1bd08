"""
Worker process for executing jobs.

Each worker blocks on the broker for a job id, re-reads the job from the store,
claims it with a conditional status update, runs its handler and records the
outcome according to the lifecycle transition table.
"""

import asyncio
import logging
import os
import signal
import sys
import time
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from jobpipe.broker.base import QueueBroker
from jobpipe.broker.redis import RedisQueueBroker
from jobpipe.config import Settings, get_settings
from jobpipe.constants import (
    ANOMALY_JOB_MISSING,
    ANOMALY_LOST_RACE,
    ANOMALY_NOT_QUEUED,
    SPAN_EXECUTE_JOB,
)
from jobpipe.db import Database, JobRepository, run_migrations
from jobpipe.db.models import Job
from jobpipe.errors import BrokerUnavailableError, InfrastructureError
from jobpipe.lifecycle import JobEvent, Transition, can_execute, resolve
from jobpipe.observability.logging import (
    bind_context,
    bind_job_context,
    clear_context,
    setup_logging,
    unbind_job_context,
)
from jobpipe.observability.metrics import get_metrics
from jobpipe.observability.tracing import get_tracer, setup_tracing
from jobpipe.types.job import JobContext, JobResult
from jobpipe.worker.handlers import HandlerRegistry, default_registry

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker with a single dequeue loop.

    Features:
    - Blocking dequeue bounded by a timeout, so stop requests are noticed
    - Status re-check after dequeue, skipping stale or duplicate deliveries
    - Compare-and-swap claim, so only one worker runs a given job
    - Retry via re-enqueue and terminal failure after max_retries attempts
    - Capped exponential backoff on store/broker errors
    """

    def __init__(
        self,
        database: Database,
        broker: QueueBroker,
        registry: HandlerRegistry | None = None,
        worker_id: str | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the worker.

        Args:
            database: Connected job store.
            broker: Queue broker to consume from.
            registry: Handlers to dispatch to.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            settings: Application settings.
        """
        settings = settings or get_settings()

        self.worker_id = worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.max_retries = settings.max_retries
        self.dequeue_timeout = settings.worker_dequeue_timeout_seconds
        self.error_backoff = settings.worker_error_backoff_seconds
        self.max_error_backoff = settings.worker_max_error_backoff_seconds

        self._database = database
        self._broker = broker
        self._registry = registry if registry is not None else default_registry
        self._running = False
        self._consecutive_errors = 0
        self._metrics = get_metrics()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the dequeue loop until stop() is called."""
        bind_context(worker_id=self.worker_id)
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "max_retries": self.max_retries},
        )

        self._running = True

        while self._running:
            try:
                await self.run_once()
                self._consecutive_errors = 0

            except Exception as e:
                self._consecutive_errors += 1
                delay = self._backoff_delay()
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id, "retry_in": delay},
                )
                await asyncio.sleep(delay)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})
        clear_context()

    async def stop(self) -> None:
        """
        Stop the worker gracefully.

        The loop exits after the current dequeue wait or job attempt. A job
        already claimed is not rolled back.
        """
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    def _backoff_delay(self) -> float:
        exponent = max(0, self._consecutive_errors - 1)
        return min(self.error_backoff * (2 ** exponent), self.max_error_backoff)

    async def run_once(self) -> Job | None:
        """
        Dequeue and process at most one job.

        Returns:
            The job after this attempt, or None if nothing was executed.
        """
        job_id = await self._broker.dequeue(self.dequeue_timeout)
        if job_id is None:
            return None
        return await self.process(job_id)

    def _skip(self, job_id: str, reason: str, **extra: object) -> None:
        self._metrics.record_delivery_anomaly(reason)
        logger.warning(
            "Skipping delivered job",
            extra={
                "job_id": job_id,
                "worker_id": self.worker_id,
                "reason": reason,
                **extra,
            },
        )

    async def process(self, job_id: str) -> Job | None:
        """
        Process one delivered job id.

        Args:
            job_id: Job id as carried by the broker.

        Returns:
            The job after this attempt, or None if the delivery was skipped.
        """
        try:
            job_uuid = UUID(job_id)
        except ValueError:
            self._skip(job_id, ANOMALY_JOB_MISSING, detail="malformed id")
            return None

        async with self._database.session() as session:
            job = await JobRepository(session).get_by_id(job_uuid)

        if job is None:
            self._skip(job_id, ANOMALY_JOB_MISSING)
            return None

        if not can_execute(job):
            self._skip(
                job_id,
                ANOMALY_NOT_QUEUED,
                status=job.status,
                terminal=job.is_terminal,
            )
            return None

        claim = resolve(job.status, JobEvent.DEQUEUED)
        async with self._database.session() as session:
            running = await JobRepository(session).transition(job_uuid, claim)

        if running is None:
            self._skip(job_id, ANOMALY_LOST_RACE)
            return None

        context = JobContext(
            job_id=running.id,
            job_type=running.type,
            payload=running.payload,
            attempt=running.retries,
            max_retries=self.max_retries,
            worker_id=self.worker_id,
        )

        bind_job_context(running.id, running.type, context.attempt)
        try:
            logger.info(
                "Executing job",
                extra={
                    "last_attempt": context.is_last_attempt,
                    "remaining_attempts": context.remaining_attempts,
                },
            )

            start_time = time.perf_counter()
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", job_id)
                span.set_attribute("job_type", running.type)
                span.set_attribute("retries", running.retries)
                span.set_attribute("last_attempt", context.is_last_attempt)

                result = await self._registry.execute(context)

            duration = time.perf_counter() - start_time
            return await self._record_outcome(running, result, duration)
        finally:
            unbind_job_context()

    async def _apply(
        self,
        job: Job,
        transition: Transition,
        result: JobResult,
    ) -> Job | None:
        async with self._database.session() as session:
            return await JobRepository(session).transition(
                job.id,
                transition,
                last_error=None if result.success else (result.error or "Unknown error"),
                result=result.output if result.success else None,
            )

    async def _record_outcome(
        self,
        job: Job,
        result: JobResult,
        duration: float,
    ) -> Job | None:
        """
        Apply the success or failure transition for a finished attempt.

        Args:
            job: The job as claimed (status PROCESSING).
            result: Handler result.
            duration: Attempt duration in seconds.

        Returns:
            The updated job, or None if its status changed underneath us.
        """
        event = JobEvent.SUCCEEDED if result.success else JobEvent.FAILED
        transition = resolve(job.status, event, job.retries, self.max_retries)

        try:
            updated = await self._apply(job, transition, result)
        except SQLAlchemyError as e:
            # Connectivity errors arrive as StoreUnavailableError instead
            if not result.success:
                raise
            logger.exception(
                "Job result rejected by the store, recording attempt as failed",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            result = JobResult(
                success=False,
                error=f"Result could not be stored: {e}",
                duration_ms=result.duration_ms,
            )
            transition = resolve(job.status, JobEvent.FAILED, job.retries, self.max_retries)
            updated = await self._apply(job, transition, result)

        if updated is None:
            logger.warning(
                "Job left PROCESSING while executing",
                extra={"job_id": str(job.id), "worker_id": self.worker_id},
            )
            return None

        if transition.requeue:
            try:
                await self._broker.enqueue(str(job.id))
            except BrokerUnavailableError:
                logger.error(
                    "Job requeued in store but not in broker (orphaned)",
                    extra={"job_id": str(job.id), "retries": updated.retries},
                )
                raise

        self._metrics.record_job_completed(
            job_type=job.type,
            status=updated.status.value,
            duration_seconds=duration,
        )

        if result.success:
            logger.info(
                "Job completed successfully",
                extra={
                    "job_id": str(job.id),
                    "retries": updated.retries,
                    "duration": f"{duration:.2f}s",
                },
            )
        elif transition.requeue:
            logger.warning(
                "Job failed, queued for retry",
                extra={
                    "job_id": str(job.id),
                    "error": result.error,
                    "retries": updated.retries,
                },
            )
        else:
            logger.error(
                f"Job failed after {updated.retries} attempts",
                extra={"job_id": str(job.id), "error": result.error},
            )

        return updated


class WorkerPool:
    """
    Fixed-size set of independent workers sharing one store and one broker.

    Workers run as asyncio tasks in a single process. They share no job state;
    the store and broker are the only synchronization points.
    """

    def __init__(
        self,
        database: Database,
        broker: QueueBroker,
        registry: HandlerRegistry | None = None,
        size: int | None = None,
        settings: Settings | None = None,
        worker_id_prefix: str | None = None,
    ):
        settings = settings or get_settings()
        self.size = size or settings.worker_concurrency
        prefix = worker_id_prefix or f"{os.uname().nodename}-{os.getpid()}"

        self.workers = [
            Worker(
                database,
                broker,
                registry=registry,
                worker_id=f"{prefix}-{i}",
                settings=settings,
            )
            for i in range(self.size)
        ]
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start all workers and wait until every one of them has stopped."""
        logger.info(f"Worker pool starting with {self.size} workers")
        self._tasks = [asyncio.create_task(worker.start()) for worker in self.workers]
        try:
            await asyncio.gather(*self._tasks)
        finally:
            self._tasks = []
        logger.info("Worker pool stopped")

    async def stop(self) -> None:
        """Ask every worker to stop after its current dequeue or attempt."""
        for worker in self.workers:
            await worker.stop()


async def run_async(settings: Settings | None = None) -> None:
    """Run the worker pool asynchronously."""
    settings = settings or get_settings()
    setup_logging(settings)
    setup_tracing(settings)

    async with Database.from_settings(settings) as database:
        await run_migrations(database)

        broker = RedisQueueBroker.from_settings(settings)
        try:
            if not await broker.ping():
                raise BrokerUnavailableError(f"Cannot reach broker at {settings.redis_url}")

            pool = WorkerPool(database, broker, settings=settings)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(
                    sig,
                    lambda: asyncio.create_task(pool.stop()),
                )

            await pool.start()
        finally:
            await broker.close()


def run() -> None:
    """Run the worker pool; exit non-zero if the store or broker is unreachable."""
    try:
        asyncio.run(run_async())
    except InfrastructureError:
        logger.exception("Worker startup failed")
        sys.exit(1)


if __name__ == "__main__":
    run()
