"""
Job producer.

Validates submissions, persists them and hands their ids to the broker.
"""

import logging
from typing import Any

from jobpipe.broker.base import QueueBroker
from jobpipe.constants import SPAN_SUBMIT_JOB
from jobpipe.db.connection import Database
from jobpipe.db.models import Job
from jobpipe.db.repository import JobRepository
from jobpipe.errors import BrokerUnavailableError, MissingPayloadError, UnknownJobTypeError
from jobpipe.observability.metrics import get_metrics
from jobpipe.observability.tracing import get_tracer
from jobpipe.worker.handlers import HandlerRegistry, default_registry

logger = logging.getLogger(__name__)


class Producer:
    """
    Entry point of the pipeline.

    A job is inserted (and committed) before its id is enqueued. If the enqueue
    then fails the job stays QUEUED in the store without ever reaching a worker;
    such orphans are logged and visible through the stale-job query, but are
    not re-enqueued automatically.
    """

    def __init__(
        self,
        database: Database,
        broker: QueueBroker,
        registry: HandlerRegistry | None = None,
    ):
        """
        Initialize the producer.

        Args:
            database: Connected job store.
            broker: Queue broker receiving job ids.
            registry: Handlers defining the accepted job types.
        """
        self._database = database
        self._broker = broker
        self._registry = registry if registry is not None else default_registry
        self._metrics = get_metrics()

    def validate(self, job_type: str | None, payload: Any) -> None:
        """
        Reject a submission that must not enter the pipeline.

        Raises:
            UnknownJobTypeError: If the type is missing or has no handler.
            MissingPayloadError: If the payload is missing or not an object.
        """
        if not job_type or job_type not in self._registry:
            raise UnknownJobTypeError(job_type)
        if payload is None or not isinstance(payload, dict):
            raise MissingPayloadError(job_type)

    async def submit(self, job_type: str | None, payload: Any) -> Job:
        """
        Submit a job.

        Args:
            job_type: Handler tag.
            payload: Job payload (a JSON object).

        Returns:
            The stored job, status QUEUED and retries 0.

        Raises:
            JobValidationError: If the submission is invalid. Nothing is stored.
            StoreUnavailableError: If the job could not be stored.
            BrokerUnavailableError: If the job was stored but not enqueued.
        """
        self.validate(job_type, payload)

        with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
            span.set_attribute("job_type", job_type)

            async with self._database.session() as session:
                repo = JobRepository(session)
                job = await repo.insert(job_type, payload)

            span.set_attribute("job_id", str(job.id))

            try:
                await self._broker.enqueue(str(job.id))
            except BrokerUnavailableError:
                logger.error(
                    "Job stored but not enqueued (orphaned)",
                    extra={"job_id": str(job.id), "job_type": job_type},
                )
                raise

        self._metrics.record_job_submitted(job_type)
        logger.info(
            "Job submitted",
            extra={"job_id": str(job.id), "job_type": job_type},
        )
        return job
