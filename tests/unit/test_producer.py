"""
Unit tests for the job producer.
"""

from uuid import UUID

import pytest

from jobpipe.constants import JobStatus
from jobpipe.db import Database, JobRepository
from jobpipe.errors import BrokerUnavailableError, MissingPayloadError, UnknownJobTypeError
from jobpipe.producer import Producer
from jobpipe.worker.handlers import HandlerRegistry


class TestProducer:
    """Tests for validating, storing and enqueuing submissions."""

    @pytest.fixture
    def producer(self, database: Database, broker, registry: HandlerRegistry) -> Producer:
        """Create a producer on the test store and broker."""
        return Producer(database, broker, registry)

    async def _counts(self, database: Database) -> dict[str, int]:
        async with database.session() as session:
            return await JobRepository(session).count_by_status()

    async def test_submit_stores_and_enqueues(self, producer: Producer, database: Database, broker):
        """Test a valid submission."""
        job = await producer.submit("echo", {"message": "hi"})

        assert isinstance(job.id, UUID)
        assert job.status == JobStatus.QUEUED
        assert job.retries == 0
        assert broker.enqueued == [str(job.id)]

        async with database.session() as session:
            stored = await JobRepository(session).get_by_id(job.id)
        assert stored.payload == {"message": "hi"}

    async def test_submissions_get_distinct_ids(self, producer: Producer, broker):
        """Test that repeated submissions are independent jobs."""
        first = await producer.submit("echo", {"n": 1})
        second = await producer.submit("echo", {"n": 1})

        assert first.id != second.id
        assert broker.enqueued == [str(first.id), str(second.id)]

    async def test_unknown_job_type_is_rejected(self, producer: Producer, database: Database, broker):
        """Test that an unregistered type creates no record."""
        with pytest.raises(UnknownJobTypeError, match="Unknown job type: nope"):
            await producer.submit("nope", {"a": 1})

        assert (await self._counts(database))["QUEUED"] == 0
        assert broker.enqueued == []

    @pytest.mark.parametrize("job_type", [None, ""])
    async def test_missing_job_type_is_rejected(self, producer: Producer, job_type, broker):
        """Test that a missing type creates no record."""
        with pytest.raises(UnknownJobTypeError, match="Missing job type"):
            await producer.submit(job_type, {"a": 1})

        assert broker.enqueued == []

    @pytest.mark.parametrize("payload", [None, "text", [1, 2]])
    async def test_invalid_payload_is_rejected(self, producer: Producer, payload, database: Database):
        """Test that a missing or non-object payload creates no record."""
        with pytest.raises(MissingPayloadError):
            await producer.submit("echo", payload)

        assert (await self._counts(database))["QUEUED"] == 0

    async def test_empty_payload_is_accepted(self, producer: Producer):
        """Test that an empty object is a valid payload."""
        job = await producer.submit("echo", {})

        assert job.status == JobStatus.QUEUED

    async def test_enqueue_failure_leaves_job_queued(
        self,
        producer: Producer,
        database: Database,
        broker,
    ):
        """Test that a broker outage after insert leaves a QUEUED orphan."""
        broker.available = False

        with pytest.raises(BrokerUnavailableError):
            await producer.submit("echo", {"message": "lost"})

        counts = await self._counts(database)
        assert counts["QUEUED"] == 1
        assert broker.enqueued == []
