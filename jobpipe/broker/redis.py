"""
Redis-backed queue broker.

Job ids live in a single Redis list. Producers ``LPUSH`` onto the head and
consumers ``BRPOP`` from the tail, so ids come out in the order they went in.
"""

import logging
import math

import redis.asyncio as redis
from redis.exceptions import RedisError

from jobpipe.config import Settings, get_settings
from jobpipe.constants import DEFAULT_QUEUE_NAME
from jobpipe.errors import BrokerUnavailableError

logger = logging.getLogger(__name__)


class RedisQueueBroker:
    """
    Queue broker on a Redis list.

    Example:
        broker = RedisQueueBroker.from_url("redis://localhost:6379/0")
        await broker.enqueue(str(job.id))
        job_id = await broker.dequeue(timeout=5)
    """

    def __init__(
        self,
        client: redis.Redis,
        queue_name: str = DEFAULT_QUEUE_NAME,
    ):
        """
        Initialize the broker.

        Args:
            client: An async Redis client. Responses may be bytes or str.
            queue_name: Name of the Redis list holding job ids.
        """
        self._client = client
        self.queue_name = queue_name

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        queue_name: str = DEFAULT_QUEUE_NAME,
    ) -> "RedisQueueBroker":
        """Create a broker with its own client for ``redis_url``."""
        client = redis.from_url(redis_url, decode_responses=True)
        return cls(client, queue_name=queue_name)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RedisQueueBroker":
        """Create a broker configured from application settings."""
        settings = settings or get_settings()
        return cls.from_url(settings.redis_url, queue_name=settings.queue_name)

    async def enqueue(self, job_id: str) -> None:
        """
        Append a job id to the queue.

        Raises:
            BrokerUnavailableError: If Redis cannot be reached.
        """
        try:
            await self._client.lpush(self.queue_name, job_id)
        except RedisError as e:
            raise BrokerUnavailableError(f"Failed to enqueue job {job_id}: {e}") from e

        logger.debug(
            "Enqueued job",
            extra={"job_id": job_id, "queue": self.queue_name},
        )

    async def dequeue(self, timeout: float) -> str | None:
        """
        Pop the oldest job id, blocking up to ``timeout`` seconds.

        Args:
            timeout: Seconds to wait when the queue is empty. Rounded up to a
                whole second; values below one second block for one second.

        Returns:
            The job id, or None if the timeout elapsed.

        Raises:
            BrokerUnavailableError: If Redis cannot be reached.
        """
        # BRPOP treats 0 as "block forever"
        block_for = max(1, math.ceil(timeout))
        try:
            item = await self._client.brpop([self.queue_name], timeout=block_for)
        except RedisError as e:
            raise BrokerUnavailableError(f"Failed to dequeue: {e}") from e

        if item is None:
            return None

        _, job_id = item
        if isinstance(job_id, bytes):
            job_id = job_id.decode("utf-8")
        return job_id

    async def length(self) -> int:
        """
        Get the number of ids waiting in the queue.

        Raises:
            BrokerUnavailableError: If Redis cannot be reached.
        """
        try:
            return await self._client.llen(self.queue_name)
        except RedisError as e:
            raise BrokerUnavailableError(f"Failed to read queue length: {e}") from e

    async def ping(self) -> bool:
        """Check that Redis answers."""
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        """Close the Redis client."""
        await self._client.aclose()
        logger.info("Broker connection closed")
