"""
Queue broker protocol.

The broker is a durable FIFO of job ids shared by the producer and the worker
pool. It carries ids only; the job store holds everything else.
"""

from typing import Protocol


class QueueBroker(Protocol):
    """
    Producer/consumer contract against the broker.

    Delivery is at-least-once. A dequeued id is in flight and is not
    redelivered if the consumer dies before resolving the job.
    """

    async def enqueue(self, job_id: str) -> None:
        """Append a job id to the tail of the queue."""
        ...

    async def dequeue(self, timeout: float) -> str | None:
        """Remove and return the oldest id, waiting up to ``timeout`` seconds."""
        ...

    async def length(self) -> int:
        """Number of ids currently waiting."""
        ...

    async def ping(self) -> bool:
        """Check that the broker is reachable."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...
