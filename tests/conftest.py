"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from jobpipe.api.main import create_app
from jobpipe.config import Settings
from jobpipe.db import Database, run_migrations
from jobpipe.errors import BrokerUnavailableError
from jobpipe.types.job import JobContext, JobResult
from jobpipe.worker.handlers import HandlerRegistry


class MemoryBroker:
    """
    In-process queue broker for tests.

    Keeps FIFO order like the Redis list and records every enqueued id, so
    tests can assert on what a producer or worker handed to the broker.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self.enqueued: list[str] = []
        self.available = True
        self.closed = False

    async def enqueue(self, job_id: str) -> None:
        if not self.available:
            raise BrokerUnavailableError(f"Failed to enqueue job {job_id}: broker down")
        self.enqueued.append(job_id)
        await self._queue.put(job_id)

    async def dequeue(self, timeout: float) -> str | None:
        if not self.available:
            raise BrokerUnavailableError("Failed to dequeue: broker down")
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def length(self) -> int:
        if not self.available:
            raise BrokerUnavailableError("Failed to read queue length: broker down")
        return self._queue.qsize()

    async def ping(self) -> bool:
        return self.available

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        max_retries=3,
        worker_concurrency=2,
        worker_dequeue_timeout_seconds=1,
        worker_error_backoff_seconds=0.01,
        worker_max_error_backoff_seconds=0.05,
        log_level="DEBUG",
        log_format="console",
    )


@pytest_asyncio.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database]:
    """Create a connected, migrated job store."""
    db = Database(test_settings.database_url)
    db.connect()
    await run_migrations(db)

    yield db

    await db.dispose()


@pytest.fixture
def broker() -> MemoryBroker:
    """Create an in-memory queue broker."""
    return MemoryBroker()


@pytest.fixture
def registry() -> HandlerRegistry:
    """
    Create a registry with one always-succeeding and one always-failing handler.
    """
    registry = HandlerRegistry()

    @registry.register("echo")
    async def echo(context: JobContext) -> JobResult:
        return JobResult(success=True, output={"echo": context.payload})

    @registry.register("alwaysFails")
    async def always_fails(context: JobContext) -> JobResult:
        return JobResult(success=False, error=f"boom on attempt {context.attempt}")

    return registry


@pytest_asyncio.fixture
async def app(
    test_settings: Settings,
    database: Database,
    broker: MemoryBroker,
    registry: HandlerRegistry,
) -> FastAPI:
    """Create a FastAPI app wired to the test store and broker."""
    return create_app(
        test_settings,
        database=database,
        broker=broker,
        registry=registry,
    )


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_submission() -> dict[str, Any]:
    """Create a sample job submission body."""
    return {
        "jobType": "echo",
        "payload": {"message": "Hello, World!"},
    }
