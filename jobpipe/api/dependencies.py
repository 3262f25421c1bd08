"""
FastAPI dependencies resolving the collaborators stored on ``app.state``.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from jobpipe.broker.base import QueueBroker
from jobpipe.db.connection import Database
from jobpipe.producer import Producer


def get_database(request: Request) -> Database:
    """Get the job store the application was started with."""
    return request.app.state.database


def get_broker(request: Request) -> QueueBroker:
    """Get the queue broker the application was started with."""
    return request.app.state.broker


async def get_session(
    database: Database = Depends(get_database),
) -> AsyncGenerator[AsyncSession]:
    """
    Dependency for getting async database sessions.

    Yields:
        AsyncSession: A session committed after the request succeeds.
    """
    async with database.session() as session:
        yield session


def get_producer(request: Request) -> Producer:
    """Get the application's producer, creating it on first use."""
    state = request.app.state
    producer = getattr(state, "producer", None)
    if producer is None:
        producer = Producer(state.database, state.broker, state.registry)
        state.producer = producer
    return producer
