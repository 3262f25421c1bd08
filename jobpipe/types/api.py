"""
API request and response type definitions.

Field names are camelCase on the wire.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from jobpipe.constants import JobStatus


class CamelModel(BaseModel):
    """Base model serializing snake_case fields as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitJobRequest(CamelModel):
    """
    Request body for submitting a job.

    Both fields are optional at the schema level so that the producer can
    reject missing values with a 400 instead of a schema error.
    """

    job_type: str | None = Field(default=None, description="Handler tag, e.g. sendEmail")
    payload: Any = Field(default=None, description="Job payload data")


class SubmitJobResponse(CamelModel):
    """Response body after submitting a job."""

    job_id: UUID
    status: JobStatus


class JobStatusResponse(CamelModel):
    """Job status as seen by polling clients."""

    job_id: UUID
    job_type: str
    status: JobStatus
    retries: int
    created_at: datetime
    updated_at: datetime
    last_error: str | None = None


class JobStatsResponse(CamelModel):
    """Job counts by status and broker queue depth."""

    stats: dict[str, int]
    queue_depth: int | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    broker: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
