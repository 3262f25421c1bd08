"""
Type definitions for the job pipeline.
Contains input/output type definitions for all functions, grouped by module.
"""

from jobpipe.types.api import (
    ErrorResponse,
    HealthResponse,
    JobStatsResponse,
    JobStatusResponse,
    SubmitJobRequest,
    SubmitJobResponse,
)
from jobpipe.types.job import (
    JobContext,
    JobResult,
)

__all__ = [
    # API types
    "SubmitJobRequest",
    "SubmitJobResponse",
    "JobStatusResponse",
    "JobStatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobContext",
    "JobResult",
]
