"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class JobResult(BaseModel):
    """
    Result of one execution attempt.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and the payload to act on.
    """

    job_id: UUID
    job_type: str
    payload: dict[str, Any]
    attempt: int
    max_retries: int
    worker_id: str

    @property
    def is_last_attempt(self) -> bool:
        """Check if a failure of this attempt is terminal."""
        return self.attempt >= self.max_retries

    @property
    def remaining_attempts(self) -> int:
        """Get the number of attempts left after this one."""
        return max(0, self.max_retries - self.attempt)
