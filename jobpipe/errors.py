"""
Exception hierarchy for the job pipeline.

Validation errors are raised synchronously to the submitter and never enter the
pipeline. Infrastructure errors wrap store and broker connectivity failures so
callers can tell them apart from per-job failures, which are recorded in the
job's status instead of being raised.
"""

from uuid import UUID


class JobPipeError(Exception):
    """Base class for all jobpipe errors."""


class JobValidationError(JobPipeError):
    """A submission was rejected before it reached the store."""


class UnknownJobTypeError(JobValidationError):
    def __init__(self, job_type: str | None):
        self.job_type = job_type
        if job_type:
            message = f"Unknown job type: {job_type}"
        else:
            message = "Missing job type"
        super().__init__(message)


class MissingPayloadError(JobValidationError):
    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"Missing or invalid payload for job type: {job_type}")


class JobNotFoundError(JobPipeError):
    def __init__(self, job_id: UUID | str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidTransitionError(JobPipeError):
    """No row of the lifecycle transition table matches the request."""

    def __init__(self, status: str, event: str | None = None, target: str | None = None):
        self.status = status
        self.event = event
        self.target = target
        if event is not None:
            message = f"No transition from {status} on event {event}"
        else:
            message = f"No transition from {status} to {target}"
        super().__init__(message)


class InfrastructureError(JobPipeError):
    """The job store or queue broker could not be reached."""


class StoreUnavailableError(InfrastructureError):
    pass


class BrokerUnavailableError(InfrastructureError):
    pass
