"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions (see jobpipe.lifecycle for the full table):
    - QUEUED -> PROCESSING (dequeued by a worker)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> QUEUED (failure, retries remaining)
    - PROCESSING -> FAILED (failure, retries exhausted)
    """

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED}
)

# Column sizes
JOB_TYPE_MAX_LENGTH = 50
JOB_STATUS_MAX_LENGTH = 20

# Default values
DEFAULT_MAX_RETRIES = 3
DEFAULT_QUEUE_NAME = "jobpipe:jobs"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_DELIVERY_ANOMALIES = "job_delivery_anomalies_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Delivery anomaly reasons
ANOMALY_JOB_MISSING = "job_missing"
ANOMALY_NOT_QUEUED = "not_queued"
ANOMALY_LOST_RACE = "lost_race"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_EXECUTE_JOB = "execute_job"
