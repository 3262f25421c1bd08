"""
Job lifecycle state machine.

Every status change a job goes through is a row of ``TRANSITIONS``. Workers never
decide the next status with ad-hoc branching: they look up the matching row with
``resolve`` and hand it to the store, which applies it as a compare-and-swap on
the job's current status.

    QUEUED --DEQUEUED--> PROCESSING                      (retries + 1)
    PROCESSING --SUCCEEDED--> COMPLETED                  (terminal)
    PROCESSING --FAILED [retries < max_retries]--> QUEUED (re-enqueue id)
    PROCESSING --FAILED [retries >= max_retries]--> FAILED (terminal)
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from jobpipe.constants import TERMINAL_STATUSES, JobStatus
from jobpipe.errors import InvalidTransitionError

# (retries, max_retries) -> bool
Guard = Callable[[int, int], bool]


class JobEvent(StrEnum):
    """Events that drive the lifecycle."""

    DEQUEUED = "dequeued"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def retries_remaining(retries: int, max_retries: int) -> bool:
    return retries < max_retries


def retries_exhausted(retries: int, max_retries: int) -> bool:
    return retries >= max_retries


@dataclass(frozen=True)
class Transition:
    """
    One row of the transition table.

    Attributes:
        source: Status the job must currently have.
        event: Event that triggers the transition.
        target: Status the job moves to.
        guard: Optional predicate over (retries, max_retries).
        increments_retries: Whether applying the row counts an execution attempt.
        requeue: Whether the job id must be appended to the broker afterwards.
    """

    source: JobStatus
    event: JobEvent
    target: JobStatus
    guard: Guard | None = None
    increments_retries: bool = False
    requeue: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.target in TERMINAL_STATUSES

    def matches(self, retries: int, max_retries: int) -> bool:
        return self.guard is None or self.guard(retries, max_retries)


TRANSITIONS: tuple[Transition, ...] = (
    Transition(
        source=JobStatus.QUEUED,
        event=JobEvent.DEQUEUED,
        target=JobStatus.PROCESSING,
        increments_retries=True,
    ),
    Transition(
        source=JobStatus.PROCESSING,
        event=JobEvent.SUCCEEDED,
        target=JobStatus.COMPLETED,
    ),
    Transition(
        source=JobStatus.PROCESSING,
        event=JobEvent.FAILED,
        target=JobStatus.QUEUED,
        guard=retries_remaining,
        requeue=True,
    ),
    Transition(
        source=JobStatus.PROCESSING,
        event=JobEvent.FAILED,
        target=JobStatus.FAILED,
        guard=retries_exhausted,
    ),
)


def resolve(
    status: JobStatus | str,
    event: JobEvent,
    retries: int = 0,
    max_retries: int = 1,
) -> Transition:
    """
    Find the transition that applies to a job.

    Args:
        status: The job's current status.
        event: The event that occurred.
        retries: Execution attempts made so far (after any increment).
        max_retries: Number of attempts allowed before terminal failure.

    Returns:
        The matching Transition.

    Raises:
        InvalidTransitionError: If no row of the table applies.
    """
    status = JobStatus(status)
    for transition in TRANSITIONS:
        if (
            transition.source == status
            and transition.event == event
            and transition.matches(retries, max_retries)
        ):
            return transition
    raise InvalidTransitionError(status, event)


def is_terminal(status: JobStatus | str) -> bool:
    """Check whether a status can never change again."""
    return JobStatus(status) in TERMINAL_STATUSES


def allowed_targets(status: JobStatus | str) -> frozenset[JobStatus]:
    """Get every status reachable from ``status`` in a single transition."""
    status = JobStatus(status)
    return frozenset(t.target for t in TRANSITIONS if t.source == status)


def can_execute(job: Any) -> bool:
    """
    Check whether a dequeued job may be executed.

    Only QUEUED jobs are executable. Anything else is a stale broker entry or a
    duplicate delivery and must be skipped.
    """
    return job is not None and JobStatus(job.status) == JobStatus.QUEUED
