"""
SQLAlchemy database models.
Defines the Job table.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobpipe.constants import JOB_STATUS_MAX_LENGTH, JOB_TYPE_MAX_LENGTH, JobStatus
from jobpipe.lifecycle import is_terminal as status_is_terminal

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the pipeline.

    This is the authoritative source of truth for job state. The broker only
    carries job ids; workers always re-read this row before executing.

    Key constraints:
    - id, type and payload never change after insert
    - status only changes through a conditional update on its current value
    - retries grows by exactly one per execution attempt
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    type: Mapped[str] = mapped_column(
        String(JOB_TYPE_MAX_LENGTH),
        nullable=False,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JsonType,
        nullable=False,
        default=dict,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            native_enum=False,
            create_constraint=True,
            length=JOB_STATUS_MAX_LENGTH,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.QUEUED,
        index=True,
    )

    retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JsonType,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        # Stale job lookups (stuck PROCESSING, orphaned QUEUED)
        Index("ix_jobs_status_updated_at", "status", "updated_at"),
    )

    @property
    def is_terminal(self) -> bool:
        """Check whether the job has reached COMPLETED or FAILED."""
        return status_is_terminal(self.status)

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.type}, "
            f"status={self.status}, retries={self.retries})"
        )
