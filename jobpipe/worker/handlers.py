"""
Job handler registry and built-in handlers.

Job handlers must be idempotent - under at-least-once delivery and retries they
may run more than once for the same job.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterator

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from jobpipe.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult]]


class InvalidHandlerResultError(TypeError):
    """A handler returned something that cannot be recorded on the job."""


def _normalize_result(result: object) -> JobResult:
    """
    Check a handler's return value and coerce its output to JSON-safe values.

    Dates, UUIDs and similar values in ``output`` become their JSON string
    forms, so the store always receives plain JSON.

    Raises:
        InvalidHandlerResultError: If the value is not a JobResult or its
            output cannot be serialized.
    """
    if not isinstance(result, JobResult):
        raise InvalidHandlerResultError(
            f"handler returned {type(result).__name__}, expected JobResult"
        )
    try:
        return JobResult.model_validate(result.model_dump(mode="json"))
    except (PydanticSerializationError, ValidationError) as e:
        raise InvalidHandlerResultError(f"handler output is not JSON serializable: {e}") from e


class HandlerRegistry:
    """
    Mapping of job type to handler.

    The producer consults it to reject unknown job types, and workers use it to
    dispatch dequeued jobs.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, job_type: str) -> Callable[[JobHandler], JobHandler]:
        """
        Decorator to register a job handler.

        Args:
            job_type: The job type this handler processes.

        Returns:
            Decorator function.

        Example:
            @registry.register("sendEmail")
            async def handle_send_email(context: JobContext) -> JobResult:
                ...
        """
        def decorator(handler: JobHandler) -> JobHandler:
            self._handlers[job_type] = handler
            logger.debug(f"Registered handler for job type: {job_type}")
            return handler
        return decorator

    def get(self, job_type: str) -> JobHandler | None:
        """Get the handler for a job type, or None if not registered."""
        return self._handlers.get(job_type)

    def job_types(self) -> list[str]:
        """List all registered job types."""
        return list(self._handlers.keys())

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    async def execute(self, context: JobContext) -> JobResult:
        """
        Execute a job with its registered handler.

        A missing handler, a failed result and a raised exception all come back
        as an unsuccessful JobResult. No execution timeout is applied: a handler
        that never returns keeps its worker busy indefinitely.

        Args:
            context: The job context.

        Returns:
            JobResult from the handler, with ``duration_ms`` filled in.
        """
        handler = self.get(context.job_type)

        if handler is None:
            logger.error(
                f"No handler for job type: {context.job_type}",
                extra={"job_id": str(context.job_id)},
            )
            return JobResult(
                success=False,
                error=f"No handler registered for job type: {context.job_type}",
            )

        start = time.perf_counter()
        try:
            result = _normalize_result(await handler(context))
        except Exception as e:
            logger.exception(
                "Handler raised exception",
                extra={"job_id": str(context.job_id), "error": str(e)},
            )
            result = JobResult(
                success=False,
                error=f"Handler exception: {e}",
            )

        if result.duration_ms is None:
            result.duration_ms = (time.perf_counter() - start) * 1000
        return result


# Process-wide registry holding the built-in handlers
default_registry = HandlerRegistry()
register_handler = default_registry.register


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("sendEmail")
async def handle_send_email(context: JobContext) -> JobResult:
    """
    Deliver an email.

    Payload should contain:
    - to: Recipient address
    - subject: Optional subject line
    - body: Optional message body
    """
    to = context.payload.get("to")
    if not to or "@" not in str(to):
        return JobResult(
            success=False,
            error="Missing or invalid 'to' address in payload",
        )

    logger.info(
        "Sending email",
        extra={
            "job_id": str(context.job_id),
            "to": to,
            "attempt": context.attempt,
        },
    )
    # Stand-in for the mail transport call
    await asyncio.sleep(0)

    return JobResult(
        success=True,
        output={"delivered_to": to, "subject": context.payload.get("subject", "")},
    )


@register_handler("resizeImage")
async def handle_resize_image(context: JobContext) -> JobResult:
    """
    Resize an image.

    Payload should contain:
    - url: Location of the source image
    - width: Target width in pixels
    - height: Target height in pixels
    """
    url = context.payload.get("url")
    width = context.payload.get("width")
    height = context.payload.get("height")

    if not url:
        return JobResult(success=False, error="Missing 'url' in payload")

    try:
        width, height = int(width), int(height)
    except (TypeError, ValueError):
        return JobResult(
            success=False,
            error="Payload 'width' and 'height' must be integers",
        )

    if width <= 0 or height <= 0:
        return JobResult(
            success=False,
            error="Payload 'width' and 'height' must be positive",
        )

    logger.info(
        "Resizing image",
        extra={
            "job_id": str(context.job_id),
            "url": url,
            "size": f"{width}x{height}",
        },
    )
    # Stand-in for the image processing call
    await asyncio.sleep(0)

    return JobResult(
        success=True,
        output={"source": url, "width": width, "height": height},
    )


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the input payload as output.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": str(context.job_id), "attempt": context.attempt},
    )

    return JobResult(
        success=True,
        output={"echo": context.payload},
    )
