"""
Unit tests for job handlers.
"""

from datetime import date
from uuid import uuid4

import pytest

from jobpipe.types.job import JobContext, JobResult
from jobpipe.worker.handlers import (
    HandlerRegistry,
    default_registry,
    handle_echo,
    handle_resize_image,
    handle_send_email,
)


def make_context(job_type: str, payload: dict, attempt: int = 1) -> JobContext:
    return JobContext(
        job_id=uuid4(),
        job_type=job_type,
        payload=payload,
        attempt=attempt,
        max_retries=3,
        worker_id="test-worker",
    )


class TestHandlerRegistry:
    """Tests for the handler registry."""

    def test_default_registry_has_builtin_handlers(self):
        """Test the built-in job types."""
        job_types = default_registry.job_types()

        assert "sendEmail" in job_types
        assert "resizeImage" in job_types
        assert "echo" in job_types

    def test_get_handler_exists(self):
        """Test getting an existing handler."""
        assert default_registry.get("echo") is handle_echo

    def test_get_handler_not_exists(self):
        """Test getting a non-existent handler."""
        assert default_registry.get("nonexistent") is None
        assert "nonexistent" not in default_registry

    def test_register_decorator(self):
        """Test registering a handler on a fresh registry."""
        registry = HandlerRegistry()
        assert len(registry) == 0

        @registry.register("custom")
        async def custom(context: JobContext) -> JobResult:
            return JobResult(success=True)

        assert "custom" in registry
        assert list(registry) == ["custom"]
        assert registry.get("custom") is custom

    async def test_execute_missing_handler(self):
        """Test executing a job type nobody handles."""
        result = await HandlerRegistry().execute(make_context("unknown", {}))

        assert result.success is False
        assert "No handler registered" in result.error

    async def test_execute_handler_exception(self):
        """Test that a raising handler becomes a failed result."""
        registry = HandlerRegistry()

        @registry.register("explodes")
        async def explodes(context: JobContext) -> JobResult:
            raise RuntimeError("kaboom")

        result = await registry.execute(make_context("explodes", {}))

        assert result.success is False
        assert "kaboom" in result.error
        assert result.duration_ms is not None

    async def test_execute_non_result_return(self):
        """Test that a handler returning something other than JobResult fails."""
        registry = HandlerRegistry()

        @registry.register("returnsDict")
        async def returns_dict(context: JobContext):
            return {"success": True}

        result = await registry.execute(make_context("returnsDict", {}))

        assert result.success is False
        assert "returned dict, expected JobResult" in result.error
        assert result.duration_ms is not None

    async def test_execute_normalizes_output_to_json(self):
        """Test that UUIDs and dates in output come back as strings."""
        registry = HandlerRegistry()
        job_ref = uuid4()

        @registry.register("typedOutput")
        async def typed_output(context: JobContext) -> JobResult:
            return JobResult(
                success=True,
                output={"ref": job_ref, "on": date(2026, 10, 17)},
            )

        result = await registry.execute(make_context("typedOutput", {}))

        assert result.success is True
        assert result.output == {"ref": str(job_ref), "on": "2026-10-17"}

    async def test_execute_unserializable_output(self):
        """Test that output with no JSON form fails the attempt."""
        registry = HandlerRegistry()

        @registry.register("opaqueOutput")
        async def opaque_output(context: JobContext) -> JobResult:
            return JobResult(success=True, output={"handle": object()})

        result = await registry.execute(make_context("opaqueOutput", {}))

        assert result.success is False
        assert "not JSON serializable" in result.error

    async def test_execute_records_duration(self):
        """Test that execute fills in the attempt duration."""
        result = await default_registry.execute(make_context("echo", {"a": 1}))

        assert result.success is True
        assert result.duration_ms is not None
        assert result.duration_ms >= 0


class TestBuiltinHandlers:
    """Tests for the built-in handlers."""

    async def test_echo_handler(self):
        """Test the echo handler."""
        payload = {"message": "test"}
        result = await handle_echo(make_context("echo", payload))

        assert result.success is True
        assert result.output == {"echo": payload}

    async def test_send_email_success(self):
        """Test sending an email."""
        result = await handle_send_email(
            make_context("sendEmail", {"to": "user@example.com", "subject": "Hi"})
        )

        assert result.success is True
        assert result.output == {"delivered_to": "user@example.com", "subject": "Hi"}

    @pytest.mark.parametrize("payload", [{}, {"to": ""}, {"to": "not-an-address"}])
    async def test_send_email_invalid_recipient(self, payload: dict):
        """Test that a missing or malformed recipient fails the attempt."""
        result = await handle_send_email(make_context("sendEmail", payload))

        assert result.success is False
        assert "'to'" in result.error

    async def test_resize_image_success(self):
        """Test resizing an image."""
        result = await handle_resize_image(
            make_context(
                "resizeImage",
                {"url": "https://example.com/cat.png", "width": "640", "height": 480},
            )
        )

        assert result.success is True
        assert result.output == {
            "source": "https://example.com/cat.png",
            "width": 640,
            "height": 480,
        }

    async def test_resize_image_missing_url(self):
        """Test that a missing url fails the attempt."""
        result = await handle_resize_image(
            make_context("resizeImage", {"width": 10, "height": 10})
        )

        assert result.success is False
        assert "url" in result.error

    @pytest.mark.parametrize(
        "width,height",
        [(None, 10), ("wide", 10), (0, 10), (10, -5)],
    )
    async def test_resize_image_invalid_dimensions(self, width, height):
        """Test that non-positive or non-integer dimensions fail the attempt."""
        result = await handle_resize_image(
            make_context(
                "resizeImage",
                {"url": "https://example.com/cat.png", "width": width, "height": height},
            )
        )

        assert result.success is False


class TestJobContext:
    """Tests for attempt bookkeeping on the context."""

    def test_first_attempt(self):
        context = make_context("echo", {}, attempt=1)

        assert context.is_last_attempt is False
        assert context.remaining_attempts == 2

    def test_last_attempt(self):
        context = make_context("echo", {}, attempt=3)

        assert context.is_last_attempt is True
        assert context.remaining_attempts == 0
