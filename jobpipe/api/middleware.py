"""
Request logging middleware.
"""

import logging
import time
from collections.abc import Callable

from fastapi import Request

from jobpipe.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Paths excluded from request logging and metrics
QUIET_PATHS = frozenset({"/live", "/metrics"})


def create_request_logging_middleware() -> Callable:
    """
    Create middleware logging every request with its status and latency.

    Returns:
        The middleware function.
    """

    async def request_logging_middleware(request: Request, call_next: Callable):
        """Log the request and record API metrics."""
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        # Route template keeps metric label cardinality bounded
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        get_metrics().record_api_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration_seconds=duration,
        )
        logger.info(
            f"{request.method} {request.url.path}",
            extra={
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return response

    return request_logging_middleware
