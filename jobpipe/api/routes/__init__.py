"""
API routes module.
"""

from jobpipe.api.routes.health import router as health_router
from jobpipe.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "health_router"]
