"""
Worker module.
Contains the worker pool and the job handler registry.
"""

from jobpipe.worker.handlers import HandlerRegistry, default_registry, register_handler
from jobpipe.worker.main import Worker, WorkerPool, run

__all__ = [
    "Worker",
    "WorkerPool",
    "run",
    "HandlerRegistry",
    "default_registry",
    "register_handler",
]
