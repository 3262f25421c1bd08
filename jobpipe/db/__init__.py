"""
Database module.
Contains database connection, models, migrations and the job repository.
"""

from jobpipe.db.connection import Database
from jobpipe.db.migrations import run_migrations
from jobpipe.db.models import Base, Job
from jobpipe.db.repository import JobRepository

__all__ = [
    "Database",
    "run_migrations",
    "JobRepository",
    "Job",
    "Base",
]
