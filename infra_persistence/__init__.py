"""
Infra Persistence module.

This module contains the database implementations for the job queue and the
resource store. Currently supports SQLite, but can be extended to PostgreSQL,
Redis, etc.

The persistence layer depends on infra_common for domain models and
interfaces, and can be used by the server, the worker and the admin CLI.
"""

from .sqlite_queue import SQLiteJobQueue
from .sqlite_resources import SQLiteResourceStore

__all__ = ["SQLiteJobQueue", "SQLiteResourceStore"]
