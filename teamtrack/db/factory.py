"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any
import aiosqlite

try:
    import asyncpg
except ImportError:
    asyncpg = None

from teamtrack.db.repositories.projects import SqliteProjectRepository
from teamtrack.db.repositories.tasks import SqliteTaskRepository

# Driver-level failures that mean the store itself is unavailable.
if asyncpg is not None:
    STORE_ERRORS: tuple[type[BaseException], ...] = (
        aiosqlite.Error,
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
        OSError,
    )
else:
    STORE_ERRORS = (aiosqlite.Error, OSError)


def get_project_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteProjectRepository(db)
    from teamtrack.db.repositories.postgres.projects import PostgresProjectRepository
    return PostgresProjectRepository(db)

def get_task_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTaskRepository(db)
    from teamtrack.db.repositories.postgres.tasks import PostgresTaskRepository
    return PostgresTaskRepository(db)
