"""Write transactions spanning the project and task repositories.

A recalculation writes task rows and then the project row; both must land
together or not at all. SQLite repositories share one connection, so the
transaction is that connection's and concurrent writers queue on a lock.
Postgres repositories hold a pool; inside a transaction they are routed to the
acquired connection through a context variable.
"""
from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator

import aiosqlite
import asyncpg

_pg_connection: ContextVar[Any | None] = ContextVar("teamtrack_pg_connection", default=None)
_sqlite_write_locks: weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock] = weakref.WeakKeyDictionary()


def active_connection(pool: Any) -> Any:
    """The connection of the enclosing Postgres transaction, else ``pool``."""
    return _pg_connection.get() or pool


def _sqlite_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    lock = _sqlite_write_locks.get(db)
    if lock is None:
        lock = asyncio.Lock()
        _sqlite_write_locks[db] = lock
    return lock


@asynccontextmanager
async def write_transaction(db: Any) -> AsyncIterator[None]:
    """Commit everything written inside the block, or roll all of it back."""
    if isinstance(db, aiosqlite.Connection):
        async with _sqlite_lock(db):
            try:
                yield
            except BaseException:
                await db.rollback()
                raise
            await db.commit()
        return

    if _pg_connection.get() is not None:
        # Already inside a transaction on this task.
        yield
        return

    if isinstance(db, asyncpg.Pool):
        async with db.acquire() as conn:
            async with conn.transaction():
                token = _pg_connection.set(conn)
                try:
                    yield
                finally:
                    _pg_connection.reset(token)
        return

    async with db.transaction():
        token = _pg_connection.set(db)
        try:
            yield
        finally:
            _pg_connection.reset(token)
