"""Database schema creation and versioning.

All CREATE TABLE statements for the project/task document store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("teamtrack.db")

SCHEMA_VERSION = 2

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Projects (plan + timeline embedded in plan_json) ────────────
CREATE TABLE IF NOT EXISTS projects (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'Processing',
    progress     REAL NOT NULL DEFAULT 0,
    version      INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    plan_json    TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_name ON projects(name);

-- ── 2. Tasks ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS tasks (
    id           TEXT PRIMARY KEY,
    project_id   TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    stage        TEXT NOT NULL,
    title        TEXT DEFAULT '',
    assign       TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'Todo',
    due_date     TEXT NOT NULL,
    weight       INTEGER NOT NULL DEFAULT 0,
    percent      REAL NOT NULL DEFAULT 0,
    progress     REAL NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    data_json    TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_stage ON tasks(project_id, stage);
"""


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return any(row[1] == column for row in rows)


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, definition: str) -> None:
    if await _column_exists(db, table, column):
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


async def _ensure_index(db: aiosqlite.Connection, ddl: str) -> None:
    await db.execute(ddl)


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    # Check current schema version
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.Error:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current_version})")
        return

    logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")

    await db.executescript(_TABLES)

    # Version 1 databases predate the assignee column and the statistics index.
    await _ensure_column(db, "tasks", "assign", "TEXT DEFAULT ''")
    await _ensure_index(db, "CREATE INDEX IF NOT EXISTS idx_tasks_assign ON tasks(assign)")

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
