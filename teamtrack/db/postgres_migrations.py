"""PostgreSQL schema creation. Mirrors sqlite_migrations."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("teamtrack.db")

SCHEMA_VERSION = 2

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS projects (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'Processing',
    progress     DOUBLE PRECISION NOT NULL DEFAULT 0,
    version      INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    plan_json    TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_name ON projects(name);

CREATE TABLE IF NOT EXISTS tasks (
    id           TEXT PRIMARY KEY,
    project_id   TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    stage        TEXT NOT NULL,
    title        TEXT DEFAULT '',
    assign       TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'Todo',
    due_date     TEXT NOT NULL,
    weight       INTEGER NOT NULL DEFAULT 0,
    percent      DOUBLE PRECISION NOT NULL DEFAULT 0,
    progress     DOUBLE PRECISION NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    data_json    TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_stage ON tasks(project_id, stage);
CREATE INDEX IF NOT EXISTS idx_tasks_assign ON tasks(assign);
"""


async def run_migrations(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(_TABLES)
        current_version = await conn.fetchval("SELECT MAX(version) FROM schema_version") or 0
        if current_version >= SCHEMA_VERSION:
            logger.info(f"Schema is up to date (version {current_version})")
            return
        await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
    logger.info(f"Postgres migrations complete, schema version {SCHEMA_VERSION}")
