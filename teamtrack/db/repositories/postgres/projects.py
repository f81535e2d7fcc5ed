"""PostgreSQL implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone
import asyncpg

from teamtrack.db.transaction import active_connection, write_transaction
from teamtrack.errors import ValidationError, VersionConflictError


class PostgresProjectRepository:
    """PostgreSQL-backed project documents with optimistic versioning."""

    def __init__(self, db: asyncpg.Pool):
        self.pool = db

    @property
    def db(self):
        return active_connection(self.pool)

    def transaction(self):
        return write_transaction(self.pool)

    async def create(self, project_data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self.db.execute(
                """
                INSERT INTO projects (
                    id, name, description, status, progress, version,
                    created_at, updated_at, plan_json
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                project_data["id"],
                project_data["name"],
                project_data.get("description", ""),
                project_data.get("status", "Processing"),
                project_data.get("progress", 0.0),
                project_data.get("version", 0),
                project_data.get("createdAt") or now,
                now,
                project_data.get("planJson"),
            )
        except asyncpg.UniqueViolationError as exc:
            raise ValidationError(f"Project {project_data['name']!r} already exists") from exc

    async def get_by_id(self, project_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM projects WHERE id = $1", project_id)
        return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        rows = await self.db.fetch("SELECT * FROM projects ORDER BY created_at, id")
        return [dict(r) for r in rows]

    async def save(self, project_data: dict, expected_version: int) -> int:
        now = datetime.now(timezone.utc).isoformat()
        new_version = await self.db.fetchval(
            """
            UPDATE projects SET
                name = $1, description = $2, status = $3, progress = $4,
                plan_json = $5, updated_at = $6, version = version + 1
            WHERE id = $7 AND version = $8
            RETURNING version
            """,
            project_data["name"],
            project_data.get("description", ""),
            project_data.get("status", "Processing"),
            project_data.get("progress", 0.0),
            project_data.get("planJson"),
            now,
            project_data["id"],
            expected_version,
        )
        if new_version is None:
            raise VersionConflictError(project_data["id"], expected_version)
        return int(new_version)
