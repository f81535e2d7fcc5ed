"""SQLite implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from teamtrack.db.transaction import write_transaction
from teamtrack.errors import ValidationError, VersionConflictError


class SqliteProjectRepository:
    """SQLite-backed project documents with optimistic versioning.

    Writes do not commit on their own; run them inside ``transaction()``.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    def transaction(self):
        return write_transaction(self.db)

    async def create(self, project_data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self.db.execute(
                """INSERT INTO projects (
                    id, name, description, status, progress, version,
                    created_at, updated_at, plan_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    project_data["id"],
                    project_data["name"],
                    project_data.get("description", ""),
                    project_data.get("status", "Processing"),
                    project_data.get("progress", 0.0),
                    project_data.get("version", 0),
                    project_data.get("createdAt") or now,
                    now,
                    project_data.get("planJson"),
                ),
            )
        except aiosqlite.IntegrityError as exc:
            raise ValidationError(f"Project {project_data['name']!r} already exists") from exc

    async def get_by_id(self, project_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM projects ORDER BY created_at, id"
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def save(self, project_data: dict, expected_version: int) -> int:
        """Write aggregates and plan if the stored version still matches.

        Returns the new version.
        """
        now = datetime.now(timezone.utc).isoformat()
        cur = await self.db.execute(
            """UPDATE projects SET
                name = ?, description = ?, status = ?, progress = ?,
                plan_json = ?, updated_at = ?, version = version + 1
               WHERE id = ? AND version = ?""",
            (
                project_data["name"],
                project_data.get("description", ""),
                project_data.get("status", "Processing"),
                project_data.get("progress", 0.0),
                project_data.get("planJson"),
                now,
                project_data["id"],
                expected_version,
            ),
        )
        updated = cur.rowcount
        await cur.close()
        if updated == 0:
            raise VersionConflictError(project_data["id"], expected_version)
        return expected_version + 1
