"""PostgreSQL implementation of TaskRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone
import asyncpg

from teamtrack.db.transaction import active_connection


class PostgresTaskRepository:
    """PostgreSQL-backed task storage. Writes join the caller's transaction."""

    def __init__(self, db: asyncpg.Pool):
        self.pool = db

    @property
    def db(self):
        return active_connection(self.pool)

    async def upsert(self, task_data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        share = task_data.get("percentOfStage") or {}
        data_json = json.dumps(task_data)

        query = """
            INSERT INTO tasks (
                id, project_id, stage, title, assign, status, due_date,
                weight, percent, progress,
                created_at, updated_at, data_json
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT(id) DO UPDATE SET
                stage=EXCLUDED.stage, title=EXCLUDED.title,
                assign=EXCLUDED.assign, status=EXCLUDED.status,
                due_date=EXCLUDED.due_date,
                weight=EXCLUDED.weight, percent=EXCLUDED.percent,
                progress=EXCLUDED.progress,
                updated_at=EXCLUDED.updated_at, data_json=EXCLUDED.data_json
        """
        await self.db.execute(
            query,
            task_data["id"], task_data["projectId"],
            task_data["stage"],
            task_data.get("title", ""),
            task_data.get("assign", ""),
            task_data.get("status", "Todo"),
            task_data["dueDate"],
            int(share.get("weight", 0)),
            float(share.get("percent", 0.0)),
            float(task_data.get("progress", 0.0)),
            now,
            now,
            data_json,
        )

    async def get_by_id(self, task_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM tasks WHERE id = $1", task_id)
        return dict(row) if row else None

    async def find_by_title(self, project_id: str, title: str, exclude_id: str = "") -> dict | None:
        row = await self.db.fetchrow(
            "SELECT * FROM tasks WHERE project_id = $1 AND title = $2 AND id != $3 LIMIT 1",
            project_id,
            title,
            exclude_id,
        )
        return dict(row) if row else None

    async def list_by_project(self, project_id: str, stage: str | None = None) -> list[dict]:
        if stage is not None:
            rows = await self.db.fetch(
                "SELECT * FROM tasks WHERE project_id = $1 AND stage = $2 ORDER BY created_at, id",
                project_id, stage,
            )
        else:
            rows = await self.db.fetch(
                "SELECT * FROM tasks WHERE project_id = $1 ORDER BY created_at, id",
                project_id,
            )
        return [dict(r) for r in rows]

    async def list_all(self, assign: str | None = None) -> list[dict]:
        if assign:
            rows = await self.db.fetch(
                "SELECT * FROM tasks WHERE assign = $1 ORDER BY created_at, id", assign
            )
        else:
            rows = await self.db.fetch("SELECT * FROM tasks ORDER BY created_at, id")
        return [dict(r) for r in rows]

    async def rename_stage(self, project_id: str, old_stage: str, new_stage: str) -> int:
        status = await self.db.execute(
            "UPDATE tasks SET stage = $1 WHERE project_id = $2 AND stage = $3",
            new_stage, project_id, old_stage,
        )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(status.split()[-1])

    async def delete(self, task_id: str) -> bool:
        status = await self.db.execute("DELETE FROM tasks WHERE id = $1", task_id)
        return status != "DELETE 0"

    async def get_project_stats(self, project_id: str) -> dict:
        total = await self.db.fetchval(
            "SELECT COUNT(*) FROM tasks WHERE project_id = $1", project_id
        ) or 0
        completed = await self.db.fetchval(
            "SELECT COUNT(*) FROM tasks WHERE project_id = $1 AND status = 'Done'",
            project_id
        ) or 0
        return {
            "total": total,
            "completed": completed,
            "completion_pct": (completed / total * 100) if total else 0.0,
        }
