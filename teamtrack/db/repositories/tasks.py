"""SQLite implementation of TaskRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import aiosqlite


class SqliteTaskRepository:
    """SQLite-backed task storage. Writes join the caller's transaction."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, task_data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        share = task_data.get("percentOfStage") or {}
        data_json = json.dumps(task_data)

        await self.db.execute(
            """INSERT INTO tasks (
                id, project_id, stage, title, assign, status, due_date,
                weight, percent, progress,
                created_at, updated_at, data_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                stage=excluded.stage, title=excluded.title,
                assign=excluded.assign, status=excluded.status,
                due_date=excluded.due_date,
                weight=excluded.weight, percent=excluded.percent,
                progress=excluded.progress,
                updated_at=excluded.updated_at, data_json=excluded.data_json
            """,
            (
                task_data["id"], task_data["projectId"],
                task_data["stage"],
                task_data.get("title", ""),
                task_data.get("assign", ""),
                task_data.get("status", "Todo"),
                task_data["dueDate"],
                share.get("weight", 0),
                share.get("percent", 0.0),
                task_data.get("progress", 0.0),
                now,
                now,
                data_json,
            ),
        )

    async def get_by_id(self, task_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def find_by_title(self, project_id: str, title: str, exclude_id: str = "") -> dict | None:
        async with self.db.execute(
            "SELECT * FROM tasks WHERE project_id = ? AND title = ? AND id != ? LIMIT 1",
            (project_id, title, exclude_id),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_by_project(self, project_id: str, stage: str | None = None) -> list[dict]:
        if stage is not None:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE project_id = ? AND stage = ? ORDER BY created_at, id",
                (project_id, stage),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        else:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE project_id = ? ORDER BY created_at, id",
                (project_id,),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]

    async def list_all(self, assign: str | None = None) -> list[dict]:
        if assign:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE assign = ? ORDER BY created_at, id",
                (assign,),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        else:
            async with self.db.execute(
                "SELECT * FROM tasks ORDER BY created_at, id"
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]

    async def rename_stage(self, project_id: str, old_stage: str, new_stage: str) -> int:
        cur = await self.db.execute(
            "UPDATE tasks SET stage = ? WHERE project_id = ? AND stage = ?",
            (new_stage, project_id, old_stage),
        )
        renamed = cur.rowcount
        await cur.close()
        return renamed

    async def delete(self, task_id: str) -> bool:
        cur = await self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cur.rowcount
        await cur.close()
        return deleted > 0

    async def get_project_stats(self, project_id: str) -> dict:
        async with self.db.execute(
            """SELECT COUNT(*), COALESCE(SUM(CASE WHEN status = 'Done' THEN 1 ELSE 0 END), 0)
               FROM tasks WHERE project_id = ?""",
            (project_id,),
        ) as cur:
            row = await cur.fetchone()
        total, done = (row[0] or 0, row[1] or 0) if row else (0, 0)
        return {
            "total": total,
            "completed": done,
            "completion_pct": (done / total * 100) if total else 0.0,
        }
