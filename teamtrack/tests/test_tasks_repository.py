import unittest

import aiosqlite

from teamtrack.db.repositories.projects import SqliteProjectRepository
from teamtrack.db.repositories.tasks import SqliteTaskRepository
from teamtrack.db.rows import task_from_row
from teamtrack.db.sqlite_migrations import run_migrations


def _task(task_id: str, stage: str = "A", status: str = "Todo", assign: str = "", **extra) -> dict:
    data = {
        "id": task_id,
        "projectId": "project-1",
        "stage": stage,
        "title": task_id,
        "assign": assign,
        "dueDate": "05/01/2024",
        "status": status,
        "percentOfStage": {"weight": 4, "percent": 1.0},
        "progress": 1.0 if status == "Done" else 0.0,
    }
    data.update(extra)
    return data


class TaskRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        await SqliteProjectRepository(self.db).create({"id": "project-1", "name": "Apollo"})
        self.repo = SqliteTaskRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_completion_stats_count_done_tasks(self) -> None:
        for task_id, status in (("T-1", "Done"), ("T-2", "Doing"), ("T-3", "Done"), ("T-4", "Review")):
            await self.repo.upsert(_task(task_id, status=status))

        stats = await self.repo.get_project_stats("project-1")
        self.assertEqual(stats["total"], 4)
        self.assertEqual(stats["completed"], 2)
        self.assertAlmostEqual(stats["completion_pct"], 50.0)

    async def test_stats_for_empty_project(self) -> None:
        stats = await self.repo.get_project_stats("project-1")
        self.assertEqual(stats, {"total": 0, "completed": 0, "completion_pct": 0.0})

    async def test_upsert_replaces_the_stored_document(self) -> None:
        await self.repo.upsert(_task("T-1", description="first draft", tags=["api"]))
        await self.repo.upsert(_task("T-1", status="Done", percentOfStage={"weight": 9, "percent": 0.75}))

        task = task_from_row(await self.repo.get_by_id("T-1"))
        self.assertEqual(task.status, "Done")
        self.assertEqual(task.percentOfStage.weight, 9)
        self.assertEqual(task.percentOfStage.percent, 0.75)
        self.assertEqual(task.progress, 1.0)
        self.assertEqual(task.tags, [])

    async def test_list_filters_by_stage_and_assignee(self) -> None:
        await self.repo.upsert(_task("T-1", stage="A", assign="linh"))
        await self.repo.upsert(_task("T-2", stage="B", assign="minh"))
        await self.repo.upsert(_task("T-3", stage="A", assign="minh"))

        stage_a = await self.repo.list_by_project("project-1", "A")
        self.assertEqual(sorted(r["id"] for r in stage_a), ["T-1", "T-3"])
        self.assertEqual(len(await self.repo.list_by_project("project-1")), 3)
        self.assertEqual(sorted(r["id"] for r in await self.repo.list_all("minh")), ["T-2", "T-3"])

    async def test_rename_stage_moves_every_task(self) -> None:
        await self.repo.upsert(_task("T-1", stage="A"))
        await self.repo.upsert(_task("T-2", stage="A"))
        await self.repo.upsert(_task("T-3", stage="B"))

        renamed = await self.repo.rename_stage("project-1", "A", "Kickoff")
        self.assertEqual(renamed, 2)
        self.assertEqual(task_from_row(await self.repo.get_by_id("T-1")).stage, "Kickoff")
        self.assertEqual(await self.repo.list_by_project("project-1", "A"), [])

    async def test_find_by_title_skips_the_excluded_task(self) -> None:
        await self.repo.upsert(_task("T-1", title="schema"))

        self.assertEqual((await self.repo.find_by_title("project-1", "schema"))["id"], "T-1")
        self.assertIsNone(await self.repo.find_by_title("project-1", "schema", exclude_id="T-1"))
        self.assertIsNone(await self.repo.find_by_title("project-2", "schema"))

    async def test_delete_reports_whether_a_row_was_removed(self) -> None:
        await self.repo.upsert(_task("T-1"))
        self.assertTrue(await self.repo.delete("T-1"))
        self.assertFalse(await self.repo.delete("T-1"))
        self.assertIsNone(await self.repo.get_by_id("T-1"))


if __name__ == "__main__":
    unittest.main()
