import unittest
from unittest.mock import AsyncMock, patch

import aiosqlite
from fastapi import HTTPException

from teamtrack.date_utils import FixedClock
from teamtrack.db import connection
from teamtrack.db.sqlite_migrations import run_migrations
from teamtrack.routers import common
from teamtrack.routers import planning as planning_router
from teamtrack.routers import projects as projects_router
from teamtrack.routers import statistics as statistics_router
from teamtrack.routers import tasks as tasks_router


class RouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.clock = FixedClock("01/01/2024")
        patches = [
            patch.object(connection, "get_connection", AsyncMock(return_value=self.db)),
            patch.object(common, "clock", self.clock),
            patch.object(projects_router, "clock", self.clock),
            patch.object(statistics_router, "clock", self.clock),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

        project = await projects_router.add_project(projects_router.ProjectCreateRequest(name="Apollo"))
        self.project_id = project.id

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _stage(self, name: str, deadline: str):
        return await planning_router.create_stage(
            self.project_id, planning_router.StageCreateRequest(stage=name, deadline=deadline)
        )

    async def _task(self, stage: str, due: str, title: str = "work", **extra):
        return await tasks_router.create_task(tasks_router.TaskCreateRequest(
            projectId=self.project_id, stage=stage, title=title, dueDate=due, **extra
        ))

    async def test_created_project_starts_empty(self) -> None:
        project = await projects_router.get_project(self.project_id)
        self.assertEqual(project.createdAt, "01/01/2024")
        self.assertEqual(project.status, "Processing")
        self.assertIsNone(project.plan)
        self.assertEqual(len(await projects_router.list_projects()), 1)

    async def test_duplicate_project_name_is_a_bad_request(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await projects_router.add_project(projects_router.ProjectCreateRequest(name="Apollo"))
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_plan_is_displayed_by_deadline_but_weighted_by_insertion(self) -> None:
        await self._stage("Late", "15/01/2024")
        await self._stage("Early", "08/01/2024")

        plan = await planning_router.read_plan(self.project_id)
        self.assertEqual([s.stage for s in plan.timeline], ["Early", "Late"])

        stored = await projects_router.get_project(self.project_id)
        self.assertEqual([s.stage for s in stored.plan.timeline], ["Late", "Early"])
        # "Early" is anchored on "Late"'s deadline.
        self.assertEqual([s.percentOfProject.weight for s in stored.plan.timeline], [14, 7])

    async def test_missing_plan_and_project_are_not_found(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await planning_router.read_plan(self.project_id)
        self.assertEqual(ctx.exception.status_code, 404)

        with self.assertRaises(HTTPException) as ctx:
            await planning_router.create_stage("missing", planning_router.StageCreateRequest(stage="A", deadline="08/01/2024"))
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_engine_errors_map_to_http_statuses(self) -> None:
        await self._stage("A", "01/01/2024")

        with self.assertRaises(HTTPException) as ctx:
            await self._stage("B", "01/01/2024")
        self.assertEqual(ctx.exception.status_code, 422)

        with self.assertRaises(HTTPException) as ctx:
            await self._stage("C", "2024-02-01")
        self.assertEqual(ctx.exception.status_code, 400)

        with self.assertRaises(HTTPException) as ctx:
            await tasks_router.update_task("missing", tasks_router.TaskUpdateRequest(status="Done"))
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_task_lifecycle_through_the_api(self) -> None:
        await self._stage("A", "08/01/2024")
        await self._stage("B", "15/01/2024")
        first = await self._task("A", "04/01/2024", title="schema")
        second = await self._task("A", "10/01/2024", title="api", assign="linh")

        updated = await tasks_router.update_task(second.task.id, tasks_router.TaskUpdateRequest(status="Done"))
        self.assertAlmostEqual(updated.project.progress, 0.375)
        self.assertEqual(updated.task.updates[0].content, "Status: Done")

        tasks = await tasks_router.list_tasks(projectId=self.project_id, stage="A", assign=None)
        self.assertEqual({t.id: t.percentOfStage.percent for t in tasks}, {first.task.id: 0.25, second.task.id: 0.75})
        mine = await tasks_router.list_tasks(projectId=None, stage=None, assign="linh")
        self.assertEqual([t.id for t in mine], [second.task.id])

        with self.assertRaises(HTTPException) as ctx:
            await self._task("A", "06/01/2024", title="schema")
        self.assertEqual(ctx.exception.status_code, 400)

        removed = await tasks_router.delete_task(second.task.id)
        self.assertEqual(removed.project.progress, 0.0)
        with self.assertRaises(HTTPException) as ctx:
            await tasks_router.get_task(second.task.id)
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_stage_rename_and_delete(self) -> None:
        await self._stage("A", "08/01/2024")
        await self._stage("B", "15/01/2024")
        created = await self._task("B", "12/01/2024")

        await planning_router.update_stage(
            self.project_id, planning_router.StageUpdateRequest(oldStage="B", newStage="Release")
        )
        self.assertEqual((await tasks_router.get_task(created.task.id)).stage, "Release")

        with self.assertRaises(HTTPException) as ctx:
            await planning_router.delete_stage(self.project_id, "Release", cascade=False)
        self.assertEqual(ctx.exception.status_code, 400)

        result = await planning_router.delete_stage(self.project_id, "Release", cascade=True)
        self.assertEqual([s.stage for s in result.project.plan.timeline], ["A"])
        self.assertEqual(await tasks_router.list_tasks(projectId=self.project_id, stage=None, assign=None), [])

    async def test_statistics_endpoints(self) -> None:
        await self._stage("A", "08/01/2024")
        await self._task("A", "03/01/2024", title="late")
        await self._task("A", "06/01/2024", title="done", status="Done")
        self.clock.set("05/01/2024")

        stats = await statistics_router.task_statistics(projectId=self.project_id, assign=None)
        self.assertEqual(stats.doneTasksCount, 1)
        self.assertEqual(stats.lateTasksCount, 1)
        self.assertEqual(stats.undoneTasks[0].title, "late")

        summary = await statistics_router.project_progress(self.project_id)
        self.assertEqual(summary.totalTasks, 2)
        self.assertEqual(summary.completedTasks, 1)
        self.assertAlmostEqual(summary.progress, 5 / 7)
        self.assertEqual(summary.stages[0].weight, 7)


if __name__ == "__main__":
    unittest.main()
