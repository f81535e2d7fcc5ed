import unittest
from datetime import date

from teamtrack.models import Project, Task
from teamtrack.services.statistics import build_task_statistics


def _task(task_id: str, due: str, status: str = "Todo", project_id: str = "project-1") -> Task:
    return Task(id=task_id, projectId=project_id, stage="A", title=task_id, dueDate=due, status=status)


class TaskStatisticsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.projects = {"project-1": Project(id="project-1", name="Apollo")}

    def test_splits_done_and_undone_and_flags_late(self) -> None:
        tasks = [
            _task("done", "01/01/2024", status="Done"),
            _task("late", "09/01/2024", status="Doing"),
            _task("due-today", "10/01/2024"),
            _task("upcoming", "20/01/2024", status="Review"),
        ]
        stats = build_task_statistics(tasks, self.projects, date(2024, 1, 10))

        self.assertEqual(stats.totalTasksCount, 4)
        self.assertEqual(stats.doneTasksCount, 1)
        self.assertEqual(stats.undoneTasksCount, 3)
        self.assertEqual(stats.lateTasksCount, 1)
        late = {e.taskId: e.isLate for e in stats.undoneTasks}
        self.assertEqual(late, {"late": True, "due-today": False, "upcoming": False})
        self.assertIsNone(stats.doneTasks[0].isLate)
        self.assertEqual(stats.doneTasks[0].projectName, "Apollo")

    def test_unknown_project_and_unparsable_due_date(self) -> None:
        stats = build_task_statistics(
            [_task("orphan", "not a date", project_id="gone")], self.projects, date(2024, 1, 10)
        )
        self.assertEqual(stats.undoneTasks[0].projectName, "")
        self.assertFalse(stats.undoneTasks[0].isLate)

    def test_no_tasks(self) -> None:
        stats = build_task_statistics([], self.projects, date(2024, 1, 10))
        self.assertEqual(stats.totalTasksCount, 0)
        self.assertEqual(stats.doneTasks, [])


if __name__ == "__main__":
    unittest.main()
