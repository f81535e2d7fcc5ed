"""Task statistics: done/undone split with late detection."""
from __future__ import annotations

from datetime import date
from typing import Iterable

from teamtrack.date_utils import compare_dates
from teamtrack.errors import InvalidDateFormat
from teamtrack.models import DONE, Project, Task, TaskStatistics, TaskStatisticsEntry


def _is_late(task: Task, today: date) -> bool:
    try:
        return compare_dates(today, task.dueDate) > 0
    except InvalidDateFormat:
        return False


def build_task_statistics(
    tasks: Iterable[Task],
    projects: dict[str, Project],
    today: date,
) -> TaskStatistics:
    """Split tasks into done/undone; undone tasks past their due date are late."""
    stats = TaskStatistics()
    for task in tasks:
        project = projects.get(task.projectId)
        entry = TaskStatisticsEntry(
            taskId=task.id,
            projectId=task.projectId,
            projectName=project.name if project else "",
            title=task.title,
            stage=task.stage,
            dueDate=task.dueDate,
            status=task.status,
        )
        stats.totalTasksCount += 1
        if task.status == DONE:
            stats.doneTasks.append(entry)
            continue
        entry.isLate = _is_late(task, today)
        if entry.isLate:
            stats.lateTasksCount += 1
        stats.undoneTasks.append(entry)

    stats.doneTasksCount = len(stats.doneTasks)
    stats.undoneTasksCount = stats.totalTasksCount - stats.doneTasksCount
    return stats
