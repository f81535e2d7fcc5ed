"""Statistics API router."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from teamtrack.db import connection
from teamtrack.db.factory import get_project_repository, get_task_repository
from teamtrack.db.rows import project_from_row, task_from_row
from teamtrack.models import TaskStatistics
from teamtrack.routers.common import clock
from teamtrack.services.statistics import build_task_statistics

statistics_router = APIRouter(prefix="/api/statistics", tags=["statistics"])


class StageProgress(BaseModel):
    stage: str
    deadline: str
    weight: int = 0
    percent: float = 0.0
    progress: float = 0.0
    actualCompletion: Optional[str] = None


class ProjectProgressSummary(BaseModel):
    projectId: str
    name: str
    status: str
    progress: float
    totalTasks: int = 0
    completedTasks: int = 0
    completionPct: float = 0.0
    stages: list[StageProgress] = Field(default_factory=list)


@statistics_router.get("/tasks", response_model=TaskStatistics)
async def task_statistics(
    projectId: Optional[str] = Query(None),
    assign: Optional[str] = Query(None),
):
    """Done/undone task counts; undone tasks carry an ``isLate`` flag."""
    db = await connection.get_connection()
    task_repo = get_task_repository(db)
    if projectId:
        rows = await task_repo.list_by_project(projectId)
        if assign:
            rows = [r for r in rows if r.get("assign") == assign]
    else:
        rows = await task_repo.list_all(assign)

    projects = {
        row["id"]: project_from_row(row)
        for row in await get_project_repository(db).list_all()
    }
    return build_task_statistics([task_from_row(r) for r in rows], projects, clock.today())


@statistics_router.get("/projects/{project_id}", response_model=ProjectProgressSummary)
async def project_progress(project_id: str):
    """Aggregate progress of a project with its per-stage breakdown."""
    db = await connection.get_connection()
    row = await get_project_repository(db).get_by_id(project_id)
    if not row:
        raise HTTPException(status_code=404, detail="Project not found")
    project = project_from_row(row)
    counts = await get_task_repository(db).get_project_stats(project_id)

    stages = []
    if project.plan is not None:
        stages = [
            StageProgress(
                stage=s.stage,
                deadline=s.deadline,
                weight=s.percentOfProject.weight,
                percent=s.percentOfProject.percent,
                progress=s.progress,
                actualCompletion=s.actualCompletion,
            )
            for s in project.plan.timeline
        ]
    return ProjectProgressSummary(
        projectId=project.id,
        name=project.name,
        status=project.status,
        progress=project.progress,
        totalTasks=counts["total"],
        completedTasks=counts["completed"],
        completionPct=counts["completion_pct"],
        stages=stages,
    )
