"""Tasks API router."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from teamtrack.db import connection
from teamtrack.db.factory import get_task_repository
from teamtrack.db.rows import task_from_row
from teamtrack.errors import ProgressEngineError
from teamtrack.models import RecalculationResult, Task
from teamtrack.routers.common import get_orchestrator, raise_http
from teamtrack.services.recalculation import TaskCreated, TaskDeleted, TaskUpdated

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TaskCreateRequest(BaseModel):
    projectId: str
    stage: str
    title: str
    dueDate: str  # DD/MM/YYYY
    description: str = ""
    assign: str = ""
    estimate: str = ""
    tags: list[str] = Field(default_factory=list)
    status: str = "Todo"


class TaskUpdateRequest(BaseModel):
    """Send only the fields that change."""

    title: Optional[str] = None
    description: Optional[str] = None
    assign: Optional[str] = None
    stage: Optional[str] = None
    dueDate: Optional[str] = None
    estimate: Optional[str] = None
    spend: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[list[str]] = None
    comment: Optional[str] = None


@tasks_router.post("", response_model=RecalculationResult)
async def create_task(req: TaskCreateRequest):
    if not req.title.strip():
        raise HTTPException(status_code=400, detail="title is required")
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(TaskCreated(
            project_id=req.projectId,
            stage=req.stage,
            due_date=req.dueDate,
            title=req.title.strip(),
            description=req.description,
            assign=req.assign,
            estimate=req.estimate,
            tags=tuple(req.tags),
            status=req.status,
        ))
    except ProgressEngineError as exc:
        raise_http(exc)


@tasks_router.get("", response_model=list[Task])
async def list_tasks(
    projectId: Optional[str] = Query(None),
    stage: Optional[str] = Query(None),
    assign: Optional[str] = Query(None),
):
    """Return tasks of a project (optionally one stage), or of an assignee."""
    db = await connection.get_connection()
    repo = get_task_repository(db)
    if projectId:
        rows = await repo.list_by_project(projectId, stage)
        if assign:
            rows = [r for r in rows if r.get("assign") == assign]
    else:
        rows = await repo.list_all(assign)
    return [task_from_row(r) for r in rows]


@tasks_router.get("/{task_id}", response_model=Task)
async def get_task(task_id: str):
    db = await connection.get_connection()
    row = await get_task_repository(db).get_by_id(task_id)
    if not row:
        raise HTTPException(status_code=404, detail="Task not found")
    return task_from_row(row)


@tasks_router.put("/{task_id}", response_model=RecalculationResult)
async def update_task(task_id: str, req: TaskUpdateRequest):
    changes = req.model_dump(exclude_none=True)
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(TaskUpdated(task_id=task_id, changes=changes))
    except ProgressEngineError as exc:
        raise_http(exc)


@tasks_router.delete("/{task_id}", response_model=RecalculationResult)
async def delete_task(task_id: str):
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(TaskDeleted(task_id=task_id))
    except ProgressEngineError as exc:
        raise_http(exc)
