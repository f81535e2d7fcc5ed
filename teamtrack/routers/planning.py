"""Planning API router: timeline stages of a project plan."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from teamtrack.date_utils import parse_date
from teamtrack.db import connection
from teamtrack.db.factory import get_project_repository
from teamtrack.db.rows import project_from_row
from teamtrack.errors import InvalidDateFormat, ProgressEngineError
from teamtrack.models import Plan, RecalculationResult, Stage
from teamtrack.routers.common import get_orchestrator, raise_http
from teamtrack.services.recalculation import StageCreated, StageDeleted, StageUpdated

planning_router = APIRouter(prefix="/api/planning", tags=["planning"])


# ── Request models ──────────────────────────────────────────────────

class StageCreateRequest(BaseModel):
    stage: str
    deadline: str  # DD/MM/YYYY
    note: str = ""
    topic: Optional[str] = None  # only needed the first time a plan is made
    target: Optional[str] = None


class StageUpdateRequest(BaseModel):
    oldStage: str
    newStage: Optional[str] = None  # omit or repeat oldStage to keep the name
    deadline: Optional[str] = None
    note: Optional[str] = None
    topic: Optional[str] = None
    target: Optional[str] = None


def _display_order(timeline: list[Stage]) -> list[Stage]:
    def _key(entry: Stage):
        try:
            return (0, parse_date(entry.deadline))
        except InvalidDateFormat:
            return (1, None)
    return sorted(timeline, key=_key)


@planning_router.post("/{project_id}", response_model=RecalculationResult)
async def create_stage(project_id: str, req: StageCreateRequest):
    """Append a stage to the project's timeline, creating the plan if needed."""
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(StageCreated(
            project_id=project_id,
            stage=req.stage,
            deadline=req.deadline,
            note=req.note,
            topic=req.topic,
            target=req.target,
        ))
    except ProgressEngineError as exc:
        raise_http(exc)


@planning_router.get("/{project_id}", response_model=Plan)
async def read_plan(project_id: str):
    """Return the plan with its timeline sorted by deadline.

    Sorting is for display only; the stored timeline keeps insertion order,
    which the weight anchors depend on.
    """
    db = await connection.get_connection()
    row = await get_project_repository(db).get_by_id(project_id)
    if not row:
        raise HTTPException(status_code=404, detail="Project not found")
    project = project_from_row(row)
    if project.plan is None:
        raise HTTPException(status_code=404, detail="Project has no plan yet")
    return project.plan.model_copy(update={"timeline": _display_order(project.plan.timeline)})


@planning_router.put("/{project_id}", response_model=RecalculationResult)
async def update_stage(project_id: str, req: StageUpdateRequest):
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(StageUpdated(
            project_id=project_id,
            stage=req.oldStage,
            new_stage=req.newStage,
            deadline=req.deadline,
            note=req.note,
            topic=req.topic,
            target=req.target,
        ))
    except ProgressEngineError as exc:
        raise_http(exc)


@planning_router.delete("/{project_id}/{stage}", response_model=RecalculationResult)
async def delete_stage(project_id: str, stage: str, cascade: bool = Query(False)):
    """Remove a stage. Stages that still own tasks need ``cascade=true``."""
    orchestrator = await get_orchestrator()
    try:
        return await orchestrator.apply(StageDeleted(project_id=project_id, stage=stage, cascade=cascade))
    except ProgressEngineError as exc:
        raise_http(exc)
