"""API router for project management."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from teamtrack.date_utils import format_date
from teamtrack.db import connection
from teamtrack.db.factory import get_project_repository
from teamtrack.db.rows import project_from_row, project_to_data
from teamtrack.errors import ProgressEngineError
from teamtrack.models import Project
from teamtrack.routers.common import clock, raise_http

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectCreateRequest(BaseModel):
    name: str
    description: str = ""


@projects_router.get("", response_model=list[Project])
async def list_projects():
    """List all projects with their current aggregates."""
    db = await connection.get_connection()
    repo = get_project_repository(db)
    return [project_from_row(row) for row in await repo.list_all()]


@projects_router.post("", response_model=Project)
async def add_project(req: ProjectCreateRequest):
    """Create an empty project. Its plan is created with the first stage."""
    if not req.name.strip():
        raise HTTPException(status_code=400, detail="name is required")
    project = Project(
        id=uuid.uuid4().hex,
        name=req.name.strip(),
        description=req.description,
        createdAt=format_date(clock.today()),
    )
    db = await connection.get_connection()
    repo = get_project_repository(db)
    try:
        async with repo.transaction():
            await repo.create(project_to_data(project))
    except ProgressEngineError as exc:
        raise_http(exc)
    return project


@projects_router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str):
    db = await connection.get_connection()
    row = await get_project_repository(db).get_by_id(project_id)
    if not row:
        raise HTTPException(status_code=404, detail="Project not found")
    return project_from_row(row)
