"""Conversions between stored rows and Project/Task documents.

Scalar columns are authoritative; ``plan_json``/``data_json`` carry the rest.
"""
from __future__ import annotations

import json
from typing import Any

from teamtrack.models import Plan, Project, Task


def _safe_json(raw: str | dict | None) -> dict:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def project_from_row(row: dict[str, Any]) -> Project:
    plan_data = _safe_json(row.get("plan_json"))
    return Project(
        id=str(row["id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        status=row.get("status") or "Processing",
        progress=float(row.get("progress") or 0.0),
        createdAt=row.get("created_at") or "",
        plan=Plan.model_validate(plan_data) if plan_data else None,
        version=int(row.get("version") or 0),
    )


def project_to_data(project: Project) -> dict[str, Any]:
    data = project.model_dump()
    data["planJson"] = json.dumps(data.pop("plan")) if project.plan is not None else None
    return data


def task_from_row(row: dict[str, Any]) -> Task:
    data = _safe_json(row.get("data_json"))
    data.update(
        {
            "id": str(row["id"]),
            "projectId": str(row["project_id"]),
            "stage": row["stage"],
            "title": row.get("title") or data.get("title", ""),
            "assign": row.get("assign") or data.get("assign", ""),
            "status": row["status"],
            "dueDate": row["due_date"],
            "percentOfStage": {
                "weight": int(row.get("weight") or 0),
                "percent": float(row.get("percent") or 0.0),
            },
            "progress": float(row.get("progress") or 0.0),
        }
    )
    return Task.model_validate(data)
