"""Project, plan and task documents plus the results the engine returns."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal, Optional

PROCESSING = "Processing"
COMPLETED = "Completed"
ProjectStatus = Literal["Processing", "Completed"]

DONE = "Done"
TaskStatus = Literal["Todo", "Doing", "Review", "Done"]
TASK_STATUSES = ("Todo", "Doing", "Review", "Done")


class WeightShare(BaseModel):
    weight: int = 0  # raw day-distance
    percent: float = 0.0  # share of the sibling group, 0-1


# ── Planning models ────────────────────────────────────────────────

class Stage(BaseModel):
    stage: str  # unique name within the project
    deadline: str  # DD/MM/YYYY
    note: str = ""
    progress: float = 0.0
    actualCompletion: Optional[str] = None
    percentOfProject: WeightShare = Field(default_factory=WeightShare)


class Plan(BaseModel):
    topic: str = ""
    target: str = ""
    createdAt: str  # DD/MM/YYYY, anchor for the first stage and every task
    timeline: list[Stage] = Field(default_factory=list)


class Project(BaseModel):
    id: str
    name: str
    description: str = ""
    status: ProjectStatus = PROCESSING
    progress: float = 0.0
    createdAt: str = ""
    plan: Optional[Plan] = None
    version: int = 0

    def find_stage(self, name: str) -> Optional[Stage]:
        if self.plan is None:
            return None
        for entry in self.plan.timeline:
            if entry.stage == name:
                return entry
        return None


# ── Task models ────────────────────────────────────────────────────

class TaskUpdateEntry(BaseModel):
    timestamp: str
    content: str


class Task(BaseModel):
    id: str
    projectId: str
    stage: str
    title: str = ""
    description: str = ""
    assign: str = ""
    estimate: str = ""
    spend: str = ""
    comment: str = ""  # latest comment; every comment is also in updates
    tags: list[str] = Field(default_factory=list)
    dueDate: str  # DD/MM/YYYY
    status: TaskStatus = "Todo"
    percentOfStage: WeightShare = Field(default_factory=WeightShare)
    progress: float = 0.0  # 1 iff status == Done
    createdAt: str = ""
    updates: list[TaskUpdateEntry] = Field(default_factory=list)


# ── Recalculation results ──────────────────────────────────────────

class RecalculationResult(BaseModel):
    trigger: str
    project: Project
    stages: list[Stage] = Field(default_factory=list)  # stages whose aggregate was recomputed
    task: Optional[Task] = None
    statusChanged: bool = False


# ── Statistics models ──────────────────────────────────────────────

class TaskStatisticsEntry(BaseModel):
    taskId: str
    projectId: str
    projectName: str = ""
    title: str = ""
    stage: str = ""
    dueDate: str = ""
    status: str = ""
    isLate: Optional[bool] = None


class TaskStatistics(BaseModel):
    totalTasksCount: int = 0
    doneTasksCount: int = 0
    undoneTasksCount: int = 0
    lateTasksCount: int = 0
    doneTasks: list[TaskStatisticsEntry] = Field(default_factory=list)
    undoneTasks: list[TaskStatisticsEntry] = Field(default_factory=list)
