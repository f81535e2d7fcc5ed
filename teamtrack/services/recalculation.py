"""Recalculation orchestrator for the Project → Stage → Task hierarchy.

Every mutation that can move a percentage is expressed as one of six trigger
records and dispatched through ``RecalculationOrchestrator.apply``. A trigger
runs under the project's lock as a single read → compute → write cycle:

1. read the project document and the affected task group(s)
2. apply the mutation in memory and validate it
3. re-derive weights, re-normalize percents, re-aggregate stage and project
   progress, derive the project status
4. write tasks, then the project with an optimistic version check, inside
   one store transaction

Nothing is written until step 4, so validation failures leave the store
untouched. A failed or conflicting project write rolls the task writes back;
a version conflict then re-runs the cycle.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Optional

from teamtrack import config
from teamtrack.date_utils import Clock, day_span, format_date, normalize_date
from teamtrack.db.factory import STORE_ERRORS, get_project_repository, get_task_repository
from teamtrack.db.rows import project_from_row, project_to_data, task_from_row
from teamtrack.errors import (
    ConcurrentModificationError,
    NotFoundError,
    ProgressEngineError,
    StoreError,
    ValidationError,
    VersionConflictError,
)
from teamtrack.models import (
    TASK_STATUSES,
    Plan,
    Project,
    RecalculationResult,
    Stage,
    Task,
    TaskUpdateEntry,
    WeightShare,
)
from teamtrack.observability import record_recalculation, record_status_transition, start_span
from teamtrack.services.progress import (
    aggregate_progress,
    derive_status,
    normalize_weights,
    task_progress,
)

logger = logging.getLogger("teamtrack.recalculation")


# ── Triggers ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskCreated:
    kind: ClassVar[str] = "task_created"
    project_id: str
    stage: str
    due_date: str
    title: str = ""
    description: str = ""
    assign: str = ""
    estimate: str = ""
    tags: tuple[str, ...] = ()
    status: str = "Todo"
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class TaskUpdated:
    """``changes`` keys: status, dueDate, stage, title, description, assign,
    estimate, spend, tags, comment. Absent keys are left alone."""

    kind: ClassVar[str] = "task_updated"
    task_id: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskDeleted:
    kind: ClassVar[str] = "task_deleted"
    task_id: str


@dataclass(frozen=True)
class StageCreated:
    kind: ClassVar[str] = "stage_created"
    project_id: str
    stage: str
    deadline: str
    note: str = ""
    topic: Optional[str] = None
    target: Optional[str] = None


@dataclass(frozen=True)
class StageUpdated:
    kind: ClassVar[str] = "stage_updated"
    project_id: str
    stage: str
    new_stage: Optional[str] = None
    deadline: Optional[str] = None
    note: Optional[str] = None
    topic: Optional[str] = None
    target: Optional[str] = None


@dataclass(frozen=True)
class StageDeleted:
    kind: ClassVar[str] = "stage_deleted"
    project_id: str
    stage: str
    cascade: bool = False


Trigger = TaskCreated | TaskUpdated | TaskDeleted | StageCreated | StageUpdated | StageDeleted

# Task update log labels, in the order they appear in an entry.
_UPDATE_LABELS = {
    "title": "Title",
    "description": "Description",
    "assign": "Assign",
    "stage": "Stage",
    "dueDate": "Due Date",
    "estimate": "Estimate",
    "spend": "Spend",
    "status": "Status",
    "tags": "Tags",
    "comment": "Comment",
}


# ── Per-project serialization ──────────────────────────────────────

class ProjectLockRegistry:
    """One asyncio.Lock per project id, dropped once nobody holds it."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock


project_locks = ProjectLockRegistry()


@dataclass
class _Writes:
    tasks: dict[str, Task] = field(default_factory=dict)
    deletes: list[str] = field(default_factory=list)
    renames: list[tuple[str, str]] = field(default_factory=list)

    def put(self, task: Task) -> None:
        self.tasks[task.id] = task


# ── Orchestrator ───────────────────────────────────────────────────

class RecalculationOrchestrator:
    def __init__(
        self,
        projects: Any,
        tasks: Any,
        clock: Clock | None = None,
        locks: ProjectLockRegistry | None = None,
        max_retries: int | None = None,
    ):
        self._projects = projects
        self._tasks = tasks
        self._clock = clock or Clock()
        self._locks = locks or project_locks
        self._max_retries = config.RECALC_MAX_RETRIES if max_retries is None else max(1, max_retries)
        self._handlers: dict[type, Callable[..., Awaitable[RecalculationResult]]] = {
            TaskCreated: self._task_created,
            TaskUpdated: self._task_updated,
            TaskDeleted: self._task_deleted,
            StageCreated: self._stage_created,
            StageUpdated: self._stage_updated,
            StageDeleted: self._stage_deleted,
        }

    async def apply(self, trigger: Trigger) -> RecalculationResult:
        """Run one trigger through the full cascade and return the new state."""
        handler = self._handlers.get(type(trigger))
        if handler is None:
            raise TypeError(f"Unsupported trigger: {type(trigger).__name__}")

        started = time.perf_counter()
        project_id = ""
        try:
            project_id = await self._resolve_project_id(trigger)
            with start_span("teamtrack.recalculate", {"trigger": trigger.kind, "project_id": project_id}):
                async with self._locks.lock_for(project_id):
                    snapshot = await self._snapshot(trigger)
                    result = await self._run_with_retries(handler, trigger, project_id, snapshot)
        except ProgressEngineError as exc:
            record_recalculation(trigger.kind, type(exc).__name__, _elapsed_ms(started), project_id=project_id)
            raise
        except STORE_ERRORS as exc:
            logger.exception(f"Store failure during {trigger.kind} on project {project_id}")
            record_recalculation(trigger.kind, "StoreError", _elapsed_ms(started), project_id=project_id)
            raise StoreError(f"Backing store failed during {trigger.kind}: {exc}") from exc

        record_recalculation(trigger.kind, "ok", _elapsed_ms(started), project_id=project_id)
        if result.statusChanged:
            record_status_transition(result.project.status, project_id=project_id)
            logger.info(f"Project {project_id} status is now {result.project.status}")
        logger.info(
            f"{trigger.kind} applied to project {project_id}: "
            f"progress={result.project.progress:.4f} status={result.project.status}"
        )
        return result

    async def _run_with_retries(self, handler, trigger, project_id: str, snapshot: Task | None) -> RecalculationResult:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await handler(trigger, project_id, snapshot)
            except VersionConflictError as exc:
                if attempt >= self._max_retries:
                    raise ConcurrentModificationError(
                        f"Project {project_id} kept changing; gave up after {attempt} attempts"
                    ) from exc
                logger.warning(f"{trigger.kind}: {exc}; retrying ({attempt}/{self._max_retries})")
        raise AssertionError("unreachable")

    async def _resolve_project_id(self, trigger: Trigger) -> str:
        if isinstance(trigger, (TaskUpdated, TaskDeleted)):
            return (await self._load_task(trigger.task_id)).projectId
        if not trigger.project_id:
            raise ValidationError("projectId is required")
        return trigger.project_id

    async def _snapshot(self, trigger: Trigger) -> Task | None:
        # Re-read under the lock; another request may have deleted the task.
        if isinstance(trigger, (TaskUpdated, TaskDeleted)):
            return await self._load_task(trigger.task_id)
        return None

    # ── Loading ────────────────────────────────────────────────────

    async def _load_project(self, project_id: str) -> Project:
        row = await self._projects.get_by_id(project_id)
        if row is None:
            raise NotFoundError("Project", project_id)
        return project_from_row(row)

    async def _load_task(self, task_id: str) -> Task:
        row = await self._tasks.get_by_id(task_id)
        if row is None:
            raise NotFoundError("Task", task_id)
        return task_from_row(row)

    async def _load_group(self, project_id: str, stage: str) -> list[Task]:
        return [task_from_row(r) for r in await self._tasks.list_by_project(project_id, stage)]

    @staticmethod
    def _require_plan(project: Project) -> Plan:
        if project.plan is None:
            raise ValidationError(f"Project {project.id} has no plan yet")
        return project.plan

    @staticmethod
    def _require_stage(project: Project, name: str | None) -> Stage:
        if not name:
            raise ValidationError("stage is required")
        stage = project.find_stage(name)
        if stage is None:
            raise ValidationError(f"Stage {name!r} does not exist in project {project.id}")
        return stage

    async def _require_unique_title(self, project_id: str, title: str, task_id: str) -> None:
        if not title:
            return
        if await self._tasks.find_by_title(project_id, title, exclude_id=task_id) is not None:
            raise ValidationError(f"Task title {title!r} already exists in project {project_id}")

    # ── Computation ────────────────────────────────────────────────

    @staticmethod
    def _rederive_stage_weights(plan: Plan) -> None:
        """Walk the timeline in order; each stage is anchored on the previous
        stage's deadline, the first one on the plan's creation date."""
        anchor = plan.createdAt
        for entry in plan.timeline:
            entry.percentOfProject.weight = day_span(entry.deadline, anchor)
            anchor = entry.deadline
        percents = normalize_weights([e.percentOfProject.weight for e in plan.timeline])
        for entry, percent in zip(plan.timeline, percents):
            entry.percentOfProject.percent = percent

    def _regroup(self, plan: Plan, stage: Stage, group: list[Task], writes: _Writes) -> None:
        """Re-normalize a stage's task group and re-aggregate the stage."""
        before = {t.id: (t.percentOfStage.weight, t.percentOfStage.percent) for t in group}
        for task in group:
            task.percentOfStage.weight = day_span(task.dueDate, plan.createdAt)
        percents = normalize_weights([t.percentOfStage.weight for t in group])
        for task, percent in zip(group, percents):
            task.percentOfStage.percent = percent
            if before[task.id] != (task.percentOfStage.weight, percent):
                writes.put(task)

        stage.progress = aggregate_progress((t.percentOfStage.percent, t.progress) for t in group)
        if stage.progress >= 1.0:
            if stage.actualCompletion is None:
                stage.actualCompletion = format_date(self._clock.today())
        else:
            stage.actualCompletion = None

    @staticmethod
    def _reaggregate_project(project: Project) -> bool:
        stages = project.plan.timeline if project.plan else []
        project.progress = aggregate_progress(
            (s.percentOfProject.percent, s.progress) for s in stages
        )
        previous = project.status
        project.status = derive_status(project.progress, previous)
        return previous != project.status

    async def _regroup_stage(self, project: Project, stage: Stage, writes: _Writes, replace: Task | None = None) -> None:
        group = await self._load_group(project.id, stage.stage)
        if replace is not None:
            group = [replace if t.id == replace.id else t for t in group]
            if all(t.id != replace.id for t in group):
                group.append(replace)
        self._regroup(self._require_plan(project), stage, group, writes)

    async def _commit(self, project: Project, writes: _Writes) -> None:
        """Write tasks, then the project, as one store transaction."""
        async with self._projects.transaction():
            for task_id in writes.deletes:
                await self._tasks.delete(task_id)
            for old, new in writes.renames:
                await self._tasks.rename_stage(project.id, old, new)
            for task in writes.tasks.values():
                await self._tasks.upsert(task.model_dump())
            version = await self._projects.save(project_to_data(project), project.version)
        project.version = version

    # ── Task triggers ──────────────────────────────────────────────

    async def _task_created(self, trigger: TaskCreated, project_id: str, snapshot: Task | None) -> RecalculationResult:
        project = await self._load_project(project_id)
        plan = self._require_plan(project)
        stage = self._require_stage(project, trigger.stage)
        if not trigger.due_date:
            raise ValidationError("dueDate is required")
        if trigger.status not in TASK_STATUSES:
            raise ValidationError(f"Unknown task status {trigger.status!r}")
        await self._require_unique_title(project_id, trigger.title, trigger.task_id)

        due_date = normalize_date(trigger.due_date)
        task = Task(
            id=trigger.task_id,
            projectId=project_id,
            stage=stage.stage,
            title=trigger.title,
            description=trigger.description,
            assign=trigger.assign,
            estimate=trigger.estimate,
            tags=list(trigger.tags),
            dueDate=due_date,
            status=trigger.status,
            percentOfStage=WeightShare(weight=day_span(due_date, plan.createdAt)),
            progress=task_progress(trigger.status),
            createdAt=self._clock.timestamp(),
        )

        writes = _Writes()
        writes.put(task)
        await self._regroup_stage(project, stage, writes, replace=task)
        status_changed = self._reaggregate_project(project)
        await self._commit(project, writes)
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=[stage], task=task, statusChanged=status_changed
        )

    def _apply_task_changes(self, project: Project, task: Task, changes: dict[str, Any]) -> None:
        unknown = set(changes) - set(_UPDATE_LABELS)
        if unknown:
            raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        entries: list[str] = []
        for key, label in _UPDATE_LABELS.items():
            value = changes.get(key)
            if value is None:
                continue
            if key == "status":
                if value not in TASK_STATUSES:
                    raise ValidationError(f"Unknown task status {value!r}")
                task.status = value
                task.progress = task_progress(value)
            elif key == "dueDate":
                task.dueDate = value = normalize_date(value)
            elif key == "stage":
                task.stage = self._require_stage(project, value).stage
            elif key == "tags":
                task.tags = list(value)
                value = ",".join(task.tags)
            else:
                setattr(task, key, value)
            entries.append(f"{label}: {value}")

        if entries:
            task.updates.append(TaskUpdateEntry(timestamp=self._clock.timestamp(), content="; ".join(entries)))

    async def _task_updated(self, trigger: TaskUpdated, project_id: str, snapshot: Task) -> RecalculationResult:
        project = await self._load_project(project_id)
        self._require_plan(project)
        task = snapshot.model_copy(deep=True)
        old_stage_name = task.stage
        self._apply_task_changes(project, task, trigger.changes)
        if "title" in trigger.changes:
            await self._require_unique_title(project_id, task.title, task.id)

        writes = _Writes()
        writes.put(task)
        stages: list[Stage] = []
        if old_stage_name != task.stage:
            old_stage = project.find_stage(old_stage_name)
            if old_stage is None:
                logger.warning(f"Task {task.id} referenced missing stage {old_stage_name!r}; nothing to re-aggregate")
            else:
                group = [t for t in await self._load_group(project_id, old_stage_name) if t.id != task.id]
                self._regroup(project.plan, old_stage, group, writes)
                stages.append(old_stage)

        new_stage = self._require_stage(project, task.stage)
        await self._regroup_stage(project, new_stage, writes, replace=task)
        stages.append(new_stage)

        status_changed = self._reaggregate_project(project)
        await self._commit(project, writes)
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=stages, task=task, statusChanged=status_changed
        )

    async def _task_deleted(self, trigger: TaskDeleted, project_id: str, snapshot: Task) -> RecalculationResult:
        project = await self._load_project(project_id)
        writes = _Writes(deletes=[snapshot.id])
        stages: list[Stage] = []
        stage = project.find_stage(snapshot.stage)
        if project.plan is not None and stage is not None:
            group = [t for t in await self._load_group(project_id, stage.stage) if t.id != snapshot.id]
            self._regroup(project.plan, stage, group, writes)
            stages.append(stage)
        status_changed = self._reaggregate_project(project)
        await self._commit(project, writes)
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=stages, task=snapshot, statusChanged=status_changed
        )

    # ── Stage triggers ─────────────────────────────────────────────

    async def _stage_created(self, trigger: StageCreated, project_id: str, snapshot: None) -> RecalculationResult:
        if not trigger.stage or not trigger.deadline:
            raise ValidationError("stage and deadline are required")
        project = await self._load_project(project_id)
        deadline = normalize_date(trigger.deadline)

        if project.plan is None:
            project.plan = Plan(
                topic=trigger.topic or "",
                target=trigger.target or "",
                createdAt=format_date(self._clock.today()),
            )
        else:
            if trigger.topic:
                project.plan.topic = trigger.topic
            if trigger.target:
                project.plan.target = trigger.target
        if project.find_stage(trigger.stage) is not None:
            raise ValidationError(f"Stage {trigger.stage!r} already exists")

        stage = Stage(stage=trigger.stage, deadline=deadline, note=trigger.note)
        project.plan.timeline.append(stage)
        self._rederive_stage_weights(project.plan)
        status_changed = self._reaggregate_project(project)
        await self._commit(project, _Writes())
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=list(project.plan.timeline), statusChanged=status_changed
        )

    async def _stage_updated(self, trigger: StageUpdated, project_id: str, snapshot: None) -> RecalculationResult:
        project = await self._load_project(project_id)
        plan = self._require_plan(project)
        stage = self._require_stage(project, trigger.stage)
        writes = _Writes()

        if trigger.new_stage and trigger.new_stage != stage.stage:
            if project.find_stage(trigger.new_stage) is not None:
                raise ValidationError(f"Stage {trigger.new_stage!r} already exists")
            writes.renames.append((stage.stage, trigger.new_stage))
            stage.stage = trigger.new_stage
        if trigger.deadline:
            stage.deadline = normalize_date(trigger.deadline)
        if trigger.note is not None:
            stage.note = trigger.note
        if trigger.topic:
            plan.topic = trigger.topic
        if trigger.target:
            plan.target = trigger.target

        self._rederive_stage_weights(plan)
        status_changed = self._reaggregate_project(project)
        await self._commit(project, writes)
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=list(plan.timeline), statusChanged=status_changed
        )

    async def _stage_deleted(self, trigger: StageDeleted, project_id: str, snapshot: None) -> RecalculationResult:
        project = await self._load_project(project_id)
        plan = self._require_plan(project)
        stage = self._require_stage(project, trigger.stage)

        group = await self._load_group(project_id, stage.stage)
        if group and not trigger.cascade:
            raise ValidationError(
                f"Stage {stage.stage!r} still has {len(group)} task(s); delete them or pass cascade"
            )
        plan.timeline = [s for s in plan.timeline if s.stage != stage.stage]
        self._rederive_stage_weights(plan)
        status_changed = self._reaggregate_project(project)
        await self._commit(project, _Writes(deletes=[t.id for t in group]))
        return RecalculationResult(
            trigger=trigger.kind, project=project, stages=list(plan.timeline), statusChanged=status_changed
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def build_orchestrator(db: Any, clock: Clock | None = None) -> RecalculationOrchestrator:
    return RecalculationOrchestrator(
        get_project_repository(db),
        get_task_repository(db),
        clock=clock,
    )
