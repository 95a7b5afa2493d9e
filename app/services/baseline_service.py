"""
Schedule baselines — capture, activation and comparison against the live plan.

Business logic for:
    - Capture:     freeze every scheduled task with its CPM critical flag
    - Activation:  at most one active baseline per project, flipped atomically
    - Comparison:  per-task end variance (current CPM forecast − frozen end)
                   plus aggregate slip figures

compare_baseline_tasks() is pure and is reused by the scenario orchestrator
to measure critical-path slip and drift on the "before" and "after"
snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import select, update

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.baseline import BaselineTask, ScheduleBaseline
from app.models.project import Project
from app.services.critical_path import CriticalPathResult, compute_critical_path
from app.services.schedule_loader import critical_float_tolerance, load_snapshot
from app.services.schedule_snapshot import ScheduleSnapshot, minutes_between

logger = logging.getLogger(__name__)

TASK_REMOVED = "task-removed"
TASK_UNSCHEDULED = "task-unscheduled"


@dataclass(frozen=True)
class BaselineTaskRef:
    """Frozen task as the comparator sees it (decoupled from the ORM row)."""
    task_id: int
    title: str
    planned_start: datetime | None
    planned_end: datetime | None
    is_critical: bool = False

    @classmethod
    def from_row(cls, row: BaselineTask) -> BaselineTaskRef:
        return cls(
            task_id=row.task_id,
            title=row.title,
            planned_start=row.planned_start,
            planned_end=row.planned_end,
            is_critical=bool(row.is_critical),
        )


@dataclass(frozen=True)
class TaskVariance:
    task_id: int
    title: str
    status: str
    baseline_end: datetime | None
    current_end: datetime | None
    end_variance_minutes: int | None
    is_critical_in_baseline: bool

    def to_dict(self):
        return {
            "taskId": self.task_id,
            "title": self.title,
            "status": self.status,
            "baselineEnd": self.baseline_end.isoformat() if self.baseline_end else None,
            "currentEnd": self.current_end.isoformat() if self.current_end else None,
            "endVarianceMinutes": self.end_variance_minutes,
            "isCriticalInBaseline": self.is_critical_in_baseline,
        }


@dataclass
class BaselineComparison:
    tasks: list[TaskVariance] = field(default_factory=list)
    added_tasks: list[dict] = field(default_factory=list)
    count_late: int = 0
    count_removed: int = 0
    max_slip_minutes: int = 0
    critical_path_slip_minutes: int = 0
    project_finish_variance_minutes: int | None = None

    def to_dict(self):
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "addedTasks": list(self.added_tasks),
            "summary": {
                "countLate": self.count_late,
                "countRemoved": self.count_removed,
                "maxSlipMinutes": self.max_slip_minutes,
                "criticalPathSlipMinutes": self.critical_path_slip_minutes,
                "projectFinishVarianceMinutes": self.project_finish_variance_minutes,
            },
        }


# ── Pure comparator ──────────────────────────────────────────────────────────


def _variance_status(variance: int) -> str:
    if variance > 0:
        return "late"
    if variance < 0:
        return "early"
    return "on-track"


def compare_baseline_tasks(
    baseline_tasks: Sequence[BaselineTaskRef],
    snapshot: ScheduleSnapshot,
    cpm: CriticalPathResult,
    project_id: int | None = None,
) -> BaselineComparison:
    """
    Diff frozen baseline tasks against a snapshot and its CPM result.

    The current end of a task is its CPM early finish, so slip propagated
    through dependencies shows up even when the task itself was not moved.
    Baseline tasks missing from the snapshot are reported as task-removed.

    Args:
        baseline_tasks: Frozen rows of one baseline.
        snapshot: "before", "after" or live snapshot.
        cpm: compute_critical_path(snapshot).
        project_id: When given, tasks of this project that are not in the
            baseline are listed as added, and the project finish variance
            is computed.
    """
    result = BaselineComparison()
    unscheduled = set(snapshot.unscheduled_task_ids)
    baseline_ids = set()
    variances: list[int] = []
    critical_variances: list[int] = []

    for ref in baseline_tasks:
        baseline_ids.add(ref.task_id)
        task = snapshot.task(ref.task_id)
        if task is None:
            result.count_removed += 1
            result.tasks.append(TaskVariance(
                task_id=ref.task_id,
                title=ref.title,
                status=TASK_UNSCHEDULED if ref.task_id in unscheduled else TASK_REMOVED,
                baseline_end=ref.planned_end,
                current_end=None,
                end_variance_minutes=None,
                is_critical_in_baseline=ref.is_critical,
            ))
            continue

        current_end = cpm.forecast_end(task.id) or task.end
        variance = None
        status = "on-track"
        if ref.planned_end is not None:
            variance = minutes_between(ref.planned_end, current_end)
            status = _variance_status(variance)
            variances.append(variance)
            if ref.is_critical:
                critical_variances.append(variance)
            if variance > 0:
                result.count_late += 1
        result.tasks.append(TaskVariance(
            task_id=task.id,
            title=task.title,
            status=status,
            baseline_end=ref.planned_end,
            current_end=current_end,
            end_variance_minutes=variance,
            is_critical_in_baseline=ref.is_critical,
        ))

    result.max_slip_minutes = max(variances) if variances else 0
    result.critical_path_slip_minutes = max(critical_variances) if critical_variances else 0

    if project_id is not None:
        result.added_tasks = [
            {"taskId": t.id, "title": t.title}
            for t in snapshot.tasks_for_project(project_id)
            if t.id not in baseline_ids
        ]
        baseline_finish = max(
            (ref.planned_end for ref in baseline_tasks if ref.planned_end is not None),
            default=None,
        )
        current_finish = cpm.project_finishes.get(project_id)
        if baseline_finish is not None and current_finish is not None:
            result.project_finish_variance_minutes = minutes_between(baseline_finish, current_finish)

    return result


# ── Queries ──────────────────────────────────────────────────────────────────


def _get_project_or_404(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_baseline(baseline_id: int) -> ScheduleBaseline:
    baseline = db.session.get(ScheduleBaseline, baseline_id)
    if baseline is None:
        raise NotFoundError(resource="ScheduleBaseline", resource_id=baseline_id)
    return baseline


def list_baselines(project_id: int) -> list[ScheduleBaseline]:
    """Baselines of a project, newest first."""
    _get_project_or_404(project_id)
    return list(
        db.session.execute(
            select(ScheduleBaseline)
            .where(ScheduleBaseline.project_id == project_id)
            .order_by(ScheduleBaseline.created_at.desc(), ScheduleBaseline.id.desc())
        ).scalars()
    )


def get_active_baseline(project_id: int) -> ScheduleBaseline | None:
    return db.session.execute(
        select(ScheduleBaseline).where(
            ScheduleBaseline.project_id == project_id,
            ScheduleBaseline.is_active.is_(True),
        )
    ).scalar_one_or_none()


def baseline_task_refs(baseline: ScheduleBaseline) -> list[BaselineTaskRef]:
    return [BaselineTaskRef.from_row(row) for row in baseline.tasks]


# ── Commands ─────────────────────────────────────────────────────────────────


def _deactivate_others(project_id: int, keep_id: int | None = None) -> None:
    stmt = (
        update(ScheduleBaseline)
        .where(
            ScheduleBaseline.project_id == project_id,
            ScheduleBaseline.is_active.is_(True),
        )
        .values(is_active=False)
    )
    if keep_id is not None:
        stmt = stmt.where(ScheduleBaseline.id != keep_id)
    db.session.execute(stmt)


def create_baseline(
    project_id: int,
    name: str,
    set_active: bool = False,
    created_by: str = "",
) -> ScheduleBaseline:
    """
    Freeze the project's current schedule.

    Critical flags come from a CPM run over the live schedule, so a cyclic
    dependency set raises CyclicDependencyError and nothing is stored.
    With set_active, the previous active baseline is deactivated in the
    same transaction.
    """
    _get_project_or_404(project_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})

    snapshot = load_snapshot([project_id])
    cpm = compute_critical_path(snapshot, critical_float_tolerance())

    try:
        if set_active:
            _deactivate_others(project_id)
        baseline = ScheduleBaseline(
            project_id=project_id,
            name=name,
            is_active=bool(set_active),
            created_by=created_by or "",
        )
        db.session.add(baseline)
        for task in snapshot.tasks:
            db.session.add(BaselineTask(
                baseline=baseline,
                task_id=task.id,
                title=task.title,
                planned_start=task.start,
                planned_end=task.end,
                is_critical=task.id in cpm.critical_task_ids,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "ScheduleBaseline created id=%s project=%s tasks=%d active=%s",
        baseline.id, project_id, len(snapshot.tasks), baseline.is_active,
        extra={"baseline_id": baseline.id, "project_id": project_id},
    )
    return baseline


def activate_baseline(baseline_id: int) -> ScheduleBaseline:
    """Make a baseline the project's only active one (row-locked, one commit)."""
    baseline = db.session.execute(
        select(ScheduleBaseline)
        .where(ScheduleBaseline.id == baseline_id)
        .with_for_update()
    ).scalar_one_or_none()
    if baseline is None:
        raise NotFoundError(resource="ScheduleBaseline", resource_id=baseline_id)

    try:
        # Lock the sibling rows so two concurrent activations serialize.
        db.session.execute(
            select(ScheduleBaseline.id)
            .where(ScheduleBaseline.project_id == baseline.project_id)
            .with_for_update()
        ).all()
        _deactivate_others(baseline.project_id, keep_id=baseline.id)
        baseline.is_active = True
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "ScheduleBaseline activated id=%s project=%s",
        baseline.id, baseline.project_id,
        extra={"baseline_id": baseline.id, "project_id": baseline.project_id},
    )
    return baseline


def compare_baseline(baseline_id: int, as_of: date | None = None) -> dict:
    """Compare a baseline against the live schedule of its project."""
    baseline = get_baseline(baseline_id)
    snapshot = load_snapshot([baseline.project_id], as_of)
    cpm = compute_critical_path(snapshot, critical_float_tolerance())
    comparison = compare_baseline_tasks(
        baseline_task_refs(baseline), snapshot, cpm, project_id=baseline.project_id,
    )
    result = comparison.to_dict()
    result["baselineId"] = baseline.id
    result["projectId"] = baseline.project_id
    result["isActive"] = baseline.is_active
    return result
