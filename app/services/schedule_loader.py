"""
Schedule graph loader — project store rows → immutable ScheduleSnapshot.

The only bridge between the live project/resource tables and the pure
engine modules. Everything here is read-only: no flush, no commit.

    resolve_project_ids("portfolio", 3)   → [11, 12, 17]
    load_snapshot([11, 12, 17], as_of)     → ScheduleSnapshot
    load_capacity_calendar({4, 9})         → StaticCapacityCalendar
    team_member_ids(2)                     → [4, 9]

Tasks without a planned start cannot be placed on a timeline; they are
left out of the snapshot (listed in unscheduled_task_ids) together with
every dependency that touches them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import func, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.project import CostEntry, Project, WorkTask, WorkTaskDependency
from app.models.resource import CapacityException, ResourceAllocation, TeamMember, UserCapacity
from app.models.scenario import SCOPE_TYPES
from app.services.capacity_evaluator import StaticCapacityCalendar
from app.services.schedule_snapshot import (
    MINUTES_PER_DAY,
    AllocationSpan,
    DependencyEdge,
    DependencyType,
    ProjectInfo,
    ScheduleSnapshot,
    TaskNode,
    empty_snapshot,
)

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


# ── Scope ────────────────────────────────────────────────────────────────────


def resolve_project_ids(scope_type: str, scope_id: int) -> list[int]:
    """Project ids covered by a scope, ascending. Unknown ids give []."""
    if scope_type not in SCOPE_TYPES:
        raise ValidationError(
            f"Invalid scope_type: {scope_type}",
            details={"scope_type": f"must be one of {sorted(SCOPE_TYPES)}"},
        )
    if scope_type == "project":
        project = db.session.get(Project, scope_id)
        return [project.id] if project else []
    return list(
        db.session.execute(
            select(Project.id)
            .where(Project.portfolio_id == scope_id)
            .order_by(Project.id)
        ).scalars()
    )


def team_member_ids(team_id: int) -> list[int]:
    return list(
        db.session.execute(
            select(TeamMember.user_id)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.user_id)
        ).scalars()
    )


# ── Snapshot ─────────────────────────────────────────────────────────────────


def _task_node(task: WorkTask) -> TaskNode:
    start = task.planned_start
    if task.planned_end is not None:
        end = task.planned_end
    elif task.duration_minutes:
        end = start + timedelta(minutes=task.duration_minutes)
    else:
        end = start
    # A planned end before the start is treated as a zero-length task.
    if end < start:
        end = start
    return TaskNode(
        id=task.id,
        project_id=task.project_id,
        title=task.title,
        start=start,
        end=end,
        status=task.status or "not_started",
        percent_complete=float(task.percent_complete or 0.0),
        budgeted_cost=task.budgeted_cost,
    )


def _actual_costs(project_ids: list[int], as_of: date) -> dict[int, tuple[float, int]]:
    """project_id → (sum of amounts, entry count) for entries on or before as_of."""
    rows = db.session.execute(
        select(
            CostEntry.project_id,
            func.coalesce(func.sum(CostEntry.amount), 0.0),
            func.count(CostEntry.id),
        )
        .where(
            CostEntry.project_id.in_(project_ids),
            CostEntry.incurred_on <= as_of,
        )
        .group_by(CostEntry.project_id)
    ).all()
    return {pid: (float(total), count) for pid, total, count in rows}


def load_snapshot(project_ids: Iterable[int], as_of: date | None = None) -> ScheduleSnapshot:
    """
    Build the "before" snapshot for the given projects.

    Args:
        project_ids: Projects in scope. Missing ids are silently skipped.
        as_of: Evaluation date (defaults to today, UTC). Open-ended
            allocations end at max(as_of, latest task end).
    """
    as_of = as_of or today_utc()
    project_ids = sorted(set(project_ids))
    if not project_ids:
        return empty_snapshot(as_of)

    projects = db.session.execute(
        select(Project).where(Project.id.in_(project_ids)).order_by(Project.id)
    ).scalars().all()
    if not projects:
        return empty_snapshot(as_of)
    project_ids = [p.id for p in projects]

    rows = db.session.execute(
        select(WorkTask)
        .where(WorkTask.project_id.in_(project_ids), WorkTask.deleted_at.is_(None))
        .order_by(WorkTask.id)
    ).scalars().all()
    tasks = tuple(_task_node(t) for t in rows if t.planned_start is not None)
    unscheduled = tuple(t.id for t in rows if t.planned_start is None)
    in_scope = {t.id for t in tasks}

    dependencies = tuple(
        DependencyEdge(
            predecessor_id=dep.predecessor_id,
            successor_id=dep.successor_id,
            dependency_type=DependencyType(dep.dependency_type or "finish_to_start"),
            lag_minutes=int(dep.lag_minutes or 0),
        )
        for dep in db.session.execute(
            select(WorkTaskDependency)
            .where(WorkTaskDependency.successor_id.in_(in_scope))
            .order_by(WorkTaskDependency.id)
        ).scalars()
        if dep.predecessor_id in in_scope
    ) if in_scope else ()

    allocations = tuple(
        AllocationSpan(
            id=a.id,
            user_id=a.user_id,
            project_id=a.project_id,
            allocation_percent=float(a.allocation_percent or 0.0),
            start_date=a.start_date,
            end_date=a.end_date,
        )
        for a in db.session.execute(
            select(ResourceAllocation)
            .where(ResourceAllocation.project_id.in_(project_ids))
            .order_by(ResourceAllocation.id)
        ).scalars()
    )

    costs = _actual_costs(project_ids, as_of)
    project_infos = tuple(
        ProjectInfo(
            id=p.id,
            name=p.name,
            budget=float(p.budget or 0.0),
            actual_cost=costs.get(p.id, (0.0, 0))[0],
            has_actuals=costs.get(p.id, (0.0, 0))[1] > 0,
            start_date=p.start_date,
            end_date=p.end_date,
            percent_complete=p.percent_complete,
        )
        for p in projects
    )

    horizon_end = max([as_of] + [t.end.date() for t in tasks])

    logger.debug(
        "Loaded snapshot: %d projects, %d tasks (%d unscheduled), %d dependencies, %d allocations",
        len(project_infos), len(tasks), len(unscheduled), len(dependencies), len(allocations),
    )
    return ScheduleSnapshot(
        as_of=as_of,
        horizon_end=horizon_end,
        projects=project_infos,
        tasks=tasks,
        dependencies=dependencies,
        allocations=allocations,
        unscheduled_task_ids=unscheduled,
    )


# ── Capacity calendar ────────────────────────────────────────────────────────


def load_capacity_calendar(
    user_ids: Iterable[int],
    default_hours: float | None = None,
) -> StaticCapacityCalendar:
    """
    DB-backed calendar for the given users.

    Users without a user_capacities row are left out, so the evaluator
    reports them as missing. A row with NULL hours_per_day uses
    DEFAULT_CAPACITY_HOURS.
    """
    user_ids = sorted(set(user_ids))
    if default_hours is None:
        default_hours = float(current_app.config.get("DEFAULT_CAPACITY_HOURS", 8.0))
    calendar = StaticCapacityCalendar()
    if not user_ids:
        return calendar

    for cap in db.session.execute(
        select(UserCapacity).where(UserCapacity.user_id.in_(user_ids))
    ).scalars():
        hours = cap.hours_per_day if cap.hours_per_day is not None else default_hours
        calendar.hours_per_day[cap.user_id] = float(hours)
        if cap.works_weekends:
            calendar.weekend_workers.add(cap.user_id)

    for exc in db.session.execute(
        select(CapacityException).where(CapacityException.user_id.in_(user_ids))
    ).scalars():
        calendar.exceptions[(exc.user_id, exc.day)] = float(exc.hours or 0.0)

    return calendar


def critical_float_tolerance() -> int:
    """CRITICAL_FLOAT_TOLERANCE_MINUTES from the app config (one day by default)."""
    return int(current_app.config.get("CRITICAL_FLOAT_TOLERANCE_MINUTES", MINUTES_PER_DAY))
