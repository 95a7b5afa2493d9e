"""
Schedule snapshot — immutable in-memory view of a project/portfolio schedule.

A ScheduleSnapshot is built fresh for every computation (see
schedule_loader.load_snapshot) and discarded afterwards. Everything in it is
frozen: the "after" snapshot of a scenario is derived with
``dataclasses.replace`` and shares every untouched TaskNode / AllocationSpan
with the "before" snapshot.

Tasks are addressed by their integer id; graph algorithms build their own
index-based adjacency lists from ``dependencies``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from functools import cached_property
from typing import Iterator

MINUTES_PER_DAY = 24 * 60


class DependencyType(str, Enum):
    FINISH_TO_START = "finish_to_start"
    START_TO_START = "start_to_start"
    FINISH_TO_FINISH = "finish_to_finish"
    START_TO_FINISH = "start_to_finish"


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (negative when end is earlier)."""
    return int(round((end - start).total_seconds() / 60))


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in [start, end]."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


@dataclass(frozen=True)
class TaskNode:
    id: int
    project_id: int
    title: str
    start: datetime
    end: datetime
    status: str = "not_started"
    percent_complete: float = 0.0
    budgeted_cost: float | None = None

    @property
    def duration_minutes(self) -> int:
        return max(0, minutes_between(self.start, self.end))

    def shifted(self, delta: timedelta) -> TaskNode:
        return replace(self, start=self.start + delta, end=self.end + delta)


@dataclass(frozen=True)
class DependencyEdge:
    predecessor_id: int
    successor_id: int
    dependency_type: DependencyType = DependencyType.FINISH_TO_START
    lag_minutes: int = 0


@dataclass(frozen=True)
class AllocationSpan:
    """User allocation; end_date None means open-ended."""
    id: int
    user_id: int
    project_id: int
    allocation_percent: float
    start_date: date
    end_date: date | None = None

    def effective_end(self, horizon_end: date) -> date:
        return self.end_date if self.end_date is not None else horizon_end

    def overlaps(self, start: date, end: date, horizon_end: date) -> bool:
        return self.start_date <= end and self.effective_end(horizon_end) >= start

    def shifted(self, delta: timedelta) -> AllocationSpan:
        return replace(
            self,
            start_date=self.start_date + delta,
            end_date=self.end_date + delta if self.end_date is not None else None,
        )


@dataclass(frozen=True)
class ProjectInfo:
    id: int
    name: str
    budget: float = 0.0
    actual_cost: float = 0.0
    has_actuals: bool = False
    start_date: date | None = None
    end_date: date | None = None
    percent_complete: float | None = None


@dataclass(frozen=True)
class CapacityAdjustment:
    """Effective-capacity change produced by a change_capacity action."""
    user_ids: frozenset[int]
    delta_percent: float
    start_date: date
    end_date: date
    action_id: int | None = None

    def applies_to(self, user_id: int, day: date) -> bool:
        return user_id in self.user_ids and self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class ScheduleSnapshot:
    as_of: date
    horizon_end: date
    projects: tuple[ProjectInfo, ...] = ()
    tasks: tuple[TaskNode, ...] = ()
    dependencies: tuple[DependencyEdge, ...] = ()
    allocations: tuple[AllocationSpan, ...] = ()
    capacity_adjustments: tuple[CapacityAdjustment, ...] = ()
    unscheduled_task_ids: tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.projects

    @cached_property
    def _task_by_id(self) -> dict[int, TaskNode]:
        return {t.id: t for t in self.tasks}

    @cached_property
    def _project_by_id(self) -> dict[int, ProjectInfo]:
        return {p.id: p for p in self.projects}

    @property
    def project_ids(self) -> list[int]:
        return [p.id for p in self.projects]

    def task(self, task_id: int) -> TaskNode | None:
        return self._task_by_id.get(task_id)

    def project(self, project_id: int) -> ProjectInfo | None:
        return self._project_by_id.get(project_id)

    def tasks_for_project(self, project_id: int) -> list[TaskNode]:
        return [t for t in self.tasks if t.project_id == project_id]

    def allocations_for_project(self, project_id: int) -> list[AllocationSpan]:
        return [a for a in self.allocations if a.project_id == project_id]

    def planned_finish(self, project_id: int) -> datetime | None:
        """Latest planned task end, falling back to the project's end date."""
        ends = [t.end for t in self.tasks if t.project_id == project_id]
        if ends:
            return max(ends)
        project = self.project(project_id)
        if project is not None and project.end_date is not None:
            return datetime.combine(project.end_date, datetime.min.time())
        return None

    def with_changes(
        self,
        *,
        tasks: dict[int, TaskNode] | None = None,
        allocations: dict[int, AllocationSpan] | None = None,
        projects: dict[int, ProjectInfo] | None = None,
        capacity_adjustments: tuple[CapacityAdjustment, ...] | None = None,
    ) -> ScheduleSnapshot:
        """Return a new snapshot with the given nodes swapped in by id.

        Untouched nodes are shared with self; self is never modified.
        """
        changes = {}
        if tasks:
            changes["tasks"] = tuple(tasks.get(t.id, t) for t in self.tasks)
        if allocations:
            changes["allocations"] = tuple(allocations.get(a.id, a) for a in self.allocations)
        if projects:
            changes["projects"] = tuple(projects.get(p.id, p) for p in self.projects)
        if capacity_adjustments is not None:
            changes["capacity_adjustments"] = capacity_adjustments
        return replace(self, **changes) if changes else self


def empty_snapshot(as_of: date) -> ScheduleSnapshot:
    return ScheduleSnapshot(as_of=as_of, horizon_end=as_of)

