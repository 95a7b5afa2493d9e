"""
Scenario action applicator — replays hypothetical edits over a ScheduleSnapshot.

Action types and payloads (camelCase keys; snake_case is accepted too):

    shift_project    {projectId, shiftDays}
    shift_task       {taskId, shiftDays | newStart}
    change_capacity  {userId | teamId, deltaPercent, dateRange: {start, end}}
    change_budget    {projectId, deltaAmount | newBudget}

Rules:
    - Actions are applied in the order given (creation order); when two
      actions touch the same node the later one wins.
    - Shifts move the targeted tasks only. Successors are not pre-shifted;
      the critical path recomputation propagates the slip.
    - shift_project also moves the project's own dates and its resource
      allocations.
    - shiftDays is bounded by MAX_SHIFT_DAYS and budgets by MAX_BUDGET; a
      shift that leaves the calendar range is rejected like a bad payload.
    - Any unknown type, malformed payload or out-of-scope target raises
      InvalidActionPayload. Nothing is returned on failure and the input
      snapshot is never modified.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum

from app.core.exceptions import InvalidActionPayload
from app.services.schedule_snapshot import CapacityAdjustment, ScheduleSnapshot
from app.utils.helpers import parse_date_input, parse_datetime_input

logger = logging.getLogger(__name__)

MAX_SHIFT_DAYS = 3650
MAX_BUDGET = 1e15


class ActionType(str, Enum):
    SHIFT_PROJECT = "shift_project"
    SHIFT_TASK = "shift_task"
    CHANGE_CAPACITY = "change_capacity"
    CHANGE_BUDGET = "change_budget"


# ── Payload variants ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ShiftProjectPayload:
    project_id: int
    shift_days: int


@dataclass(frozen=True)
class ShiftTaskPayload:
    task_id: int
    shift_days: int | None = None
    new_start: datetime | None = None


@dataclass(frozen=True)
class ChangeCapacityPayload:
    delta_percent: float
    start_date: date
    end_date: date
    user_id: int | None = None
    team_id: int | None = None


@dataclass(frozen=True)
class ChangeBudgetPayload:
    project_id: int
    delta_amount: float | None = None
    new_budget: float | None = None


ActionPayload = ShiftProjectPayload | ShiftTaskPayload | ChangeCapacityPayload | ChangeBudgetPayload


@dataclass(frozen=True)
class PlannedAction:
    """A stored action as handed to the applicator."""
    action_id: int | None
    action_type: str
    payload: dict


@dataclass
class ApplyOutcome:
    snapshot: ScheduleSnapshot
    warnings: list[str] = field(default_factory=list)


# ── Parsing ──────────────────────────────────────────────────────────────────


_MISSING = object()


def _get(payload: dict, camel: str, snake: str):
    if camel in payload:
        return payload[camel]
    return payload.get(snake, _MISSING)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_int(payload: dict, camel: str, snake: str, action_id) -> int:
    value = _get(payload, camel, snake)
    if value is _MISSING or value is None:
        raise InvalidActionPayload(action_id, f"{camel} is required")
    if not _is_int(value):
        raise InvalidActionPayload(action_id, f"{camel} must be an integer")
    return value


def _optional_int(payload: dict, camel: str, snake: str, action_id) -> int | None:
    value = _get(payload, camel, snake)
    if value is _MISSING or value is None:
        return None
    if not _is_int(value):
        raise InvalidActionPayload(action_id, f"{camel} must be an integer")
    return value


def _optional_number(payload: dict, camel: str, snake: str, action_id) -> float | None:
    value = _get(payload, camel, snake)
    if value is _MISSING or value is None:
        return None
    if not _is_number(value):
        raise InvalidActionPayload(action_id, f"{camel} must be a number")
    return float(value)


def _check_shift_days(shift_days: int | None, action_id) -> int | None:
    if shift_days is not None and abs(shift_days) > MAX_SHIFT_DAYS:
        raise InvalidActionPayload(
            action_id, f"shiftDays must be between -{MAX_SHIFT_DAYS} and {MAX_SHIFT_DAYS}"
        )
    return shift_days


def _check_amount(value: float | None, camel: str, action_id) -> float | None:
    if value is not None and abs(value) > MAX_BUDGET:
        raise InvalidActionPayload(action_id, f"{camel} exceeds the supported range")
    return value


def _parse_shift_project(payload: dict, action_id) -> ShiftProjectPayload:
    project_id = _require_int(payload, "projectId", "project_id", action_id)
    shift_days = _require_int(payload, "shiftDays", "shift_days", action_id)
    return ShiftProjectPayload(
        project_id=project_id,
        shift_days=_check_shift_days(shift_days, action_id),
    )


def _parse_shift_task(payload: dict, action_id) -> ShiftTaskPayload:
    task_id = _require_int(payload, "taskId", "task_id", action_id)
    shift_days = _check_shift_days(
        _optional_int(payload, "shiftDays", "shift_days", action_id), action_id,
    )
    raw_start = _get(payload, "newStart", "new_start")
    new_start = None
    if raw_start is not _MISSING and raw_start is not None:
        try:
            new_start = parse_datetime_input(raw_start)
        except ValueError:
            raise InvalidActionPayload(action_id, "newStart must be an ISO datetime") from None
    if (shift_days is None) == (new_start is None):
        raise InvalidActionPayload(action_id, "exactly one of shiftDays or newStart is required")
    return ShiftTaskPayload(task_id=task_id, shift_days=shift_days, new_start=new_start)


def _parse_change_capacity(payload: dict, action_id) -> ChangeCapacityPayload:
    user_id = _optional_int(payload, "userId", "user_id", action_id)
    team_id = _optional_int(payload, "teamId", "team_id", action_id)
    if (user_id is None) == (team_id is None):
        raise InvalidActionPayload(action_id, "exactly one of userId or teamId is required")

    delta = _optional_number(payload, "deltaPercent", "delta_percent", action_id)
    if delta is None:
        raise InvalidActionPayload(action_id, "deltaPercent is required")

    date_range = _get(payload, "dateRange", "date_range")
    if not isinstance(date_range, dict):
        raise InvalidActionPayload(action_id, "dateRange {start, end} is required")
    try:
        start = parse_date_input(date_range.get("start"))
        end = parse_date_input(date_range.get("end"))
    except ValueError:
        raise InvalidActionPayload(action_id, "dateRange dates must be YYYY-MM-DD") from None
    if start is None or end is None:
        raise InvalidActionPayload(action_id, "dateRange requires both start and end")
    if end < start:
        raise InvalidActionPayload(action_id, "dateRange end is before start")

    return ChangeCapacityPayload(
        delta_percent=delta,
        start_date=start,
        end_date=end,
        user_id=user_id,
        team_id=team_id,
    )


def _parse_change_budget(payload: dict, action_id) -> ChangeBudgetPayload:
    project_id = _require_int(payload, "projectId", "project_id", action_id)
    delta = _check_amount(
        _optional_number(payload, "deltaAmount", "delta_amount", action_id), "deltaAmount", action_id,
    )
    new_budget = _check_amount(
        _optional_number(payload, "newBudget", "new_budget", action_id), "newBudget", action_id,
    )
    if (delta is None) == (new_budget is None):
        raise InvalidActionPayload(action_id, "exactly one of deltaAmount or newBudget is required")
    if new_budget is not None and new_budget < 0:
        raise InvalidActionPayload(action_id, "newBudget cannot be negative")
    return ChangeBudgetPayload(project_id=project_id, delta_amount=delta, new_budget=new_budget)


_PARSERS = {
    ActionType.SHIFT_PROJECT: _parse_shift_project,
    ActionType.SHIFT_TASK: _parse_shift_task,
    ActionType.CHANGE_CAPACITY: _parse_change_capacity,
    ActionType.CHANGE_BUDGET: _parse_change_budget,
}


def parse_payload(action_type: str, payload, action_id: int | None = None) -> ActionPayload:
    """Validate a raw payload for its action type. Raises InvalidActionPayload."""
    try:
        kind = ActionType(action_type)
    except ValueError:
        raise InvalidActionPayload(action_id, f"Unknown action type: {action_type!r}") from None
    if not isinstance(payload, dict):
        raise InvalidActionPayload(action_id, "payload must be a JSON object")
    return _PARSERS[kind](payload, action_id)


# ── Application ──────────────────────────────────────────────────────────────


def _out_of_range(action_id) -> InvalidActionPayload:
    return InvalidActionPayload(action_id, "Shift moves dates outside the supported calendar range")


def _shift_project(snapshot, p: ShiftProjectPayload, action_id, team_resolver, warnings):
    project = snapshot.project(p.project_id)
    if project is None:
        raise InvalidActionPayload(action_id, f"Project {p.project_id} is not in scenario scope")
    delta = timedelta(days=p.shift_days)
    try:
        tasks = {t.id: t.shifted(delta) for t in snapshot.tasks_for_project(p.project_id)}
        allocations = {a.id: a.shifted(delta) for a in snapshot.allocations_for_project(p.project_id)}
        moved = replace(
            project,
            start_date=project.start_date + delta if project.start_date else None,
            end_date=project.end_date + delta if project.end_date else None,
        )
    except OverflowError:
        raise _out_of_range(action_id) from None
    return snapshot.with_changes(tasks=tasks, allocations=allocations, projects={moved.id: moved})


def _shift_task(snapshot, p: ShiftTaskPayload, action_id, team_resolver, warnings):
    task = snapshot.task(p.task_id)
    if task is None:
        raise InvalidActionPayload(action_id, f"Task {p.task_id} is not in scenario scope")
    try:
        if p.new_start is not None:
            delta = p.new_start - task.start
        else:
            delta = timedelta(days=p.shift_days)
        moved = task.shifted(delta)
    except OverflowError:
        raise _out_of_range(action_id) from None
    return snapshot.with_changes(tasks={task.id: moved})


def _change_capacity(snapshot, p: ChangeCapacityPayload, action_id, team_resolver, warnings):
    if p.user_id is not None:
        user_ids = frozenset({p.user_id})
    else:
        if team_resolver is None:
            raise InvalidActionPayload(action_id, "teamId cannot be resolved in this context")
        user_ids = frozenset(team_resolver(p.team_id))
        if not user_ids:
            raise InvalidActionPayload(action_id, f"Team {p.team_id} has no members")

    affects = any(
        a.user_id in user_ids and a.overlaps(p.start_date, p.end_date, snapshot.horizon_end)
        for a in snapshot.allocations
    )
    if not affects:
        warnings.append(
            f"Capacity change action {action_id} had no in-range allocations to affect"
        )

    adjustment = CapacityAdjustment(
        user_ids=user_ids,
        delta_percent=p.delta_percent,
        start_date=p.start_date,
        end_date=p.end_date,
        action_id=action_id,
    )
    return snapshot.with_changes(
        capacity_adjustments=snapshot.capacity_adjustments + (adjustment,),
    )


def _change_budget(snapshot, p: ChangeBudgetPayload, action_id, team_resolver, warnings):
    project = snapshot.project(p.project_id)
    if project is None:
        raise InvalidActionPayload(action_id, f"Project {p.project_id} is not in scenario scope")
    if p.new_budget is not None:
        budget = p.new_budget
    else:
        budget = project.budget + p.delta_amount
    if budget < 0:
        raise InvalidActionPayload(action_id, f"Budget of project {p.project_id} would become negative")
    if not math.isfinite(budget) or budget > MAX_BUDGET:
        raise InvalidActionPayload(action_id, f"Budget of project {p.project_id} exceeds the supported range")
    return snapshot.with_changes(projects={project.id: replace(project, budget=budget)})


_APPLIERS = {
    ShiftProjectPayload: _shift_project,
    ShiftTaskPayload: _shift_task,
    ChangeCapacityPayload: _change_capacity,
    ChangeBudgetPayload: _change_budget,
}


def apply_actions(
    snapshot: ScheduleSnapshot,
    actions: Iterable[PlannedAction],
    team_resolver: Callable[[int], Iterable[int]] | None = None,
) -> ApplyOutcome:
    """
    Derive the "after" snapshot by replaying actions in order.

    Args:
        snapshot: The "before" snapshot. Never modified.
        actions: Actions in creation order.
        team_resolver: team_id → member user ids, needed for teamId
            capacity changes.

    Raises:
        InvalidActionPayload: on the first bad action; nothing is applied.
    """
    current = snapshot
    warnings: list[str] = []
    count = 0
    for action in actions:
        parsed = parse_payload(action.action_type, action.payload, action.action_id)
        current = _APPLIERS[type(parsed)](current, parsed, action.action_id, team_resolver, warnings)
        count += 1
    logger.debug("Applied %d scenario actions (%d warnings)", count, len(warnings))
    return ApplyOutcome(snapshot=current, warnings=warnings)
