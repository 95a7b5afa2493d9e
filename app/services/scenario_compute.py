"""
Scenario orchestrator — before/after simulation and diff.

Pipeline for compute_scenario(scenario_id):
    1. Load the plan and its actions (creation order); resolve the scope.
    2. Empty scope → zeroed summary + "No projects found in scope".
    3. before = load_snapshot(scope); after = apply_actions(before, actions).
    4. Critical path, capacity and earned value on both snapshots.
    5. Slip / drift per project against the active baseline when there is
       one, otherwise against the live planned finish (drift then 0).
    6. Deltas (after − before) and the list of impacted projects.
    7. Persist the ScenarioResult (overwrite) in one commit.

CyclicDependencyError and InvalidActionPayload abort the run before
anything is written; the previous result, if any, is left untouched.
The summary holds no timestamps, so identical inputs give identical output.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from app.models import db
from app.models.scenario import ScenarioPlan, ScenarioResult
from app.services.baseline_service import (
    BaselineTaskRef,
    baseline_task_refs,
    compare_baseline_tasks,
    get_active_baseline,
)
from app.services.capacity_evaluator import CapacityCalendar, CapacityResult, evaluate_capacity
from app.services.critical_path import CriticalPathResult, compute_critical_path
from app.services.earned_value import EarnedValueData, aggregate_performance, compute_earned_value
from app.services.scenario_actions import PlannedAction, apply_actions
from app.services.scenario_service import get_scenario, list_actions
from app.services.schedule_loader import (
    critical_float_tolerance,
    load_capacity_calendar,
    load_snapshot,
    resolve_project_ids,
    team_member_ids,
)
from app.services.schedule_snapshot import ScheduleSnapshot, minutes_between

logger = logging.getLogger(__name__)

EMPTY_SCOPE_WARNING = "No projects found in scope"


@dataclass(frozen=True)
class ScenarioState:
    total_capacity_hours: float = 0.0
    total_demand_hours: float = 0.0
    overallocated_days: int = 0
    overallocated_users: int = 0
    aggregate_cpi: float | None = None
    aggregate_spi: float | None = None
    critical_path_slip_minutes: int = 0
    baseline_drift_minutes: int = 0

    def to_dict(self):
        return {
            "totalCapacityHours": round(self.total_capacity_hours, 2),
            "totalDemandHours": round(self.total_demand_hours, 2),
            "overallocatedDays": self.overallocated_days,
            "overallocatedUsers": self.overallocated_users,
            "aggregateCPI": self.aggregate_cpi,
            "aggregateSPI": self.aggregate_spi,
            "criticalPathSlipMinutes": self.critical_path_slip_minutes,
            "baselineDriftMinutes": self.baseline_drift_minutes,
        }


@dataclass
class StateEvaluation:
    """Everything computed for one snapshot."""
    state: ScenarioState
    cpm: CriticalPathResult
    capacity: CapacityResult
    earned_value: dict[int, EarnedValueData] = field(default_factory=dict)


def _ratio_delta(after: float | None, before: float | None) -> float | None:
    if after is None or before is None:
        return None
    return round(after - before, 3)


def compute_deltas(before: ScenarioState, after: ScenarioState) -> dict:
    """Element-wise after − before. Positive CPI/SPI deltas are improvements."""
    return {
        "totalCapacityHoursDelta": round(after.total_capacity_hours - before.total_capacity_hours, 2),
        "totalDemandHoursDelta": round(after.total_demand_hours - before.total_demand_hours, 2),
        "overallocatedDaysDelta": after.overallocated_days - before.overallocated_days,
        "overallocatedUsersDelta": after.overallocated_users - before.overallocated_users,
        "cpiDelta": _ratio_delta(after.aggregate_cpi, before.aggregate_cpi),
        "spiDelta": _ratio_delta(after.aggregate_spi, before.aggregate_spi),
        "criticalPathSlipDelta": after.critical_path_slip_minutes - before.critical_path_slip_minutes,
        "baselineDriftDelta": after.baseline_drift_minutes - before.baseline_drift_minutes,
    }


def empty_summary() -> dict:
    state = ScenarioState()
    return {
        "before": state.to_dict(),
        "after": state.to_dict(),
        "deltas": compute_deltas(state, state),
        "impactedProjects": [],
        "overallocations": {"before": [], "after": []},
    }


# ── Per-snapshot evaluation ──────────────────────────────────────────────────


def evaluate_state(
    snapshot: ScheduleSnapshot,
    calendar: CapacityCalendar,
    baselines: dict[int, list[BaselineTaskRef]],
    reference_finishes: dict[int, datetime | None],
    tolerance_minutes: int,
) -> StateEvaluation:
    """
    Run CPM, capacity and EV over one snapshot and fold them into a state.

    Args:
        baselines: project_id → frozen tasks of its active baseline.
        reference_finishes: project_id → live planned finish, used for
            projects without an active baseline.
    """
    cpm = compute_critical_path(snapshot, tolerance_minutes)
    capacity = evaluate_capacity(snapshot, calendar)

    earned_value = {
        p.id: compute_earned_value(p, snapshot.tasks_for_project(p.id), snapshot.as_of)
        for p in snapshot.projects
    }
    cpi, spi = aggregate_performance(earned_value.values())

    slip = 0
    drift = 0
    for project in snapshot.projects:
        refs = baselines.get(project.id)
        if refs:
            comparison = compare_baseline_tasks(refs, snapshot, cpm, project_id=project.id)
            slip += comparison.critical_path_slip_minutes
            drift += comparison.project_finish_variance_minutes or 0
            continue
        reference = reference_finishes.get(project.id)
        forecast = cpm.project_finishes.get(project.id)
        if reference is not None and forecast is not None:
            slip += minutes_between(reference, forecast)

    state = ScenarioState(
        total_capacity_hours=capacity.total_capacity_hours,
        total_demand_hours=capacity.total_demand_hours,
        overallocated_days=capacity.overallocated_days,
        overallocated_users=capacity.overallocated_users,
        aggregate_cpi=cpi,
        aggregate_spi=spi,
        critical_path_slip_minutes=slip,
        baseline_drift_minutes=drift,
    )
    return StateEvaluation(state=state, cpm=cpm, capacity=capacity, earned_value=earned_value)


# ── Impacted projects ────────────────────────────────────────────────────────


def _project_impact(
    project_id: int,
    before: ScheduleSnapshot,
    after: ScheduleSnapshot,
    before_eval: StateEvaluation,
    after_eval: StateEvaluation,
) -> list[str]:
    reasons = []

    moved = sum(1 for t in before.tasks_for_project(project_id) if after.task(t.id) != t)
    if moved:
        reasons.append(f"{moved} task(s) rescheduled")

    finish_before = before_eval.cpm.project_finishes.get(project_id)
    finish_after = after_eval.cpm.project_finishes.get(project_id)
    if finish_before and finish_after and finish_before != finish_after:
        shift = minutes_between(finish_before, finish_after)
        reasons.append(f"forecast finish {shift:+d} min")

    before_critical = {t.id for t in before.tasks_for_project(project_id)} & before_eval.cpm.critical_task_ids
    after_critical = {t.id for t in after.tasks_for_project(project_id)} & after_eval.cpm.critical_task_ids
    if before_critical != after_critical:
        reasons.append("critical path membership changed")

    after_allocs = {a.id: a for a in after.allocations_for_project(project_id)}
    shifted = sum(1 for a in before.allocations_for_project(project_id) if after_allocs.get(a.id) != a)
    if shifted:
        reasons.append(f"{shifted} allocation(s) shifted")

    new_adjustments = after.capacity_adjustments[len(before.capacity_adjustments):]
    affected_users = {
        a.user_id
        for a in after_allocs.values()
        for adj in new_adjustments
        if a.user_id in adj.user_ids and a.overlaps(adj.start_date, adj.end_date, after.horizon_end)
    }
    if affected_users:
        reasons.append(f"capacity changed for {len(affected_users)} user(s)")

    budget_before = before.project(project_id).budget
    budget_after = after.project(project_id).budget
    if budget_before != budget_after:
        reasons.append(f"budget {budget_before:.2f} → {budget_after:.2f}")

    return reasons


def impacted_projects(before, after, before_eval, after_eval) -> list[dict]:
    result = []
    for project in sorted(after.projects, key=lambda p: p.id):
        reasons = _project_impact(project.id, before, after, before_eval, after_eval)
        if reasons:
            result.append({
                "projectId": project.id,
                "projectName": project.name,
                "impactSummary": "; ".join(reasons),
            })
    return result


# ── Orchestration ────────────────────────────────────────────────────────────


def _active_baselines(project_ids: list[int]) -> dict[int, list[BaselineTaskRef]]:
    refs = {}
    for pid in project_ids:
        baseline = get_active_baseline(pid)
        if baseline is not None:
            refs[pid] = baseline_task_refs(baseline)
    return refs


def _persist_result(plan: ScenarioPlan, summary: dict, warnings: list[str]) -> ScenarioResult:
    result = plan.result
    if result is None:
        result = ScenarioResult(scenario_id=plan.id)
        db.session.add(result)
        plan.result = result
    result.summary = summary
    result.warnings = list(warnings)
    result.actions_version = plan.actions_version
    result.computed_at = datetime.now(timezone.utc)
    return result


def build_summary(
    before: ScheduleSnapshot,
    actions: list[PlannedAction],
    calendar: CapacityCalendar,
    baselines: dict[int, list[BaselineTaskRef]],
    tolerance_minutes: int,
    team_resolver=None,
) -> tuple[dict, list[str]]:
    """Pure core of the pipeline: snapshot + actions → (summary, warnings)."""
    warnings: list[str] = []
    outcome = apply_actions(before, actions, team_resolver=team_resolver)
    after = outcome.snapshot

    reference_finishes = {pid: before.planned_finish(pid) for pid in before.project_ids}
    before_eval = evaluate_state(before, calendar, baselines, reference_finishes, tolerance_minutes)
    after_eval = evaluate_state(after, calendar, baselines, reference_finishes, tolerance_minutes)

    warnings.extend(outcome.warnings)
    warnings.extend(before_eval.capacity.warnings)
    for pid in before.project_ids:
        if pid not in baselines:
            warnings.append(f"No active baseline for project {pid}; baseline drift reported as 0")
    if before.unscheduled_task_ids:
        warnings.append(
            f"{len(before.unscheduled_task_ids)} task(s) without a planned start were left out"
        )

    summary = {
        "before": before_eval.state.to_dict(),
        "after": after_eval.state.to_dict(),
        "deltas": compute_deltas(before_eval.state, after_eval.state),
        "impactedProjects": impacted_projects(before, after, before_eval, after_eval),
        "overallocations": {
            "before": [e.to_dict() for e in before_eval.capacity.entries],
            "after": [e.to_dict() for e in after_eval.capacity.entries],
        },
    }
    return summary, warnings


def compute_scenario(scenario_id: int, as_of: date | None = None) -> dict:
    """
    Compute and persist a scenario's before/after comparison.

    Returns:
        {"summary": {...}, "warnings": [...]}

    Raises:
        NotFoundError: unknown scenario.
        InvalidActionPayload, CyclicDependencyError: nothing is persisted.
    """
    started = time.perf_counter()
    plan = get_scenario(scenario_id)
    actions = [
        PlannedAction(action_id=a.id, action_type=a.action_type, payload=a.payload)
        for a in list_actions(plan.id)
    ]

    try:
        project_ids = resolve_project_ids(plan.scope_type, plan.scope_id)
        before = load_snapshot(project_ids, as_of)
        if before.is_empty:
            summary, warnings = empty_summary(), [EMPTY_SCOPE_WARNING]
        else:
            users = {a.user_id for a in before.allocations}
            summary, warnings = build_summary(
                before,
                actions,
                load_capacity_calendar(users),
                _active_baselines(before.project_ids),
                critical_float_tolerance(),
                team_resolver=team_member_ids,
            )
        _persist_result(plan, summary, warnings)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        "Scenario computed id=%s actions=%d projects=%d tasks=%d in %.1fms",
        plan.id, len(actions), len(before.projects), len(before.tasks), elapsed_ms,
        extra={
            "scenario_id": plan.id,
            "action_count": len(actions),
            "project_count": len(before.projects),
            "task_count": len(before.tasks),
            "elapsed_ms": elapsed_ms,
        },
    )
    return {
        "summary": {**summary, "lifecycle": plan.lifecycle_state},
        "warnings": warnings,
    }
