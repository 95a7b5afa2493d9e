"""
tests/test_scenario_compute.py — End-to-end scenario computation.

Covers:
    1.  Capacity change removes an overallocation (before/after/deltas)
    2.  shift_project +7 days gives a +7×1440 min critical path slip delta
    3.  Slip and drift measured against the active baseline
    4.  Determinism: two computes yield identical summaries
    5.  Non-mutation: live task dates are untouched
    6.  Cycles and bad actions persist nothing
    7.  Empty scope: zeroed summary + warning
    8.  Lifecycle: computed after compute, draft after an action edit
    9.  Missing capacity data and out-of-range capacity changes are warnings
"""

import json
from datetime import date, datetime, timedelta

import pytest

from app.core.exceptions import CyclicDependencyError, InvalidActionPayload, NotFoundError
from app.models import db
from app.models.project import Portfolio, Project, WorkTask, WorkTaskDependency
from app.models.resource import ResourceAllocation, TeamMember, UserCapacity
from app.models.scenario import ScenarioResult
from app.services import baseline_service, scenario_service
from app.services.scenario_compute import EMPTY_SCOPE_WARNING, compute_scenario

DAY0 = datetime(2026, 3, 2)
MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
FRIDAY = date(2026, 3, 6)
AS_OF = date(2026, 3, 2)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _second_project(portfolio):
    p = Project(portfolio_id=portfolio.id, name="Second Project", budget=500.0)
    db.session.add(p)
    db.session.commit()
    return p


def _task(project, title, start_day, days):
    t = WorkTask(
        project_id=project.id,
        title=title,
        planned_start=DAY0 + timedelta(days=start_day),
        planned_end=DAY0 + timedelta(days=start_day + days),
    )
    db.session.add(t)
    db.session.commit()
    return t


def _chain(project):
    a = _task(project, "A", 0, 2)
    b = _task(project, "B", 2, 3)
    db.session.add(WorkTaskDependency(predecessor_id=a.id, successor_id=b.id))
    db.session.commit()
    return a, b


def _allocate(user_id, project, pct, start, end):
    db.session.add(ResourceAllocation(
        user_id=user_id, project_id=project.id,
        allocation_percent=pct, start_date=start, end_date=end,
    ))
    db.session.commit()


def _capacity(user_id, hours=8.0):
    db.session.add(UserCapacity(user_id=user_id, hours_per_day=hours))
    db.session.commit()


def _scenario(scope_type, scope_id, name="What if"):
    return scenario_service.create_scenario({
        "name": name, "scope_type": scope_type, "scope_id": scope_id,
    })


def _overbooked_portfolio(portfolio, project):
    """User 1: 40 % on project Mon-Fri plus 100 % on a second project Mon-Tue."""
    second = _second_project(portfolio)
    _capacity(1)
    _allocate(1, project, 40.0, MONDAY, FRIDAY)
    _allocate(1, second, 100.0, MONDAY, TUESDAY)
    return second


# ═════════════════════════════════════════════════════════════════════════════
# Capacity
# ═════════════════════════════════════════════════════════════════════════════


class TestCapacityScenario:
    def test_capacity_change_clears_overallocation(self, portfolio, project):
        _overbooked_portfolio(portfolio, project)
        plan = _scenario("portfolio", portfolio.id)
        scenario_service.add_action(plan.id, "change_capacity", {
            "userId": 1, "deltaPercent": 50,
            "dateRange": {"start": "2026-03-02", "end": "2026-03-03"},
        })

        result = compute_scenario(plan.id, AS_OF)
        summary = result["summary"]
        assert summary["before"]["totalCapacityHours"] == 40.0
        assert summary["before"]["totalDemandHours"] == 32.0
        assert summary["before"]["overallocatedDays"] == 2
        assert summary["before"]["overallocatedUsers"] == 1
        assert summary["after"]["overallocatedDays"] == 0
        assert summary["after"]["overallocatedUsers"] == 0
        assert summary["deltas"]["overallocatedDaysDelta"] == -2
        assert summary["deltas"]["overallocatedUsersDelta"] == -1
        assert summary["deltas"]["totalCapacityHoursDelta"] == 8.0
        assert len(summary["overallocations"]["before"]) == 2
        assert summary["overallocations"]["after"] == []

    def test_impacted_projects_for_capacity_change(self, portfolio, project):
        second = _overbooked_portfolio(portfolio, project)
        plan = _scenario("portfolio", portfolio.id)
        scenario_service.add_action(plan.id, "change_capacity", {
            "userId": 1, "deltaPercent": 50,
            "dateRange": {"start": "2026-03-02", "end": "2026-03-03"},
        })
        impacted = compute_scenario(plan.id, AS_OF)["summary"]["impactedProjects"]
        assert [p["projectId"] for p in impacted] == [project.id, second.id]
        assert "capacity changed for 1 user(s)" in impacted[0]["impactSummary"]

    def test_team_capacity_change(self, portfolio, project):
        _overbooked_portfolio(portfolio, project)
        db.session.add(TeamMember(team_id=5, user_id=1))
        db.session.commit()
        plan = _scenario("portfolio", portfolio.id)
        scenario_service.add_action(plan.id, "change_capacity", {
            "teamId": 5, "deltaPercent": 50,
            "dateRange": {"start": "2026-03-02", "end": "2026-03-03"},
        })
        summary = compute_scenario(plan.id, AS_OF)["summary"]
        assert summary["after"]["overallocatedDays"] == 0

    def test_missing_capacity_data_warns(self, project):
        _allocate(7, project, 75.0, MONDAY, MONDAY)
        plan = _scenario("project", project.id)
        result = compute_scenario(plan.id, AS_OF)
        assert "No capacity data for user 7; excluded from capacity totals" in result["warnings"]
        assert result["summary"]["before"]["totalDemandHours"] == 0.0

    def test_out_of_range_capacity_change_warns(self, portfolio, project):
        _overbooked_portfolio(portfolio, project)
        plan = _scenario("portfolio", portfolio.id)
        action = scenario_service.add_action(plan.id, "change_capacity", {
            "userId": 1, "deltaPercent": 50,
            "dateRange": {"start": "2026-05-01", "end": "2026-05-02"},
        })
        result = compute_scenario(plan.id, AS_OF)
        assert (
            f"Capacity change action {action.id} had no in-range allocations to affect"
            in result["warnings"]
        )
        assert result["summary"]["deltas"]["overallocatedDaysDelta"] == 0


# ═════════════════════════════════════════════════════════════════════════════
# Schedule slip
# ═════════════════════════════════════════════════════════════════════════════


class TestScheduleScenario:
    def test_shift_project_slip_sign(self, project):
        _chain(project)
        plan = _scenario("project", project.id)
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 7})

        summary = compute_scenario(plan.id, AS_OF)["summary"]
        assert summary["before"]["criticalPathSlipMinutes"] == 0
        assert summary["after"]["criticalPathSlipMinutes"] == 7 * 1440
        assert summary["deltas"]["criticalPathSlipDelta"] == 7 * 1440
        assert summary["deltas"]["baselineDriftDelta"] == 0

    def test_slip_against_active_baseline(self, project):
        _chain(project)
        baseline_service.create_baseline(project.id, "Plan", set_active=True)
        plan = _scenario("project", project.id)
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 7})

        result = compute_scenario(plan.id, AS_OF)
        summary = result["summary"]
        assert summary["after"]["criticalPathSlipMinutes"] == 7 * 1440
        assert summary["after"]["baselineDriftMinutes"] == 7 * 1440
        assert summary["deltas"]["baselineDriftDelta"] == 7 * 1440
        assert not any("No active baseline" in w for w in result["warnings"])

    def test_task_shift_propagates_through_dependency(self, project):
        a, _b = _chain(project)
        plan = _scenario("project", project.id)
        scenario_service.add_action(plan.id, "shift_task", {"taskId": a.id, "shiftDays": 1})
        summary = compute_scenario(plan.id, AS_OF)["summary"]
        assert summary["deltas"]["criticalPathSlipDelta"] == 1440
        impacted = summary["impactedProjects"]
        assert impacted[0]["projectId"] == project.id
        assert "1 task(s) rescheduled" in impacted[0]["impactSummary"]

    def test_no_baseline_warning(self, project):
        _chain(project)
        plan = _scenario("project", project.id)
        result = compute_scenario(plan.id, AS_OF)
        assert (
            f"No active baseline for project {project.id}; baseline drift reported as 0"
            in result["warnings"]
        )

    def test_live_data_not_mutated(self, project):
        a, b = _chain(project)
        plan = _scenario("project", project.id)
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 7})
        compute_scenario(plan.id, AS_OF)
        db.session.expire_all()
        assert db.session.get(WorkTask, a.id).planned_start == DAY0
        assert db.session.get(WorkTask, b.id).planned_end == DAY0 + timedelta(days=5)

    def test_budget_change_moves_cpi_not_schedule(self, project):
        t = _task(project, "A", 0, 2)
        t.percent_complete = 50.0
        db.session.commit()
        plan = _scenario("project", project.id)
        scenario_service.add_action(plan.id, "change_budget", {"projectId": project.id, "newBudget": 2000})
        summary = compute_scenario(plan.id, AS_OF)["summary"]
        # as of Monday: PV 500 → 1000, EV 500 → 1000
        assert summary["before"]["aggregateSPI"] == 1.0
        assert summary["after"]["aggregateSPI"] == 1.0
        assert summary["before"]["aggregateCPI"] is None
        assert summary["deltas"]["cpiDelta"] is None
        assert summary["deltas"]["spiDelta"] == 0.0
        assert summary["deltas"]["criticalPathSlipDelta"] == 0
        assert "budget 1000.00 → 2000.00" in summary["impactedProjects"][0]["impactSummary"]


# ═════════════════════════════════════════════════════════════════════════════
# Determinism, failures, lifecycle
# ═════════════════════════════════════════════════════════════════════════════


class TestComputeContract:
    def test_deterministic(self, portfolio, project):
        _chain(project)
        _overbooked_portfolio(portfolio, project)
        plan = _scenario("portfolio", portfolio.id)
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 3})

        first = compute_scenario(plan.id, AS_OF)
        second = compute_scenario(plan.id, AS_OF)
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_result_is_overwritten(self, project):
        _chain(project)
        plan = _scenario("project", project.id)
        compute_scenario(plan.id, AS_OF)
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 2})
        compute_scenario(plan.id, AS_OF)
        assert ScenarioResult.query.filter_by(scenario_id=plan.id).count() == 1
        stored = ScenarioResult.query.filter_by(scenario_id=plan.id).first()
        assert stored.summary["deltas"]["criticalPathSlipDelta"] == 2 * 1440

    def test_cycle_persists_nothing(self, project):
        a, b = _chain(project)
        c = _task(project, "C", 5, 1)
        db.session.add(WorkTaskDependency(predecessor_id=b.id, successor_id=c.id))
        db.session.add(WorkTaskDependency(predecessor_id=c.id, successor_id=a.id))
        db.session.commit()
        plan = _scenario("project", project.id)

        with pytest.raises(CyclicDependencyError):
            compute_scenario(plan.id, AS_OF)
        assert ScenarioResult.query.count() == 0

    def test_failure_keeps_previous_result(self, project):
        _chain(project)
        plan = _scenario("project", project.id)
        compute_scenario(plan.id, AS_OF)
        scenario_service.add_action(plan.id, "shift_task", {"taskId": 99999, "shiftDays": 1})

        with pytest.raises(InvalidActionPayload):
            compute_scenario(plan.id, AS_OF)
        stored = ScenarioResult.query.filter_by(scenario_id=plan.id).one()
        assert stored.summary["deltas"]["criticalPathSlipDelta"] == 0

    def test_empty_scope(self):
        empty = Portfolio(name="Empty")
        db.session.add(empty)
        db.session.commit()
        plan = _scenario("portfolio", empty.id)
        result = compute_scenario(plan.id, AS_OF)
        assert result["warnings"] == [EMPTY_SCOPE_WARNING]
        assert result["summary"]["before"]["overallocatedDays"] == 0
        assert result["summary"]["before"]["aggregateCPI"] is None
        assert result["summary"]["impactedProjects"] == []

    def test_lifecycle(self, project):
        plan = _scenario("project", project.id)
        assert plan.lifecycle_state == "draft"
        result = compute_scenario(plan.id, AS_OF)
        assert result["summary"]["lifecycle"] == "computed"
        scenario_service.add_action(plan.id, "shift_project", {"projectId": project.id, "shiftDays": 1})
        assert scenario_service.get_scenario(plan.id).lifecycle_state == "draft"

    def test_unknown_scenario(self):
        with pytest.raises(NotFoundError):
            compute_scenario(999, AS_OF)
