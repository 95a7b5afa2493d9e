"""
tests/test_baselines.py — Baseline capture, activation and comparison.

Covers:
    1.  Capture freezes every scheduled task with its critical flag
    2.  set_active on create deactivates the previous active baseline
    3.  activate_baseline flips the flag; exactly one active remains
    4.  Comparison: late / early / on-track per task, aggregate slip
    5.  Deleted tasks reported as task-removed, not dropped
    6.  Tasks that lost their planned start reported as task-unscheduled
    7.  Tasks added after capture listed separately
    8.  Pure comparator on a hand-built snapshot
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import CyclicDependencyError, NotFoundError, ValidationError
from app.models import db
from app.models.baseline import ScheduleBaseline
from app.models.project import WorkTask, WorkTaskDependency
from app.services import baseline_service
from app.services.baseline_service import (
    TASK_REMOVED,
    TASK_UNSCHEDULED,
    BaselineTaskRef,
    compare_baseline_tasks,
)
from app.services.critical_path import compute_critical_path
from app.services.schedule_snapshot import ProjectInfo, ScheduleSnapshot, TaskNode

DAY0 = datetime(2026, 3, 2)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


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
    """A→B (2 days each) plus a 1-day parallel task C."""
    a = _task(project, "A", 0, 2)
    b = _task(project, "B", 2, 2)
    c = _task(project, "C", 0, 1)
    db.session.add(WorkTaskDependency(predecessor_id=a.id, successor_id=b.id))
    db.session.commit()
    return a, b, c


def _active_ids(project_id):
    return [
        b.id for b in ScheduleBaseline.query.filter_by(project_id=project_id, is_active=True).all()
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Capture & activation
# ═════════════════════════════════════════════════════════════════════════════


class TestCapture:
    def test_create_freezes_tasks(self, project):
        a, b, c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "Plan v1")
        frozen = {t.task_id: t for t in baseline.tasks}
        assert set(frozen) == {a.id, b.id, c.id}
        assert frozen[a.id].is_critical
        assert frozen[b.id].is_critical
        assert not frozen[c.id].is_critical
        assert frozen[b.id].planned_end == DAY0 + timedelta(days=4)
        assert baseline.is_active is False

    def test_name_required(self, project):
        with pytest.raises(ValidationError):
            baseline_service.create_baseline(project.id, "  ")

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            baseline_service.create_baseline(999, "Plan")

    def test_cycle_stores_nothing(self, project):
        a, b, _c = _chain(project)
        db.session.add(WorkTaskDependency(predecessor_id=b.id, successor_id=a.id))
        db.session.commit()
        with pytest.raises(CyclicDependencyError):
            baseline_service.create_baseline(project.id, "Broken")
        assert ScheduleBaseline.query.count() == 0

    def test_frozen_tasks_do_not_follow_live_edits(self, project):
        a, _b, _c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "Plan v1")
        a.planned_end = DAY0 + timedelta(days=10)
        db.session.commit()
        frozen = {t.task_id: t for t in baseline.tasks}
        assert frozen[a.id].planned_end == DAY0 + timedelta(days=2)


class TestActivation:
    def test_set_active_on_create_is_exclusive(self, project):
        b1 = baseline_service.create_baseline(project.id, "B1", set_active=True)
        b2 = baseline_service.create_baseline(project.id, "B2", set_active=True)
        db.session.refresh(b1)
        assert b1.is_active is False
        assert b2.is_active is True
        assert _active_ids(project.id) == [b2.id]

    def test_activate_switches(self, project):
        b1 = baseline_service.create_baseline(project.id, "B1", set_active=True)
        b2 = baseline_service.create_baseline(project.id, "B2")
        baseline_service.activate_baseline(b1.id)
        assert _active_ids(project.id) == [b1.id]
        baseline_service.activate_baseline(b2.id)
        assert _active_ids(project.id) == [b2.id]
        assert baseline_service.get_active_baseline(project.id).id == b2.id

    def test_activate_is_idempotent(self, project):
        b1 = baseline_service.create_baseline(project.id, "B1", set_active=True)
        baseline_service.activate_baseline(b1.id)
        assert _active_ids(project.id) == [b1.id]

    def test_activate_unknown(self):
        with pytest.raises(NotFoundError):
            baseline_service.activate_baseline(999)

    def test_other_projects_untouched(self, project, portfolio):
        from app.models.project import Project
        other = Project(portfolio_id=portfolio.id, name="Other", budget=10.0)
        db.session.add(other)
        db.session.commit()
        ob = baseline_service.create_baseline(other.id, "Other B", set_active=True)
        baseline_service.create_baseline(project.id, "B1", set_active=True)
        assert _active_ids(other.id) == [ob.id]

    def test_list_baselines(self, project):
        baseline_service.create_baseline(project.id, "B1")
        baseline_service.create_baseline(project.id, "B2")
        names = {b.name for b in baseline_service.list_baselines(project.id)}
        assert names == {"B1", "B2"}


# ═════════════════════════════════════════════════════════════════════════════
# Comparison
# ═════════════════════════════════════════════════════════════════════════════


class TestCompare:
    def test_no_changes_is_on_track(self, project):
        _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1", set_active=True)
        result = baseline_service.compare_baseline(baseline.id)
        assert result["baselineId"] == baseline.id
        assert result["isActive"] is True
        assert {t["status"] for t in result["tasks"]} == {"on-track"}
        assert result["summary"]["countLate"] == 0
        assert result["summary"]["criticalPathSlipMinutes"] == 0
        assert result["summary"]["projectFinishVarianceMinutes"] == 0

    def test_slip_propagates_to_successor(self, project):
        a, b, _c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        a.planned_end = DAY0 + timedelta(days=3)
        db.session.commit()

        result = baseline_service.compare_baseline(baseline.id)
        by_id = {t["taskId"]: t for t in result["tasks"]}
        assert by_id[a.id]["status"] == "late"
        assert by_id[a.id]["endVarianceMinutes"] == 1440
        # B is pushed through the FS dependency
        assert by_id[b.id]["endVarianceMinutes"] == 1440
        assert result["summary"]["countLate"] == 2
        assert result["summary"]["maxSlipMinutes"] == 1440
        assert result["summary"]["criticalPathSlipMinutes"] == 1440

    def test_early_task(self, project):
        _a, _b, c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        c.planned_end = DAY0 + timedelta(hours=12)
        db.session.commit()
        result = baseline_service.compare_baseline(baseline.id)
        by_id = {t["taskId"]: t for t in result["tasks"]}
        assert by_id[c.id]["status"] == "early"
        assert by_id[c.id]["endVarianceMinutes"] == -720

    def test_deleted_task_is_reported_removed(self, project):
        _a, _b, c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        c.deleted_at = datetime.now(timezone.utc)
        db.session.commit()

        result = baseline_service.compare_baseline(baseline.id)
        by_id = {t["taskId"]: t for t in result["tasks"]}
        assert by_id[c.id]["status"] == TASK_REMOVED
        assert by_id[c.id]["currentEnd"] is None
        assert by_id[c.id]["endVarianceMinutes"] is None
        assert result["summary"]["countRemoved"] == 1

    def test_hard_deleted_task_is_reported_removed(self, project):
        _a, _b, c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        db.session.delete(c)
        db.session.commit()
        result = baseline_service.compare_baseline(baseline.id)
        assert result["summary"]["countRemoved"] == 1

    def test_unscheduled_task(self, project):
        _a, _b, c = _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        c.planned_start = None
        db.session.commit()
        result = baseline_service.compare_baseline(baseline.id)
        by_id = {t["taskId"]: t for t in result["tasks"]}
        assert by_id[c.id]["status"] == TASK_UNSCHEDULED

    def test_added_task(self, project):
        _chain(project)
        baseline = baseline_service.create_baseline(project.id, "B1")
        d = _task(project, "D", 1, 1)
        result = baseline_service.compare_baseline(baseline.id)
        assert result["addedTasks"] == [{"taskId": d.id, "title": "D"}]

    def test_compare_unknown(self):
        with pytest.raises(NotFoundError):
            baseline_service.compare_baseline(999)


class TestPureComparator:
    def test_critical_slip_only_counts_baseline_critical_tasks(self):
        refs = [
            BaselineTaskRef(1, "A", DAY0, DAY0 + timedelta(days=2), is_critical=True),
            BaselineTaskRef(2, "B", DAY0, DAY0 + timedelta(days=1), is_critical=False),
        ]
        snapshot = ScheduleSnapshot(
            as_of=date(2026, 3, 2),
            horizon_end=date(2026, 3, 31),
            projects=(ProjectInfo(id=1, name="P1"),),
            tasks=(
                TaskNode(1, 1, "A", DAY0, DAY0 + timedelta(days=2, hours=2)),
                TaskNode(2, 1, "B", DAY0, DAY0 + timedelta(days=1, hours=5)),
            ),
        )
        result = compare_baseline_tasks(refs, snapshot, compute_critical_path(snapshot), project_id=1)
        assert result.max_slip_minutes == 300
        assert result.critical_path_slip_minutes == 120
        assert result.project_finish_variance_minutes == 120
        assert result.count_late == 2
