"""
tests/test_critical_path.py — Forward/backward pass, float and cycle detection.

Covers:
    1.  Linear FS chain: every task has zero float and is critical
    2.  Parallel short task gets positive float and is not critical
    3.  Critical edges follow the driving dependencies
    4.  Lag delays the successor
    5.  SS / FF / SF dependency types, with floats for SS and SF
    6.  Cycle raises CyclicDependencyError naming an edge on the cycle
    7.  Tolerance: float below one day still counts as critical
    8.  Empty snapshot gives an empty result

Pure engine tests: snapshots are built in memory, no database rows.
"""

from datetime import date, datetime, timedelta

import pytest

from app.core.exceptions import CyclicDependencyError
from app.services.critical_path import compute_critical_path
from app.services.schedule_snapshot import (
    MINUTES_PER_DAY,
    DependencyEdge,
    DependencyType,
    ProjectInfo,
    ScheduleSnapshot,
    TaskNode,
)

DAY0 = datetime(2026, 3, 2)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _task(task_id, start_day, days, project_id=1):
    start = DAY0 + timedelta(days=start_day)
    return TaskNode(
        id=task_id,
        project_id=project_id,
        title=f"Task {task_id}",
        start=start,
        end=start + timedelta(days=days),
    )


def _dep(pred, succ, kind=DependencyType.FINISH_TO_START, lag_minutes=0):
    return DependencyEdge(pred, succ, kind, lag_minutes)


def _snapshot(tasks, deps=()):
    return ScheduleSnapshot(
        as_of=date(2026, 3, 2),
        horizon_end=date(2026, 6, 30),
        projects=(ProjectInfo(id=1, name="P1", budget=1000.0),),
        tasks=tuple(tasks),
        dependencies=tuple(deps),
    )


def _chain_with_parallel():
    """A→B→C (5 days each) plus D (2 days) starting with A."""
    tasks = [_task(1, 0, 5), _task(2, 5, 5), _task(3, 10, 5), _task(4, 0, 2)]
    deps = [_dep(1, 2), _dep(2, 3)]
    return _snapshot(tasks, deps)


# ═════════════════════════════════════════════════════════════════════════════
# Floats
# ═════════════════════════════════════════════════════════════════════════════


class TestFloats:
    def test_linear_chain_is_critical(self):
        result = compute_critical_path(_chain_with_parallel())
        for tid in (1, 2, 3):
            assert result.timings[tid].total_float_minutes == 0
            assert result.timings[tid].is_critical
        assert {1, 2, 3} <= result.critical_task_ids

    def test_parallel_task_has_float(self):
        result = compute_critical_path(_chain_with_parallel())
        d = result.timings[4]
        assert d.total_float_minutes == 13 * MINUTES_PER_DAY
        assert d.free_float_minutes == 13 * MINUTES_PER_DAY
        assert not d.is_critical
        assert 4 not in result.critical_task_ids

    def test_duration_and_finish(self):
        result = compute_critical_path(_chain_with_parallel())
        assert result.duration_minutes == 15 * MINUTES_PER_DAY
        assert result.finish == DAY0 + timedelta(days=15)
        assert result.project_finishes[1] == DAY0 + timedelta(days=15)
        assert result.forecast_end(3) == DAY0 + timedelta(days=15)
        assert result.forecast_end(999) is None

    def test_critical_edges(self):
        result = compute_critical_path(_chain_with_parallel())
        assert result.critical_edges == ((1, 2), (2, 3))

    def test_float_under_one_day_is_critical(self):
        # D ends 12h before C: float 720 min < 1440 tolerance
        tasks = [_task(1, 0, 2), _task(2, 0, 1.5)]
        result = compute_critical_path(_snapshot(tasks))
        assert result.timings[2].total_float_minutes == 720
        assert result.timings[2].is_critical

    def test_custom_tolerance(self):
        tasks = [_task(1, 0, 2), _task(2, 0, 1.5)]
        result = compute_critical_path(_snapshot(tasks), tolerance_minutes=60)
        assert not result.timings[2].is_critical

    def test_to_dict_is_camel_case(self):
        body = compute_critical_path(_chain_with_parallel()).to_dict()
        assert body["criticalTaskIds"] == [1, 2, 3]
        assert body["tasks"][0]["taskId"] == 1
        assert "totalFloatMinutes" in body["tasks"][0]


# ═════════════════════════════════════════════════════════════════════════════
# Dependency types and lag
# ═════════════════════════════════════════════════════════════════════════════


class TestDependencyTypes:
    def test_lag_pushes_successor(self):
        tasks = [_task(1, 0, 2), _task(2, 0, 1)]
        deps = [_dep(1, 2, lag_minutes=MINUTES_PER_DAY)]
        result = compute_critical_path(_snapshot(tasks, deps))
        assert result.timings[2].early_start == DAY0 + timedelta(days=3)
        assert result.timings[2].early_finish == DAY0 + timedelta(days=4)

    def test_planned_start_is_respected(self):
        # Successor planned later than the predecessor finish keeps its own start
        tasks = [_task(1, 0, 1), _task(2, 3, 1)]
        result = compute_critical_path(_snapshot(tasks, [_dep(1, 2)]))
        assert result.timings[2].early_start == DAY0 + timedelta(days=3)

    def test_start_to_start(self):
        tasks = [_task(1, 2, 3), _task(2, 0, 1)]
        deps = [_dep(1, 2, DependencyType.START_TO_START)]
        result = compute_critical_path(_snapshot(tasks, deps))
        assert result.timings[2].early_start == DAY0 + timedelta(days=2)

    def test_start_to_start_predecessor_bounded_by_project_finish(self):
        tasks = [_task(1, 2, 3), _task(2, 0, 1)]
        deps = [_dep(1, 2, DependencyType.START_TO_START)]
        result = compute_critical_path(_snapshot(tasks, deps))
        a = result.timings[1]
        assert a.late_finish == DAY0 + timedelta(days=5)
        assert a.total_float_minutes == 0
        assert a.is_critical

    def test_start_to_finish(self):
        # B must finish no earlier than A starts (day 2)
        tasks = [_task(1, 2, 3), _task(2, 0, 1)]
        deps = [_dep(1, 2, DependencyType.START_TO_FINISH)]
        result = compute_critical_path(_snapshot(tasks, deps))
        a, b = result.timings[1], result.timings[2]
        assert b.early_start == DAY0 + timedelta(days=1)
        assert b.early_finish == DAY0 + timedelta(days=2)
        assert b.late_start == DAY0 + timedelta(days=4)
        assert b.late_finish == DAY0 + timedelta(days=5)
        assert b.total_float_minutes == 3 * MINUTES_PER_DAY
        assert not b.is_critical
        assert a.early_start == DAY0 + timedelta(days=2)
        assert a.late_finish == DAY0 + timedelta(days=5)
        assert a.total_float_minutes == 0
        assert a.free_float_minutes == 0
        assert result.critical_edges == ()

    def test_start_to_finish_with_lag_is_driving(self):
        tasks = [_task(1, 2, 3), _task(2, 0, 1)]
        deps = [_dep(1, 2, DependencyType.START_TO_FINISH, lag_minutes=3 * MINUTES_PER_DAY)]
        result = compute_critical_path(_snapshot(tasks, deps))
        a, b = result.timings[1], result.timings[2]
        assert b.early_start == DAY0 + timedelta(days=4)
        assert b.early_finish == DAY0 + timedelta(days=5)
        assert b.late_finish == DAY0 + timedelta(days=5)
        assert b.total_float_minutes == 0
        assert a.late_start == DAY0 + timedelta(days=2)
        assert a.total_float_minutes == 0
        assert result.critical_edges == ((1, 2),)

    def test_finish_to_finish(self):
        tasks = [_task(1, 0, 4), _task(2, 0, 1)]
        deps = [_dep(1, 2, DependencyType.FINISH_TO_FINISH)]
        result = compute_critical_path(_snapshot(tasks, deps))
        assert result.timings[2].early_finish == DAY0 + timedelta(days=4)
        assert result.timings[2].early_start == DAY0 + timedelta(days=3)

    def test_negative_lag_overlaps(self):
        tasks = [_task(1, 0, 4), _task(2, 0, 2)]
        deps = [_dep(1, 2, lag_minutes=-MINUTES_PER_DAY)]
        result = compute_critical_path(_snapshot(tasks, deps))
        assert result.timings[2].early_start == DAY0 + timedelta(days=3)


# ═════════════════════════════════════════════════════════════════════════════
# Cycles and edge cases
# ═════════════════════════════════════════════════════════════════════════════


class TestCycles:
    def test_cycle_raises(self):
        tasks = [_task(1, 0, 1), _task(2, 1, 1), _task(3, 2, 1)]
        deps = [_dep(1, 2), _dep(2, 3), _dep(3, 1)]
        with pytest.raises(CyclicDependencyError) as exc:
            compute_critical_path(_snapshot(tasks, deps))
        assert exc.value.task_ids == [1, 2, 3]
        assert exc.value.edge in {(1, 2), (2, 3), (3, 1)}
        assert exc.value.details["edge"]["predecessor_id"] == exc.value.edge[0]

    def test_cycle_downstream_task_not_reported(self):
        tasks = [_task(1, 0, 1), _task(2, 1, 1), _task(3, 2, 1)]
        deps = [_dep(1, 2), _dep(2, 1)]
        with pytest.raises(CyclicDependencyError) as exc:
            compute_critical_path(_snapshot(tasks, deps))
        assert exc.value.task_ids == [1, 2]

    def test_empty_snapshot(self):
        result = compute_critical_path(_snapshot([]))
        assert result.timings == {}
        assert result.finish is None
        assert result.duration_minutes == 0

    def test_dependency_to_missing_task_is_ignored(self):
        tasks = [_task(1, 0, 1)]
        result = compute_critical_path(_snapshot(tasks, [_dep(1, 99)]))
        assert result.timings[1].is_critical
