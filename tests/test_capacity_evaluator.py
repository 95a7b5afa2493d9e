"""
tests/test_capacity_evaluator.py — Demand vs. capacity per user-day.

Covers:
    1.  Exactly 100 % on one day is not overallocated
    2.  100.01 % is overallocated
    3.  Two overlapping 60 % allocations are overallocated
    4.  Weekends and per-day exceptions from the calendar
    5.  Users without calendar data are excluded with a warning
    6.  Capacity adjustments (change_capacity) scale effective capacity
    7.  Open-ended allocations stop at the snapshot horizon
"""

from datetime import date

from app.services.capacity_evaluator import (
    StaticCapacityCalendar,
    effective_capacity,
    evaluate_capacity,
)
from app.services.schedule_snapshot import (
    AllocationSpan,
    CapacityAdjustment,
    ProjectInfo,
    ScheduleSnapshot,
)

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
FRIDAY = date(2026, 3, 6)
SATURDAY = date(2026, 3, 7)


def _alloc(alloc_id, pct, start, end, user_id=1, project_id=1):
    return AllocationSpan(
        id=alloc_id,
        user_id=user_id,
        project_id=project_id,
        allocation_percent=pct,
        start_date=start,
        end_date=end,
    )


def _snapshot(allocations, adjustments=(), horizon_end=FRIDAY):
    return ScheduleSnapshot(
        as_of=MONDAY,
        horizon_end=horizon_end,
        projects=(ProjectInfo(id=1, name="P1"), ProjectInfo(id=2, name="P2")),
        allocations=tuple(allocations),
        capacity_adjustments=tuple(adjustments),
    )


def _calendar(**kw):
    return StaticCapacityCalendar(hours_per_day={1: 8.0, 2: 8.0}, **kw)


class TestOverallocationBoundary:
    def test_exactly_full_is_not_overallocated(self):
        result = evaluate_capacity(_snapshot([_alloc(1, 100.0, MONDAY, MONDAY)]), _calendar())
        assert result.total_capacity_hours == 8.0
        assert result.total_demand_hours == 8.0
        assert result.overallocated_days == 0
        assert result.overallocated_users == 0

    def test_just_over_full_is_overallocated(self):
        result = evaluate_capacity(_snapshot([_alloc(1, 100.01, MONDAY, MONDAY)]), _calendar())
        assert result.overallocated_days == 1
        assert result.overallocated_users == 1
        entry = result.entries[0]
        assert entry.day == MONDAY
        assert entry.over_by_hours > 0

    def test_two_overlapping_allocations(self):
        allocations = [
            _alloc(1, 60.0, MONDAY, MONDAY, project_id=1),
            _alloc(2, 60.0, MONDAY, MONDAY, project_id=2),
        ]
        result = evaluate_capacity(_snapshot(allocations), _calendar())
        assert result.overallocated_days == 1
        assert result.entries[0].project_ids == (1, 2)
        assert result.entries[0].to_dict()["demandHours"] == 9.6

    def test_counts_days_and_users(self):
        allocations = [
            _alloc(1, 40.0, MONDAY, FRIDAY, project_id=1),
            _alloc(2, 100.0, MONDAY, TUESDAY, project_id=2),
        ]
        result = evaluate_capacity(_snapshot(allocations), _calendar())
        assert result.total_capacity_hours == 40.0
        assert round(result.total_demand_hours, 2) == 32.0
        assert result.overallocated_days == 2
        assert result.overallocated_users == 1


class TestCalendar:
    def test_weekend_has_no_capacity_or_demand(self):
        result = evaluate_capacity(
            _snapshot([_alloc(1, 100.0, SATURDAY, SATURDAY)], horizon_end=SATURDAY),
            _calendar(),
        )
        assert result.total_capacity_hours == 0.0
        assert result.total_demand_hours == 0.0
        assert result.overallocated_days == 0

    def test_weekend_worker(self):
        result = evaluate_capacity(
            _snapshot([_alloc(1, 50.0, SATURDAY, SATURDAY)], horizon_end=SATURDAY),
            _calendar(weekend_workers={1}),
        )
        assert result.total_capacity_hours == 8.0
        assert result.total_demand_hours == 4.0

    def test_exception_overrides_standard_hours(self):
        calendar = _calendar(exceptions={(1, MONDAY): 4.0})
        assert calendar.hours_for(1, MONDAY) == 4.0
        assert calendar.hours_for(1, TUESDAY) == 8.0

    def test_missing_user_excluded_with_warning(self):
        allocations = [
            _alloc(1, 100.0, MONDAY, MONDAY, user_id=1),
            _alloc(2, 150.0, MONDAY, MONDAY, user_id=42),
        ]
        result = evaluate_capacity(_snapshot(allocations), _calendar())
        assert result.missing_user_ids == [42]
        assert result.overallocated_days == 0
        assert result.total_demand_hours == 8.0
        assert result.warnings == [
            "No capacity data for user 42; excluded from capacity totals"
        ]

    def test_open_ended_allocation_stops_at_horizon(self):
        result = evaluate_capacity(_snapshot([_alloc(1, 50.0, MONDAY, None)]), _calendar())
        # Mon-Fri at 8h
        assert result.total_capacity_hours == 40.0
        assert result.total_demand_hours == 20.0


class TestAdjustments:
    def test_effective_capacity(self):
        adj = CapacityAdjustment(
            user_ids=frozenset({1}), delta_percent=50.0,
            start_date=MONDAY, end_date=TUESDAY,
        )
        assert effective_capacity(8.0, (adj,), 1, MONDAY) == 12.0
        assert effective_capacity(8.0, (adj,), 1, FRIDAY) == 8.0
        assert effective_capacity(8.0, (adj,), 2, MONDAY) == 8.0

    def test_capacity_never_negative(self):
        adj = CapacityAdjustment(
            user_ids=frozenset({1}), delta_percent=-150.0,
            start_date=MONDAY, end_date=MONDAY,
        )
        assert effective_capacity(8.0, (adj,), 1, MONDAY) == 0.0

    def test_adjustment_clears_overallocation(self):
        allocations = [
            _alloc(1, 40.0, MONDAY, FRIDAY, project_id=1),
            _alloc(2, 100.0, MONDAY, TUESDAY, project_id=2),
        ]
        adj = CapacityAdjustment(
            user_ids=frozenset({1}), delta_percent=50.0,
            start_date=MONDAY, end_date=TUESDAY,
        )
        result = evaluate_capacity(_snapshot(allocations, [adj]), _calendar())
        assert result.overallocated_days == 0
        assert result.total_capacity_hours == 48.0
