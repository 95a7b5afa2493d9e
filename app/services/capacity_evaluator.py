"""
Resource capacity evaluator — demand vs. effective capacity per user-day.

Pure module: takes a ScheduleSnapshot and a CapacityCalendar, returns a
CapacityResult. No DB access (the DB-backed calendar is built by
schedule_loader.load_capacity_calendar).

Rules:
    demand hours       = allocation_percent / 100 × calendar hours of the day
    effective capacity = calendar hours × (1 + Σ delta_percent / 100), floored at 0
    overallocated      = summed demand > effective capacity (strict)

Totals only cover user-days that carry an allocation. Users the calendar
does not know are excluded from every count and reported as a warning.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from app.services.schedule_snapshot import CapacityAdjustment, ScheduleSnapshot, iter_days

logger = logging.getLogger(__name__)

# Float noise tolerance: exactly 100 % must never count as overallocated.
OVERALLOCATION_EPSILON = 1e-9

WEEKEND_DAYS = {5, 6}


class CapacityCalendar(Protocol):
    """Hours a user can work on a given calendar day."""

    def has_user(self, user_id: int) -> bool: ...

    def hours_for(self, user_id: int, day: date) -> float: ...


@dataclass
class StaticCapacityCalendar:
    """
    In-memory calendar: standard hours per user, weekend flags and per-day
    overrides. Per-day overrides win over the weekend rule.
    """

    hours_per_day: dict[int, float] = field(default_factory=dict)
    weekend_workers: set[int] = field(default_factory=set)
    exceptions: dict[tuple[int, date], float] = field(default_factory=dict)

    def has_user(self, user_id: int) -> bool:
        return user_id in self.hours_per_day

    def hours_for(self, user_id: int, day: date) -> float:
        override = self.exceptions.get((user_id, day))
        if override is not None:
            return max(0.0, override)
        if day.weekday() in WEEKEND_DAYS and user_id not in self.weekend_workers:
            return 0.0
        return self.hours_per_day.get(user_id, 0.0)


@dataclass(frozen=True)
class OverallocationEntry:
    user_id: int
    day: date
    capacity_hours: float
    demand_hours: float
    over_by_hours: float
    project_ids: tuple[int, ...] = ()

    def to_dict(self):
        return {
            "userId": self.user_id,
            "day": self.day.isoformat(),
            "capacityHours": round(self.capacity_hours, 2),
            "demandHours": round(self.demand_hours, 2),
            "overByHours": round(self.over_by_hours, 2),
            "projectIds": list(self.project_ids),
        }


@dataclass
class CapacityResult:
    total_capacity_hours: float = 0.0
    total_demand_hours: float = 0.0
    overallocated_days: int = 0
    overallocated_users: int = 0
    entries: list[OverallocationEntry] = field(default_factory=list)
    missing_user_ids: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "totalCapacityHours": round(self.total_capacity_hours, 2),
            "totalDemandHours": round(self.total_demand_hours, 2),
            "overallocatedDays": self.overallocated_days,
            "overallocatedUsers": self.overallocated_users,
            "entries": [e.to_dict() for e in self.entries],
            "missingUserIds": list(self.missing_user_ids),
        }


def effective_capacity(
    calendar_hours: float,
    adjustments: tuple[CapacityAdjustment, ...],
    user_id: int,
    day: date,
) -> float:
    """Calendar hours scaled by every adjustment covering (user, day), never below 0."""
    delta = sum(a.delta_percent for a in adjustments if a.applies_to(user_id, day))
    return max(0.0, calendar_hours * (1 + delta / 100.0))


def evaluate_capacity(snapshot: ScheduleSnapshot, calendar: CapacityCalendar) -> CapacityResult:
    """Bucket allocation demand per user-day and flag days where demand exceeds capacity."""
    result = CapacityResult()
    demand: dict[tuple[int, date], float] = defaultdict(float)
    calendar_hours: dict[tuple[int, date], float] = {}
    projects_on_day: dict[tuple[int, date], set[int]] = defaultdict(set)
    missing: set[int] = set()

    for alloc in snapshot.allocations:
        if not calendar.has_user(alloc.user_id):
            missing.add(alloc.user_id)
            continue
        for day in iter_days(alloc.start_date, alloc.effective_end(snapshot.horizon_end)):
            key = (alloc.user_id, day)
            if key not in calendar_hours:
                calendar_hours[key] = calendar.hours_for(alloc.user_id, day)
            demand[key] += alloc.allocation_percent / 100.0 * calendar_hours[key]
            projects_on_day[key].add(alloc.project_id)

    overallocated_users: set[int] = set()
    for key in sorted(demand):
        user_id, day = key
        capacity = effective_capacity(
            calendar_hours[key], snapshot.capacity_adjustments, user_id, day,
        )
        result.total_capacity_hours += capacity
        result.total_demand_hours += demand[key]
        if demand[key] > capacity + OVERALLOCATION_EPSILON:
            overallocated_users.add(user_id)
            result.entries.append(OverallocationEntry(
                user_id=user_id,
                day=day,
                capacity_hours=capacity,
                demand_hours=demand[key],
                over_by_hours=demand[key] - capacity,
                project_ids=tuple(sorted(projects_on_day[key])),
            ))

    result.overallocated_days = len(result.entries)
    result.overallocated_users = len(overallocated_users)
    result.missing_user_ids = sorted(missing)
    for user_id in result.missing_user_ids:
        result.warnings.append(
            f"No capacity data for user {user_id}; excluded from capacity totals"
        )

    if result.entries:
        logger.debug(
            "Capacity evaluation found %d overallocated user-days across %d users",
            result.overallocated_days, result.overallocated_users,
        )
    return result
