"""
Critical path calculator — precedence diagramming (PDM) over a ScheduleSnapshot.

Algorithm:
    1. Kahn topological sort over index-based adjacency lists. Ready nodes
       are taken lowest-index first so the order (and every tie) is stable.
       Nodes left over mean a cycle → CyclicDependencyError.
    2. Forward pass (ES/EF). A task's own planned start is a
       "start no earlier than" constraint, combined with:
           FS: ES ≥ EF(pred) + lag        SS: ES ≥ ES(pred) + lag
           FF: EF ≥ EF(pred) + lag        SF: EF ≥ ES(pred) + lag
    3. Backward pass (LS/LF). Every task finishes no later than its
       project's finish (latest EF in that project), tightened by the
       mirrored rules:
           FS: LF ≤ LS(succ) − lag        SS: LS ≤ LS(succ) − lag
           FF: LF ≤ LF(succ) − lag        SF: LS ≤ LF(succ) − lag
    4. Total float = LS − ES; critical when |float| < tolerance
       (one calendar day by default).

All arithmetic is in integer minutes from an origin (earliest planned
start); results are converted back to datetimes.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from app.core.exceptions import CyclicDependencyError
from app.services.schedule_snapshot import (
    MINUTES_PER_DAY,
    DependencyEdge,
    DependencyType,
    ScheduleSnapshot,
    minutes_between,
)

logger = logging.getLogger(__name__)

CRITICAL_FLOAT_TOLERANCE_MINUTES = MINUTES_PER_DAY


@dataclass(frozen=True)
class TaskTiming:
    task_id: int
    early_start: datetime
    early_finish: datetime
    late_start: datetime
    late_finish: datetime
    total_float_minutes: int
    free_float_minutes: int
    is_critical: bool

    def to_dict(self):
        return {
            "taskId": self.task_id,
            "earlyStart": self.early_start.isoformat(),
            "earlyFinish": self.early_finish.isoformat(),
            "lateStart": self.late_start.isoformat(),
            "lateFinish": self.late_finish.isoformat(),
            "totalFloatMinutes": self.total_float_minutes,
            "freeFloatMinutes": self.free_float_minutes,
            "isCritical": self.is_critical,
        }


@dataclass(frozen=True, eq=False)
class CriticalPathResult:
    timings: dict[int, TaskTiming] = field(default_factory=dict)
    critical_task_ids: frozenset[int] = frozenset()
    critical_edges: tuple[tuple[int, int], ...] = ()
    duration_minutes: int = 0
    finish: datetime | None = None
    project_finishes: dict[int, datetime] = field(default_factory=dict)

    def forecast_end(self, task_id: int) -> datetime | None:
        timing = self.timings.get(task_id)
        return timing.early_finish if timing else None

    def to_dict(self):
        return {
            "criticalTaskIds": sorted(self.critical_task_ids),
            "criticalEdges": [
                {"predecessorId": p, "successorId": s} for p, s in self.critical_edges
            ],
            "durationMinutes": self.duration_minutes,
            "finish": self.finish.isoformat() if self.finish else None,
            "projectFinishes": {
                str(pid): dt.isoformat() for pid, dt in sorted(self.project_finishes.items())
            },
            "tasks": [self.timings[tid].to_dict() for tid in sorted(self.timings)],
        }


# ── Graph helpers ────────────────────────────────────────────────────────────


def _topological_order(
    n: int,
    preds: list[list[tuple[int, DependencyEdge]]],
    succs: list[list[tuple[int, DependencyEdge]]],
    task_ids: list[int],
) -> list[int]:
    """Kahn's algorithm; raises CyclicDependencyError naming one edge on a cycle."""
    indegree = [len(p) for p in preds]
    ready = [i for i in range(n) if indegree[i] == 0]
    heapq.heapify(ready)
    order: list[int] = []
    while ready:
        i = heapq.heappop(ready)
        order.append(i)
        for j, _edge in succs[i]:
            indegree[j] -= 1
            if indegree[j] == 0:
                heapq.heappush(ready, j)

    if len(order) == n:
        return order

    remaining = {i for i in range(n) if indegree[i] > 0}
    edge = _find_cycle_edge(remaining, preds)
    raise CyclicDependencyError(
        edge=(task_ids[edge[0]], task_ids[edge[1]]),
        task_ids=[task_ids[i] for i in remaining],
    )


def _find_cycle_edge(
    remaining: set[int],
    preds: list[list[tuple[int, DependencyEdge]]],
) -> tuple[int, int]:
    """
    Walk predecessor links inside the unsorted remainder until a node repeats.

    Every node Kahn could not order still has an unordered predecessor, so
    the walk never dead-ends and must close a cycle.
    """
    node = min(remaining)
    seen: set[int] = set()
    while True:
        seen.add(node)
        prev = min(p for p, _ in preds[node] if p in remaining)
        if prev in seen:
            return prev, node
        node = prev


# ── Public API ───────────────────────────────────────────────────────────────


def compute_critical_path(
    snapshot: ScheduleSnapshot,
    tolerance_minutes: int = CRITICAL_FLOAT_TOLERANCE_MINUTES,
) -> CriticalPathResult:
    """Run the forward/backward pass over every task in the snapshot."""
    tasks = snapshot.tasks
    if not tasks:
        return CriticalPathResult()

    n = len(tasks)
    task_ids = [t.id for t in tasks]
    index = {tid: i for i, tid in enumerate(task_ids)}
    origin = min(t.start for t in tasks)
    planned = [minutes_between(origin, t.start) for t in tasks]
    dur = [t.duration_minutes for t in tasks]

    preds: list[list[tuple[int, DependencyEdge]]] = [[] for _ in range(n)]
    succs: list[list[tuple[int, DependencyEdge]]] = [[] for _ in range(n)]
    for edge in snapshot.dependencies:
        p = index.get(edge.predecessor_id)
        s = index.get(edge.successor_id)
        if p is None or s is None:
            continue
        preds[s].append((p, edge))
        succs[p].append((s, edge))

    order = _topological_order(n, preds, succs, task_ids)

    # Forward pass
    es = [0] * n
    ef = [0] * n
    for i in order:
        start = planned[i]
        for p, edge in preds[i]:
            lag = edge.lag_minutes
            if edge.dependency_type == DependencyType.START_TO_START:
                start = max(start, es[p] + lag)
            elif edge.dependency_type == DependencyType.FINISH_TO_FINISH:
                start = max(start, ef[p] + lag - dur[i])
            elif edge.dependency_type == DependencyType.START_TO_FINISH:
                start = max(start, es[p] + lag - dur[i])
            else:
                start = max(start, ef[p] + lag)
        es[i] = start
        ef[i] = start + dur[i]

    project_finish: dict[int, int] = {}
    for i, task in enumerate(tasks):
        project_finish[task.project_id] = max(project_finish.get(task.project_id, ef[i]), ef[i])
    finish_minutes = max(ef)

    # Backward pass
    ls = [0] * n
    lf = [0] * n
    for i in reversed(order):
        # Capped at the task's own project finish
        late_finish = project_finish[tasks[i].project_id]
        for s, edge in succs[i]:
            lag = edge.lag_minutes
            if edge.dependency_type == DependencyType.START_TO_START:
                candidate = ls[s] - lag + dur[i]
            elif edge.dependency_type == DependencyType.FINISH_TO_FINISH:
                candidate = lf[s] - lag
            elif edge.dependency_type == DependencyType.START_TO_FINISH:
                candidate = lf[s] - lag + dur[i]
            else:
                candidate = ls[s] - lag
            late_finish = min(late_finish, candidate)
        lf[i] = late_finish
        ls[i] = late_finish - dur[i]

    # Free float: slack to the nearest successor constraint
    free = [0] * n
    for i in range(n):
        if not succs[i]:
            free[i] = project_finish[tasks[i].project_id] - ef[i]
            continue
        slack = None
        for s, edge in succs[i]:
            lag = edge.lag_minutes
            if edge.dependency_type == DependencyType.START_TO_START:
                gap = es[s] - es[i] - lag
            elif edge.dependency_type == DependencyType.FINISH_TO_FINISH:
                gap = ef[s] - ef[i] - lag
            elif edge.dependency_type == DependencyType.START_TO_FINISH:
                gap = ef[s] - es[i] - lag
            else:
                gap = es[s] - ef[i] - lag
            slack = gap if slack is None else min(slack, gap)
        free[i] = max(0, slack)

    def at(minutes: int) -> datetime:
        return origin + timedelta(minutes=minutes)

    timings: dict[int, TaskTiming] = {}
    critical: set[int] = set()
    for i, tid in enumerate(task_ids):
        total_float = ls[i] - es[i]
        is_critical = abs(total_float) < tolerance_minutes
        if is_critical:
            critical.add(tid)
        timings[tid] = TaskTiming(
            task_id=tid,
            early_start=at(es[i]),
            early_finish=at(ef[i]),
            late_start=at(ls[i]),
            late_finish=at(lf[i]),
            total_float_minutes=total_float,
            free_float_minutes=free[i],
            is_critical=is_critical,
        )

    critical_edges = []
    for s in range(n):
        for p, edge in preds[s]:
            if task_ids[p] in critical and task_ids[s] in critical and _is_driving(edge, p, s, es, ef):
                critical_edges.append((task_ids[p], task_ids[s]))

    logger.debug(
        "Critical path: %d tasks, %d critical, duration %d min",
        n, len(critical), finish_minutes - min(es),
    )

    return CriticalPathResult(
        timings=timings,
        critical_task_ids=frozenset(critical),
        critical_edges=tuple(sorted(critical_edges)),
        duration_minutes=finish_minutes - min(es),
        finish=at(finish_minutes),
        project_finishes={pid: at(m) for pid, m in sorted(project_finish.items())},
    )


def _is_driving(edge: DependencyEdge, p: int, s: int, es: list[int], ef: list[int]) -> bool:
    """True when the edge's constraint is what fixed the successor's dates."""
    lag = edge.lag_minutes
    if edge.dependency_type == DependencyType.START_TO_START:
        return es[p] + lag == es[s]
    if edge.dependency_type == DependencyType.FINISH_TO_FINISH:
        return ef[p] + lag == ef[s]
    if edge.dependency_type == DependencyType.START_TO_FINISH:
        return es[p] + lag == ef[s]
    return ef[p] + lag == es[s]
