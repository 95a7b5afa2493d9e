"""
Earned value calculator — EVM figures for a project at an as-of date.

Formulas:
    PV  = Σ weight × planned fraction elapsed at the end of as_of
    EV  = Σ weight × percent_complete / 100
    AC  = cost entries incurred on or before as_of
    CPI = EV / AC            (None when AC = 0)
    SPI = EV / PV            (None when PV = 0)
    EAC = BAC / CPI          when CPI > 0
        = AC + (BAC − EV)    when actual costs exist but CPI is 0 or None
        = BAC                otherwise
    ETC = EAC − AC,  VAC = BAC − EAC

Task weights are the tasks' budgeted costs (scaled to BAC) when every task
has one, otherwise BAC spread by planned duration. A project with no
scheduled tasks falls back to its own start/end dates and aggregate
percent complete.

Money is rounded to 2 decimals and ratios to 3. Undefined ratios are None,
never 0, Infinity or NaN.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.earned_value import EarnedValueSnapshot
from app.models.project import Project
from app.services.schedule_loader import load_snapshot, today_utc
from app.services.schedule_snapshot import ProjectInfo, TaskNode

logger = logging.getLogger(__name__)

MONEY_DECIMALS = 2
RATIO_DECIMALS = 3


@dataclass(frozen=True)
class EarnedValueData:
    project_id: int
    as_of: date
    bac: float
    pv: float
    ev: float
    ac: float
    cpi: float | None
    spi: float | None
    eac: float
    etc: float
    vac: float

    def to_dict(self):
        return {
            "projectId": self.project_id,
            "asOf": self.as_of.isoformat(),
            "bac": self.bac,
            "pv": self.pv,
            "ev": self.ev,
            "ac": self.ac,
            "cpi": self.cpi,
            "spi": self.spi,
            "eac": self.eac,
            "etc": self.etc,
            "vac": self.vac,
        }


# ── Pure formulas ────────────────────────────────────────────────────────────


def safe_ratio(numerator: float, denominator: float) -> float | None:
    """numerator / denominator rounded to 3 decimals.

    None when the denominator is not positive or the ratio is not finite.
    """
    if not (math.isfinite(numerator) and math.isfinite(denominator)) or denominator <= 0:
        return None
    ratio = numerator / denominator
    if not math.isfinite(ratio):
        return None
    return round(ratio, RATIO_DECIMALS)


def planned_fraction(start: datetime, end: datetime, cutoff: datetime) -> float:
    """Share of [start, end] elapsed at cutoff, clipped to [0, 1]."""
    if end <= start:
        return 1.0 if end <= cutoff else 0.0
    if cutoff <= start:
        return 0.0
    if cutoff >= end:
        return 1.0
    return (cutoff - start).total_seconds() / (end - start).total_seconds()


def _task_weights(bac: float, tasks: Sequence[TaskNode]) -> list[float]:
    costs = [t.budgeted_cost for t in tasks]
    if all(c is not None for c in costs):
        total = sum(costs)
        if total > 0:
            return [bac * (c / total) for c in costs]
    durations = [t.duration_minutes for t in tasks]
    total = sum(durations)
    if total > 0:
        return [bac * (d / total) for d in durations]
    return [bac / len(tasks)] * len(tasks)


def _percent(task: TaskNode) -> float:
    if task.status == "done":
        return 100.0
    return min(100.0, max(0.0, task.percent_complete or 0.0))


def compute_earned_value(
    project: ProjectInfo,
    tasks: Sequence[TaskNode],
    as_of: date,
) -> EarnedValueData:
    """EVM figures for one project from its snapshot tasks."""
    bac = max(0.0, project.budget or 0.0)
    cutoff = datetime.combine(as_of + timedelta(days=1), datetime.min.time())

    if tasks:
        weights = _task_weights(bac, tasks)
        pv = sum(w * planned_fraction(t.start, t.end, cutoff) for w, t in zip(weights, tasks))
        ev = sum(w * _percent(t) / 100.0 for w, t in zip(weights, tasks))
    else:
        if project.start_date and project.end_date:
            pv = bac * planned_fraction(
                datetime.combine(project.start_date, datetime.min.time()),
                datetime.combine(project.end_date + timedelta(days=1), datetime.min.time()),
                cutoff,
            )
        else:
            pv = 0.0
        pct = min(100.0, max(0.0, project.percent_complete or 0.0))
        ev = bac * pct / 100.0

    ac = project.actual_cost or 0.0
    cpi = safe_ratio(ev, ac)
    spi = safe_ratio(ev, pv)

    if cpi is not None and cpi > 0:
        eac = bac / (ev / ac)
    elif project.has_actuals:
        eac = ac + (bac - ev)
    else:
        eac = bac

    return EarnedValueData(
        project_id=project.id,
        as_of=as_of,
        bac=round(bac, MONEY_DECIMALS),
        pv=round(pv, MONEY_DECIMALS),
        ev=round(ev, MONEY_DECIMALS),
        ac=round(ac, MONEY_DECIMALS),
        cpi=cpi,
        spi=spi,
        eac=round(eac, MONEY_DECIMALS),
        etc=round(eac - ac, MONEY_DECIMALS),
        vac=round(bac - eac, MONEY_DECIMALS),
    )


def aggregate_performance(values: Iterable[EarnedValueData]) -> tuple[float | None, float | None]:
    """
    BAC-weighted scope CPI/SPI: ΣEV / ΣAC and ΣEV / ΣPV.

    Projects without a budget carry no weight and are skipped.
    """
    total_ev = total_ac = total_pv = 0.0
    for value in values:
        if value.bac <= 0:
            continue
        total_ev += value.ev
        total_ac += value.ac
        total_pv += value.pv
    return safe_ratio(total_ev, total_ac), safe_ratio(total_ev, total_pv)


# ── DB-facing operations ─────────────────────────────────────────────────────


def get_earned_value(project_id: int, as_of: date | None = None) -> EarnedValueData:
    """Compute EVM figures for a project from live data."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    as_of = as_of or today_utc()
    snapshot = load_snapshot([project_id], as_of)
    return compute_earned_value(
        snapshot.project(project_id), snapshot.tasks_for_project(project_id), as_of,
    )


def create_ev_snapshot(project_id: int, as_of: date | None = None) -> EarnedValueSnapshot:
    """Compute and persist a point-in-time EVM snapshot."""
    data = get_earned_value(project_id, as_of)
    snap = EarnedValueSnapshot(
        project_id=project_id,
        as_of_date=data.as_of,
        bac=data.bac,
        pv=data.pv,
        ev=data.ev,
        ac=data.ac,
        cpi=data.cpi,
        spi=data.spi,
        eac=data.eac,
        etc=data.etc,
        vac=data.vac,
    )
    db.session.add(snap)
    db.session.commit()
    logger.info(
        "EarnedValueSnapshot created id=%s project=%s as_of=%s",
        snap.id, project_id, data.as_of,
        extra={"project_id": project_id},
    )
    return snap


def ev_snapshot_query(project_id: int):
    """Query over a project's snapshots, newest as-of date first."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return (
        EarnedValueSnapshot.query
        .filter(EarnedValueSnapshot.project_id == project_id)
        .order_by(EarnedValueSnapshot.as_of_date.desc(), EarnedValueSnapshot.id.desc())
    )


def list_ev_snapshots(project_id: int) -> list[EarnedValueSnapshot]:
    return ev_snapshot_query(project_id).all()
