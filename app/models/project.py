"""
Scenario Analytics Platform
Project store models — Portfolio → Project → WorkTask.

These tables belong to the surrounding project-management platform; the
scenario engine only ever reads them (see app/services/schedule_loader.py).

Models:
    - Portfolio:           grouping of projects (scope_type="portfolio")
    - Project:             execution unit holding the budget (BAC)
    - WorkTask:            scheduled task with planned dates and % complete
    - WorkTaskDependency:  predecessor → successor link with type and lag
    - CostEntry:           actual cost booked against a project

Architecture:
    Portfolio ──1:N──▶ Project ──1:N──▶ WorkTask
    WorkTask ──N:M──▶ WorkTask  (via WorkTaskDependency)
    Project ──1:N──▶ CostEntry
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {"not_started", "in_progress", "blocked", "done", "cancelled"}

DEPENDENCY_TYPES = {
    "finish_to_start",
    "start_to_start",
    "finish_to_finish",
    "start_to_finish",
}


class Portfolio(db.Model):
    """Portfolio of projects. Scenarios with scope_type="portfolio" point here."""

    __tablename__ = "portfolios"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    projects = db.relationship(
        "Project", backref="portfolio", lazy="dynamic",
        order_by="Project.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Portfolio {self.id}: {self.name}>"


class Project(db.Model):
    """Project with a planned window and a budget at completion."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    portfolio_id = db.Column(
        db.Integer,
        db.ForeignKey("portfolios.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    budget = db.Column(
        db.Float, nullable=True,
        comment="Budget at completion (BAC) in project currency",
    )
    percent_complete = db.Column(
        db.Float, nullable=True,
        comment="Aggregate % complete, used when the project has no tasks",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tasks = db.relationship(
        "WorkTask", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="WorkTask.id",
    )
    cost_entries = db.relationship(
        "CostEntry", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "name": self.name,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "budget": self.budget,
            "percent_complete": self.percent_complete,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class WorkTask(db.Model):
    """
    Scheduled work item.

    planned_end may be NULL when only duration_minutes is known; the loader
    derives the end from planned_start + duration in that case.
    """

    __tablename__ = "work_tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    status = db.Column(
        db.String(30), default="not_started",
        comment="not_started | in_progress | blocked | done | cancelled",
    )
    planned_start = db.Column(db.DateTime, nullable=True)
    planned_end = db.Column(db.DateTime, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)
    percent_complete = db.Column(db.Float, default=0.0)
    budgeted_cost = db.Column(db.Float, nullable=True)
    assignee_user_id = db.Column(db.Integer, nullable=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    predecessors = db.relationship(
        "WorkTaskDependency",
        foreign_keys="WorkTaskDependency.successor_id",
        backref="successor",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    successors = db.relationship(
        "WorkTaskDependency",
        foreign_keys="WorkTaskDependency.predecessor_id",
        backref="predecessor",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "status": self.status,
            "planned_start": self.planned_start.isoformat() if self.planned_start else None,
            "planned_end": self.planned_end.isoformat() if self.planned_end else None,
            "duration_minutes": self.duration_minutes,
            "percent_complete": self.percent_complete,
            "budgeted_cost": self.budgeted_cost,
            "assignee_user_id": self.assignee_user_id,
        }

    def __repr__(self):
        return f"<WorkTask {self.id}: {self.title}>"


class WorkTaskDependency(db.Model):
    """
    Predecessor → Successor dependency between work tasks.
    Dependency types: finish_to_start (default), start_to_start,
    finish_to_finish, start_to_finish. Lag may be negative (lead).
    """

    __tablename__ = "work_task_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    predecessor_id = db.Column(
        db.Integer, db.ForeignKey("work_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    successor_id = db.Column(
        db.Integer, db.ForeignKey("work_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    dependency_type = db.Column(
        db.String(30), default="finish_to_start",
        comment="finish_to_start | start_to_start | finish_to_finish | start_to_finish",
    )
    lag_minutes = db.Column(db.Integer, default=0)

    __table_args__ = (
        db.UniqueConstraint(
            "predecessor_id", "successor_id",
            name="uq_work_task_dep",
        ),
        db.CheckConstraint(
            "predecessor_id != successor_id",
            name="ck_work_task_dep_no_self_loop",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "predecessor_id": self.predecessor_id,
            "successor_id": self.successor_id,
            "dependency_type": self.dependency_type,
            "lag_minutes": self.lag_minutes,
        }

    def __repr__(self):
        return f"<WorkTaskDependency {self.predecessor_id} → {self.successor_id}>"


class CostEntry(db.Model):
    """Actual cost booked against a project on a given day."""

    __tablename__ = "cost_entries"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    incurred_on = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    description = db.Column(db.String(300), default="")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "incurred_on": self.incurred_on.isoformat() if self.incurred_on else None,
            "amount": self.amount,
            "description": self.description,
        }

    def __repr__(self):
        return f"<CostEntry {self.id}: {self.amount} on {self.incurred_on}>"
