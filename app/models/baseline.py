"""
Scenario Analytics Platform
Schedule baseline models — frozen copies of a project schedule.

Models:
    - ScheduleBaseline:  named, project-scoped baseline; only is_active ever changes
    - BaselineTask:      frozen task row (dates + critical flag at capture time)

Invariant:
    At most one ScheduleBaseline per project has is_active=True. The service
    layer flips flags inside a single transaction; the partial unique index
    below backs it up at the database level.
"""

from datetime import datetime, timezone

from app.models import db


class ScheduleBaseline(db.Model):
    """Frozen schedule snapshot used as a fixed comparison point."""

    __tablename__ = "schedule_baselines"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(150), default="")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index(
            "uq_schedule_baselines_project_active",
            "project_id",
            unique=True,
            postgresql_where=db.text("is_active IS TRUE"),
            sqlite_where=db.text("is_active = 1"),
        ),
    )

    tasks = db.relationship(
        "BaselineTask", backref="baseline", lazy="dynamic",
        cascade="all, delete-orphan", order_by="BaselineTask.id",
    )

    def to_dict(self, include_tasks=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "task_count": self.tasks.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_tasks:
            result["tasks"] = [t.to_dict() for t in self.tasks]
        return result

    def __repr__(self):
        flag = " active" if self.is_active else ""
        return f"<ScheduleBaseline {self.id}: {self.name} project={self.project_id}{flag}>"


class BaselineTask(db.Model):
    """
    Task as it was when the baseline was captured.

    task_id is a plain integer, not a foreign key: the live task may be
    deleted later and the comparator must still report it as removed.
    """

    __tablename__ = "baseline_tasks"

    id = db.Column(db.Integer, primary_key=True)
    baseline_id = db.Column(
        db.Integer, db.ForeignKey("schedule_baselines.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    task_id = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(300), nullable=False, default="")
    planned_start = db.Column(db.DateTime, nullable=True)
    planned_end = db.Column(db.DateTime, nullable=True)
    is_critical = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "baseline_id": self.baseline_id,
            "task_id": self.task_id,
            "title": self.title,
            "planned_start": self.planned_start.isoformat() if self.planned_start else None,
            "planned_end": self.planned_end.isoformat() if self.planned_end else None,
            "is_critical": self.is_critical,
        }

    def __repr__(self):
        return f"<BaselineTask baseline={self.baseline_id} task={self.task_id}>"
