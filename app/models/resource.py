"""
Scenario Analytics Platform
Resource store models — allocations and the capacity calendar.

Read-only from the scenario engine's point of view.

Models:
    - ResourceAllocation:  % of a user's day booked on a project for a date range
    - UserCapacity:        standard working hours per day for a user
    - CapacityException:   per-day override (holiday, part-time day, overtime)
    - TeamMember:          team → user membership, used by change_capacity actions
"""

from datetime import datetime, timezone

from app.models import db


class ResourceAllocation(db.Model):
    """
    A user's allocation to a project.

    end_date NULL means open-ended; the engine caps it at the scope's
    as-of horizon.
    """

    __tablename__ = "resource_allocations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    allocation_percent = db.Column(db.Float, nullable=False, default=100.0)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "allocation_percent >= 0 AND allocation_percent <= 100",
            name="ck_allocation_percent_range",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "allocation_percent": self.allocation_percent,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self):
        return f"<ResourceAllocation user={self.user_id} project={self.project_id} {self.allocation_percent}%>"


class UserCapacity(db.Model):
    """Standard daily capacity for a user. One row per user."""

    __tablename__ = "user_capacities"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True)
    hours_per_day = db.Column(
        db.Float, nullable=True,
        comment="NULL falls back to DEFAULT_CAPACITY_HOURS",
    )
    works_weekends = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "hours_per_day": self.hours_per_day,
            "works_weekends": self.works_weekends,
        }

    def __repr__(self):
        return f"<UserCapacity user={self.user_id} {self.hours_per_day or 'default'}h/day>"


class CapacityException(db.Model):
    """Per-day capacity override for a user (0 for a holiday)."""

    __tablename__ = "capacity_exceptions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "day", name="uq_capacity_exception_user_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    day = db.Column(db.Date, nullable=False)
    hours = db.Column(db.Float, nullable=False, default=0.0)
    reason = db.Column(db.String(200), default="")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "day": self.day.isoformat() if self.day else None,
            "hours": self.hours,
            "reason": self.reason,
        }

    def __repr__(self):
        return f"<CapacityException user={self.user_id} {self.day}={self.hours}h>"


class TeamMember(db.Model):
    """Team membership; team CRUD lives outside the engine."""

    __tablename__ = "team_members"
    __table_args__ = (
        db.UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False)

    def __repr__(self):
        return f"<TeamMember team={self.team_id} user={self.user_id}>"
