"""
Scenario Analytics Platform
What-if scenario models — ScenarioPlan → ScenarioAction / ScenarioResult.

Models:
    - ScenarioPlan:    named bundle of hypothetical edits over a project or portfolio
    - ScenarioAction:  one edit (shift_project, shift_task, change_capacity, change_budget)
    - ScenarioResult:  last computed before/after comparison (overwritten on recompute)

Lifecycle:
    draft ──compute──▶ computed ──add/remove action──▶ draft
    "computed" is derived: the stored result's actions_version equals the
    plan's actions_version. status="active" is an orthogonal promotion flag.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SCOPE_TYPES = {"project", "portfolio"}
SCENARIO_STATUSES = {"draft", "active"}


class ScenarioPlan(db.Model):
    """
    What-if scenario over a project or a portfolio.

    The plan never touches live project data; computing it only writes its
    own ScenarioResult row.
    """

    __tablename__ = "scenario_plans"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    scope_type = db.Column(
        db.String(20), nullable=False,
        comment="project | portfolio",
    )
    scope_id = db.Column(db.Integer, nullable=False, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | active",
    )
    created_by = db.Column(db.String(150), default="")
    actions_version = db.Column(
        db.Integer, nullable=False, default=0,
        comment="Bumped on every action add/remove; results record the version they saw",
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

    # ── Relationships
    actions = db.relationship(
        "ScenarioAction", backref="scenario", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="ScenarioAction.id",
    )
    result = db.relationship(
        "ScenarioResult", backref="scenario", uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def lifecycle_state(self) -> str:
        """Return "computed" when the stored result matches the current actions."""
        if self.result is not None and self.result.actions_version == self.actions_version:
            return "computed"
        return "draft"

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "status": self.status,
            "created_by": self.created_by,
            "lifecycle_state": self.lifecycle_state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["actions"] = [a.to_dict() for a in self.actions]
            result["result"] = self.result.to_dict() if self.result else None
        return result

    def __repr__(self):
        return f"<ScenarioPlan {self.id}: {self.name} [{self.scope_type}:{self.scope_id}]>"


class ScenarioAction(db.Model):
    """Hypothetical edit. payload shape depends on action_type."""

    __tablename__ = "scenario_actions"

    id = db.Column(db.Integer, primary_key=True)
    scenario_id = db.Column(
        db.Integer, db.ForeignKey("scenario_plans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    action_type = db.Column(
        db.String(30), nullable=False,
        comment="shift_project | shift_task | change_capacity | change_budget",
    )
    payload = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "scenario_id": self.scenario_id,
            "action_type": self.action_type,
            "payload": self.payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ScenarioAction {self.id}: {self.action_type}>"


class ScenarioResult(db.Model):
    """Last computed summary for a scenario. One row per scenario, overwritten."""

    __tablename__ = "scenario_results"

    id = db.Column(db.Integer, primary_key=True)
    scenario_id = db.Column(
        db.Integer, db.ForeignKey("scenario_plans.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    computed_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    summary = db.Column(db.JSON, nullable=False, default=dict)
    warnings = db.Column(db.JSON, nullable=False, default=list)
    actions_version = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "scenario_id": self.scenario_id,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "summary": self.summary,
            "warnings": self.warnings,
            "actions_version": self.actions_version,
        }

    def __repr__(self):
        return f"<ScenarioResult scenario={self.scenario_id} at {self.computed_at}>"
