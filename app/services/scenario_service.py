"""
Scenario plans — Service Layer.

Business logic for:
    - Plan CRUD:      list / create / get / update / delete
    - Action edits:   add / remove, each bumping actions_version so a stored
                      result is reported stale ("draft") until recomputed
    - Payload checks: actions are validated with the same parser the
                      applicator uses, so bad payloads never get stored

Computation lives in scenario_compute.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.project import Portfolio, Project
from app.models.scenario import SCENARIO_STATUSES, SCOPE_TYPES, ScenarioAction, ScenarioPlan
from app.services.scenario_actions import parse_payload

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "status")


def _scope_exists(scope_type: str, scope_id: int) -> bool:
    model = Project if scope_type == "project" else Portfolio
    return db.session.get(model, scope_id) is not None


def scenario_query(scope_type: str | None = None, scope_id: int | None = None):
    """Query over scenarios, optionally filtered by scope, newest first."""
    query = ScenarioPlan.query
    if scope_type:
        query = query.filter(ScenarioPlan.scope_type == scope_type)
    if scope_id is not None:
        query = query.filter(ScenarioPlan.scope_id == scope_id)
    return query.order_by(ScenarioPlan.created_at.desc(), ScenarioPlan.id.desc())


def list_scenarios(scope_type: str | None = None, scope_id: int | None = None) -> list[ScenarioPlan]:
    return scenario_query(scope_type, scope_id).all()


def get_scenario(scenario_id: int) -> ScenarioPlan:
    plan = db.session.get(ScenarioPlan, scenario_id)
    if plan is None:
        raise NotFoundError(resource="ScenarioPlan", resource_id=scenario_id)
    return plan


def create_scenario(data: dict) -> ScenarioPlan:
    """Create a draft scenario over an existing project or portfolio.

    Args:
        data: Input dict with ``name``, ``scope_type`` and ``scope_id``;
              optional ``description`` and ``created_by``.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})
    scope_type = data.get("scope_type")
    if scope_type not in SCOPE_TYPES:
        raise ValidationError(
            "scope_type must be 'project' or 'portfolio'",
            details={"scope_type": scope_type},
        )
    scope_id = data.get("scope_id")
    if not isinstance(scope_id, int) or isinstance(scope_id, bool):
        raise ValidationError("scope_id must be an integer", details={"scope_id": scope_id})
    if not _scope_exists(scope_type, scope_id):
        raise NotFoundError(resource=scope_type.capitalize(), resource_id=scope_id)

    plan = ScenarioPlan(
        name=name,
        description=data.get("description") or "",
        scope_type=scope_type,
        scope_id=scope_id,
        status="draft",
        created_by=data.get("created_by") or "",
    )
    db.session.add(plan)
    db.session.commit()
    logger.info(
        "ScenarioPlan created id=%s scope=%s:%s", plan.id, scope_type, scope_id,
        extra={"scenario_id": plan.id},
    )
    return plan


def update_scenario(scenario_id: int, data: dict) -> ScenarioPlan:
    """Update name, description or status. Scope is immutable."""
    plan = get_scenario(scenario_id)
    for key in UPDATABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("name cannot be empty", details={"name": "empty"})
        if key == "status" and value not in SCENARIO_STATUSES:
            raise ValidationError(
                f"Invalid status: {value}",
                details={"status": f"must be one of {sorted(SCENARIO_STATUSES)}"},
            )
        setattr(plan, key, value if value is not None else "")
    db.session.commit()
    logger.info("ScenarioPlan updated id=%s", plan.id, extra={"scenario_id": plan.id})
    return plan


def delete_scenario(scenario_id: int) -> None:
    plan = get_scenario(scenario_id)
    db.session.delete(plan)
    db.session.commit()
    logger.info("ScenarioPlan deleted id=%s", scenario_id, extra={"scenario_id": scenario_id})


def list_actions(scenario_id: int) -> list[ScenarioAction]:
    """Actions in application order (creation time, then id)."""
    return list(
        db.session.execute(
            select(ScenarioAction)
            .where(ScenarioAction.scenario_id == scenario_id)
            .order_by(ScenarioAction.created_at, ScenarioAction.id)
        ).scalars()
    )


def add_action(scenario_id: int, action_type: str, payload) -> ScenarioAction:
    """Validate and append an action; the scenario drops back to draft."""
    plan = get_scenario(scenario_id)
    parse_payload(action_type, payload)

    action = ScenarioAction(scenario_id=plan.id, action_type=action_type, payload=payload)
    db.session.add(action)
    plan.actions_version = (plan.actions_version or 0) + 1
    db.session.commit()
    logger.info(
        "ScenarioAction added id=%s scenario=%s type=%s", action.id, plan.id, action_type,
        extra={"scenario_id": plan.id},
    )
    return action


def remove_action(scenario_id: int, action_id: int) -> None:
    plan = get_scenario(scenario_id)
    action = db.session.get(ScenarioAction, action_id)
    if action is None or action.scenario_id != plan.id:
        raise NotFoundError(resource="ScenarioAction", resource_id=action_id)
    db.session.delete(action)
    plan.actions_version = (plan.actions_version or 0) + 1
    db.session.commit()
    logger.info(
        "ScenarioAction removed id=%s scenario=%s", action_id, plan.id,
        extra={"scenario_id": plan.id},
    )
