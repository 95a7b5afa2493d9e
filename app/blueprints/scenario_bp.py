"""
Scenario Analytics Platform
Scenario Blueprint — what-if plans, their actions and computation.

Endpoints:
    Scenarios:
        GET    /api/v1/scenarios                              — List (?scope_type, ?scope_id)
        POST   /api/v1/scenarios                              — Create draft scenario
        GET    /api/v1/scenarios/<id>                         — Detail (+ actions, result)
        PATCH  /api/v1/scenarios/<id>                         — Update name/description/status
        DELETE /api/v1/scenarios/<id>                         — Delete (cascades actions/result)

    Actions:
        GET    /api/v1/scenarios/<id>/actions                 — List in application order
        POST   /api/v1/scenarios/<id>/actions                 — Append action
        DELETE /api/v1/scenarios/<id>/actions/<action_id>     — Remove action

    Computation:
        POST   /api/v1/scenarios/<id>/compute                 — Run baseline vs scenario
        GET    /api/v1/scenarios/<id>/result                  — Last stored result
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from app import limiter
from app.blueprints import paginate_query
from app.services import scenario_compute, scenario_service
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

scenario_bp = Blueprint("scenario", __name__, url_prefix="/api/v1")

register_error_handlers(scenario_bp, "scenario_bp")


def _compute_limit():
    return current_app.config["SCENARIO_COMPUTE_RATE_LIMIT"]


# ═════════════════════════════════════════════════════════════════════════════
# SCENARIOS
# ═════════════════════════════════════════════════════════════════════════════

@scenario_bp.route("/scenarios", methods=["GET"])
def list_scenarios():
    """List scenarios, optionally filtered by scope."""
    scope_type = request.args.get("scope_type") or None
    scope_id = request.args.get("scope_id", type=int)
    page, total = paginate_query(scenario_service.scenario_query(scope_type, scope_id))
    return jsonify({"items": [p.to_dict() for p in page], "total": total}), 200


@scenario_bp.route("/scenarios", methods=["POST"])
def create_scenario():
    """Create a draft scenario.

    Body: {name, scope_type: "project"|"portfolio", scope_id, description?, created_by?}
    """
    data = request.get_json(silent=True) or {}
    plan = scenario_service.create_scenario(data)
    return jsonify(plan.to_dict()), 201


@scenario_bp.route("/scenarios/<int:scenario_id>", methods=["GET"])
def get_scenario(scenario_id):
    plan = scenario_service.get_scenario(scenario_id)
    return jsonify(plan.to_dict(include_children=True)), 200


@scenario_bp.route("/scenarios/<int:scenario_id>", methods=["PATCH", "PUT"])
def update_scenario(scenario_id):
    data = request.get_json(silent=True) or {}
    plan = scenario_service.update_scenario(scenario_id, data)
    return jsonify(plan.to_dict()), 200


@scenario_bp.route("/scenarios/<int:scenario_id>", methods=["DELETE"])
def delete_scenario(scenario_id):
    scenario_service.delete_scenario(scenario_id)
    return jsonify({"message": "Scenario deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

@scenario_bp.route("/scenarios/<int:scenario_id>/actions", methods=["GET"])
def list_actions(scenario_id):
    scenario_service.get_scenario(scenario_id)
    actions = scenario_service.list_actions(scenario_id)
    return jsonify([a.to_dict() for a in actions]), 200


@scenario_bp.route("/scenarios/<int:scenario_id>/actions", methods=["POST"])
def add_action(scenario_id):
    """Append an action.

    Body: {action_type, payload}
    """
    data = request.get_json(silent=True) or {}
    action_type = data.get("action_type") or data.get("actionType")
    if not action_type:
        return api_error(E.VALIDATION_REQUIRED, "action_type is required")
    payload = data.get("payload")
    if not isinstance(payload, dict):
        return api_error(E.VALIDATION_REQUIRED, "payload must be an object")

    action = scenario_service.add_action(scenario_id, action_type, payload)
    return jsonify(action.to_dict()), 201


@scenario_bp.route("/scenarios/<int:scenario_id>/actions/<int:action_id>", methods=["DELETE"])
def remove_action(scenario_id, action_id):
    scenario_service.remove_action(scenario_id, action_id)
    return jsonify({"message": "Action removed"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# COMPUTATION
# ═════════════════════════════════════════════════════════════════════════════

@scenario_bp.route("/scenarios/<int:scenario_id>/compute", methods=["POST"])
@limiter.limit(_compute_limit)
def compute_scenario(scenario_id):
    """Compute baseline vs scenario and store the result.

    Body / query: {as_of?: "YYYY-MM-DD"}, defaults to today (UTC).
    """
    data = request.get_json(silent=True) or {}
    raw_as_of = data.get("as_of") or data.get("asOf") or request.args.get("as_of")
    try:
        as_of = parse_date_input(raw_as_of)
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details={"as_of": raw_as_of})

    result = scenario_compute.compute_scenario(scenario_id, as_of)
    return jsonify(result), 200


@scenario_bp.route("/scenarios/<int:scenario_id>/result", methods=["GET"])
def get_result(scenario_id):
    plan = scenario_service.get_scenario(scenario_id)
    if plan.result is None:
        return api_error(E.NOT_FOUND, f"ScenarioPlan id={scenario_id} has not been computed")
    body = plan.result.to_dict()
    body["lifecycle"] = plan.lifecycle_state
    return jsonify(body), 200
