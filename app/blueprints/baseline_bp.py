"""
Scenario Analytics Platform
Baseline Blueprint — schedule baselines and variance comparison.

Endpoints:
    GET    /api/v1/projects/<pid>/baselines          — List project baselines
    POST   /api/v1/projects/<pid>/baselines          — Freeze current schedule
    GET    /api/v1/baselines/<id>                    — Detail (+ frozen tasks)
    POST   /api/v1/baselines/<id>/activate           — Make the project's active baseline
    GET    /api/v1/baselines/<id>/compare            — Variance vs live schedule (?as_of)
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import baseline_service
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

baseline_bp = Blueprint("baseline", __name__, url_prefix="/api/v1")

register_error_handlers(baseline_bp, "baseline_bp")


@baseline_bp.route("/projects/<int:project_id>/baselines", methods=["GET"])
def list_baselines(project_id):
    baselines = baseline_service.list_baselines(project_id)
    return jsonify([b.to_dict() for b in baselines]), 200


@baseline_bp.route("/projects/<int:project_id>/baselines", methods=["POST"])
def create_baseline(project_id):
    """Capture a baseline.

    Body: {name, set_active?: bool, created_by?}
    """
    data = request.get_json(silent=True) or {}
    set_active = data.get("set_active", data.get("setActive", False))
    if not isinstance(set_active, bool):
        return api_error(E.VALIDATION_INVALID, "set_active must be a boolean")

    baseline = baseline_service.create_baseline(
        project_id,
        data.get("name"),
        set_active=set_active,
        created_by=data.get("created_by") or "",
    )
    return jsonify(baseline.to_dict(include_tasks=True)), 201


@baseline_bp.route("/baselines/<int:baseline_id>", methods=["GET"])
def get_baseline(baseline_id):
    baseline = baseline_service.get_baseline(baseline_id)
    return jsonify(baseline.to_dict(include_tasks=True)), 200


@baseline_bp.route("/baselines/<int:baseline_id>/activate", methods=["POST"])
def activate_baseline(baseline_id):
    baseline = baseline_service.activate_baseline(baseline_id)
    return jsonify(baseline.to_dict()), 200


@baseline_bp.route("/baselines/<int:baseline_id>/compare", methods=["GET"])
def compare_baseline(baseline_id):
    raw_as_of = request.args.get("as_of")
    try:
        as_of = parse_date_input(raw_as_of)
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details={"as_of": raw_as_of})
    return jsonify(baseline_service.compare_baseline(baseline_id, as_of)), 200
