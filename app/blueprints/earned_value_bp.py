"""
Scenario Analytics Platform
Earned Value Blueprint — EVM metrics per project.

Endpoints:
    GET    /api/v1/projects/<pid>/earned-value             — Live metrics (?as_of)
    GET    /api/v1/projects/<pid>/earned-value/snapshots   — Stored history, newest first
    POST   /api/v1/projects/<pid>/earned-value/snapshots   — Store a snapshot ({as_of?})
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.services import earned_value
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

earned_value_bp = Blueprint("earned_value", __name__, url_prefix="/api/v1")

register_error_handlers(earned_value_bp, "earned_value_bp")


def _as_of_arg(raw):
    try:
        return parse_date_input(raw), None
    except ValueError as exc:
        return None, api_error(E.VALIDATION_INVALID, str(exc), details={"as_of": raw})


@earned_value_bp.route("/projects/<int:project_id>/earned-value", methods=["GET"])
def get_earned_value(project_id):
    as_of, err = _as_of_arg(request.args.get("as_of"))
    if err:
        return err
    data = earned_value.get_earned_value(project_id, as_of)
    return jsonify(data.to_dict()), 200


@earned_value_bp.route("/projects/<int:project_id>/earned-value/snapshots", methods=["GET"])
def list_snapshots(project_id):
    page, total = paginate_query(earned_value.ev_snapshot_query(project_id))
    return jsonify({"items": [s.to_dict() for s in page], "total": total}), 200


@earned_value_bp.route("/projects/<int:project_id>/earned-value/snapshots", methods=["POST"])
def create_snapshot(project_id):
    data = request.get_json(silent=True) or {}
    as_of, err = _as_of_arg(data.get("as_of") or data.get("asOf"))
    if err:
        return err
    snapshot = earned_value.create_ev_snapshot(project_id, as_of)
    return jsonify(snapshot.to_dict()), 201
