"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — status + version summary
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — liveness check with database round-trip
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "app": current_app.config.get("APP_NAME", "Scenario Analytics Platform"),
        "version": current_app.config.get("APP_VERSION", ""),
    }), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Engine settings ──────────────────────────────────────────────
    checks["engine"] = {
        "default_capacity_hours": current_app.config.get("DEFAULT_CAPACITY_HOURS"),
        "critical_float_tolerance_minutes": current_app.config.get(
            "CRITICAL_FLOAT_TOLERANCE_MINUTES"
        ),
    }

    checks["app"] = {
        "name": current_app.config.get("APP_NAME", "Scenario Analytics Platform"),
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
