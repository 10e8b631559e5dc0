"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/live   — simple 200 while the process is up
    GET /api/v1/health/ready  — database reachable, enforcement mode
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from taskhub.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/live", methods=["GET"])
def live():
    """Simple liveness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe with database status."""
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        return jsonify({"status": "degraded", "database": {"status": "error"}}), 503

    return jsonify({
        "status": "ok",
        "database": {"status": "ok", "latency_ms": round(db_ms, 1)},
        "tenancy_enforcement": current_app.extensions["tenancy_enforcement"].mode,
    }), 200
