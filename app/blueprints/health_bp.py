"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        simple 200 for load balancers
    GET /api/v1/health/live   database check and scheduler state
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness probe: always 200 if the app is running."""
    return jsonify({"status": "ok", "app": "ProcessFlow"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    scheduler = current_app.extensions.get("scheduler")
    running = bool(scheduler and scheduler._thread is not None and scheduler._thread.is_alive())
    checks["scheduler"] = {
        "status": "running" if running else "idle",
        "enabled": current_app.config.get("SCHEDULER_ENABLED", False),
    }

    checks["app"] = {
        "name": "ProcessFlow",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "demo_mode": current_app.config.get("DEMO_MODE", False),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
