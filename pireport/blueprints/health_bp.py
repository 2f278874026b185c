"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        - simple 200 for load balancers
    GET /api/v1/health/ready  - same, kept for probe configs
    GET /api/v1/health/live   - database and schema status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from pireport.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe - always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with database status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check - database failed: %s", exc)

    if overall:
        try:
            snapshots = db.session.execute(db.text("SELECT COUNT(*) FROM iteration_snapshots")).scalar()
            checks["schema"] = {"status": "ok", "snapshots": snapshots}
        except SQLAlchemyError:
            db.session.rollback()
            checks["schema"] = {"status": "missing", "detail": "run 'flask db upgrade'"}
            overall = False

    checks["app"] = {
        "name": "PI Change Report",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "baseline_iteration": current_app.config.get("BASELINE_ITERATION", 1),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
