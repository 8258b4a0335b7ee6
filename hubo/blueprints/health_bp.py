"""
Health check blueprint.

    GET /api/v1/health/ready   200 while the process is up
    GET /api/v1/health/live    database round-trip, task generator settings
                               and a per-stage project count; 503 if the
                               database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from hubo.models import db
from hubo.models.project import COMPLETED, Project

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


def _generator_status(config):
    # configuration only; never calls the generator
    backend = (config.get("TASK_GENERATOR_BACKEND") or "llm").lower()
    if backend == "none":
        status = "disabled"
    elif backend == "http" and not config.get("TASK_GENERATOR_URL"):
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "backend": backend,
        "status": status,
        "timeout_s": config.get("TASK_GENERATOR_TIMEOUT"),
    }


def _stage_counts():
    rows = (
        db.session.query(Project.backlog, func.count(Project.id))
        .filter(Project.status != COMPLETED)
        .group_by(Project.backlog)
        .all()
    )
    counts = {stage or "none": n for stage, n in rows}
    counts[COMPLETED] = Project.query.filter_by(status=COMPLETED).count()
    return counts


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {"task_generator": _generator_status(current_app.config)}
    healthy = True

    try:
        t0 = time.perf_counter()
        checks["projects"] = _stage_counts()
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False
        logger.error("Health check: database unreachable: %s", exc)

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
