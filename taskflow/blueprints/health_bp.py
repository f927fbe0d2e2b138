"""
Health check blueprint.

Endpoints:
    GET /api/health  — liveness with a database round trip (no auth)
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

from taskflow.models import db, isoformat, utcnow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.route("/health", methods=["GET"])
def health():
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        database = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
        healthy = True
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        database = {"status": "error"}
        healthy = False

    return jsonify({
        "success": healthy,
        "message": "TaskFlow API is running" if healthy else "Database unavailable",
        "timestamp": isoformat(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
