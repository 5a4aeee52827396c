# backend/printdesk/routes/system.py
"""
Health endpoint: database reachability and upload directory status.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..services.storage_service import get_blob_store
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_storage_health() -> dict:
    root = get_blob_store().root
    if root.is_dir():
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": "Upload directory missing"}


@system_bp.get("/health")
def health():
    checks = {"database": check_database_health(), "storage": check_storage_health()}
    healthy = all(c["status"] == "healthy" for c in checks.values())
    return jsonify({
        "status": "OK" if healthy else "DEGRADED",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), 200 if healthy else 503
