"""
System Routes - health and status endpoints
"""

from flask import Blueprint, current_app
import socket

from sqlalchemy import text

from api_responses import handle_api_errors, success_response
from constants import BUILD_VERSION
from utils import now_utc

system_bp = Blueprint("system", __name__, url_prefix="/api/v1/system")


@system_bp.route("/health", methods=["GET"])
@handle_api_errors
def health_check_api():
    """
    Health check endpoint for monitoring.
    """
    store = current_app.extensions["feature_store"]
    overall_status = "healthy"
    checks = {
        "timestamp": now_utc().isoformat(),
        "version": BUILD_VERSION,
        "hostname": socket.gethostname(),
        "database": "unknown",
        "scheduler": "disabled",
    }

    # Check Database connection
    try:
        with store.session_scope() as session:
            session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)}"
        overall_status = "unhealthy"

    scheduler = current_app.extensions.get("job_scheduler")
    if scheduler is not None:
        checks["scheduler"] = "running" if scheduler.running else "stopped"

    checks["status"] = overall_status
    return success_response(checks, status_code=200 if overall_status == "healthy" else 503)


@system_bp.route("/status", methods=["GET"])
@handle_api_errors
def status_api():
    """Sync checkpoint, store statistics and scheduled jobs"""
    store = current_app.extensions["feature_store"]
    sync_service = current_app.extensions["sync_service"]
    scheduler = current_app.extensions.get("job_scheduler")

    return success_response(
        {
            "version": BUILD_VERSION,
            "sync": sync_service.get_sync_status(),
            "store": store.get_stats(),
            "cache": store.get_cache_info(),
            "jobs": scheduler.get_jobs() if scheduler is not None else [],
        }
    )
