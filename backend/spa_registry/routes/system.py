# backend/spa_registry/routes/system.py
"""
System health endpoint.

Checks the database and reports whether roles and permissions have been
initialised and whether the background scheduler is running.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Permission, Role, SessionToken, Spa, Therapist
from ..permissions import DEFAULT_ROLES
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        spa_count = db.session.query(Spa).count()
        therapist_count = db.session.query(Therapist).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "spas": spa_count,
                "therapists": therapist_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_auth_health() -> dict:
    """Verify the default roles exist and permissions are initialised."""
    start_time = time.time()
    try:
        missing_roles = [
            name for name, _ in DEFAULT_ROLES
            if db.session.query(Role).filter_by(name=name).first() is None
        ]
        permission_count = db.session.query(Permission).count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if missing_roles or not permission_count else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "permissions_initialized": permission_count > 0,
                "permission_count": permission_count,
            }
        }
        if missing_roles:
            result["warning"] = f"Missing roles: {', '.join(missing_roles)}"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Auth health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Auth service error"
        }


def check_scheduler_health() -> dict:
    scheduler = current_app.extensions.get("scheduler")
    if scheduler is None:
        return {"status": "degraded", "warning": "Scheduler not configured"}
    return {
        "status": "healthy",
        "details": {
            "running": scheduler.running,
            "jobs": {
                job.name: {
                    "interval_seconds": int(job.interval.total_seconds()),
                    "next_run": to_utc_z(job.next_run),
                    "run_count": job.run_count,
                }
                for job in scheduler.jobs
            },
        },
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "auth": check_auth_health(),
        "scheduler": check_scheduler_health(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
