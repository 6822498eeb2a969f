# backend/salesdesk/routes/system.py
"""
System health endpoint.

Reports database reachability and the unit catalog state; used by the
counter terminals before opening.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Sale, User
from salesdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()
        user_count = db.session.query(User).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
                "users": user_count,
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


def check_units_health() -> dict:
    catalog = current_app.extensions.get("units")
    if catalog is None:
        return {"status": "unhealthy", "error": "Unit catalog not loaded"}
    active = catalog.active_codes()
    if not active:
        return {"status": "degraded", "warning": "No active units of measure"}
    return {"status": "healthy", "details": {"active_units": len(active)}}


@system_bp.get("/health")
def health():
    """
    Health check.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable or unit catalog missing
    """
    start_time = time.time()

    database_health = check_database_health()
    units_health = check_units_health()

    all_checks = [database_health, units_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "units": units_health,
        }
    }

    return response, http_status
