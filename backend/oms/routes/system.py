# backend/oms/routes/system.py
"""
System health endpoint.

Reports database connectivity and the post-commit outbox backlog.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Merchant, Order, OutboxEvent
from ..services.constants import OUTBOX_FAILED, OUTBOX_PENDING, OUTBOX_PROCESSING
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        merchant_count = db.session.query(Merchant).count()
        order_count = db.session.query(Order).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "merchants": merchant_count,
                "orders": order_count,
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


def check_outbox_health() -> dict:
    """
    Pending work is normal; FAILED rows mean restocks are waiting for
    `flask outbox dispatch`.
    """
    start_time = time.time()
    try:
        pending = db.session.query(OutboxEvent).filter_by(status=OUTBOX_PENDING).count()
        processing = db.session.query(OutboxEvent).filter_by(status=OUTBOX_PROCESSING).count()
        failed = db.session.query(OutboxEvent).filter_by(status=OUTBOX_FAILED).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "degraded" if failed else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "processing": processing,
                "failed": failed,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Outbox health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Outbox error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    outbox_health = check_outbox_health()

    all_checks = [database_health, outbox_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "outbox": outbox_health,
        }
    }

    return response, http_status
