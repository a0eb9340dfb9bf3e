# backend/shopledger/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports the ledger policies in effect, which
is what matters when debugging a deployment's stock or balance behaviour.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import now_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": now_z(),
        "checks": {"database": database},
        "policies": {
            "atomic_operations": bool(current_app.config.get("LEDGER_ATOMIC_OPERATIONS", True)),
            "stock_negative": current_app.config.get("STOCK_NEGATIVE_POLICY"),
            "supplier_balance": current_app.config.get("SUPPLIER_BALANCE_POLICY"),
            "invoice_sequence": current_app.config.get("INVOICE_SEQUENCE_MODE"),
        },
    }), 200 if healthy else 503
