# Overview: Flask API routes for customer payment allocation.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/allocate")
@with_tenant_store
def allocate_payment_route():
    """
    Allocate one customer payment over their outstanding sales, oldest first.

    Body: {"customer_id": str, "amount": number, "payment_date"?: str, "note"?: str}
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get("customer_id") or data.get("customerId")
    if not customer_id:
        return jsonify({"error": "customer_id required", "kind": "InvalidInput", "details": {}}), 400

    try:
        result = payment_service.allocate_payment(
            g.store,
            customer_id,
            data.get("amount"),
            payment_date=data.get("payment_date"),
            note=data.get("note"),
        )
        return jsonify(result), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to allocate payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@with_tenant_store
def list_payments_route():
    customer_id = request.args.get("customer_id")
    return jsonify({"payments": payment_service.list_payments(g.store, customer_id)}), 200
