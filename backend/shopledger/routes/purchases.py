# Overview: Flask API routes for purchases; parses input and returns JSON responses.

# backend/shopledger/routes/purchases.py
"""Purchase lifecycle API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import purchase_service


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@with_tenant_store
def create_purchase_route():
    """
    Create a purchase.

    A completed purchase receives its items into stock and adds its
    netAmount to the supplier balance.
    """
    try:
        outcome = purchase_service.create_purchase(g.store, request.get_json(silent=True))
        return jsonify({"purchase": outcome.document, "outcome": outcome.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@with_tenant_store
def list_purchases_route():
    supplier_id = request.args.get("supplier_id")
    return jsonify({"purchases": purchase_service.list_purchases(g.store, supplier_id)}), 200


@purchases_bp.get("/<purchase_id>")
@with_tenant_store
def get_purchase_route(purchase_id: str):
    try:
        return jsonify({"purchase": purchase_service.get_purchase(g.store, purchase_id)}), 200
    except LedgerError as e:
        return ledger_error_response(e)


@purchases_bp.patch("/<purchase_id>")
@with_tenant_store
def update_purchase_route(purchase_id: str):
    """
    Patch a purchase.

    Stock moves by the quantity difference; the supplier balance follows
    SUPPLIER_BALANCE_POLICY.
    """
    try:
        outcome = purchase_service.update_purchase(g.store, purchase_id, request.get_json(silent=True))
        return jsonify({"purchase": outcome.document, "outcome": outcome.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<purchase_id>")
@with_tenant_store
def delete_purchase_route(purchase_id: str):
    try:
        outcome = purchase_service.delete_purchase(g.store, purchase_id)
        return jsonify({"deleted": purchase_id, "outcome": outcome.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
