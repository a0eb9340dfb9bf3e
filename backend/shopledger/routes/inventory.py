# backend/shopledger/routes/inventory.py
"""
Stock ledger routes.

- stock / movements are read-only views over the ledger
- reconcile compares cached currentStock with the replayed movement sum
  (body: {"product_id": optional, "fix": bool})
- recover repairs derived state left behind by interrupted operations
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import ledger_service, maintenance_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<product_id>/stock")
@with_tenant_store
def product_stock_route(product_id: str):
    try:
        stock = ledger_service.current_stock(g.store, product_id)
    except LedgerError as e:
        return ledger_error_response(e)
    return jsonify({"productId": product_id, "currentStock": stock}), 200


@inventory_bp.get("/<product_id>/movements")
@with_tenant_store
def product_movements_route(product_id: str):
    movements = ledger_service.list_movements(g.store, product_id=product_id)
    return jsonify({"productId": product_id, "movements": movements}), 200


@inventory_bp.post("/reconcile")
@with_tenant_store
def reconcile_route():
    payload = request.get_json(silent=True) or {}
    try:
        reports = maintenance_service.reconcile(
            g.store,
            payload.get("product_id"),
            fix=bool(payload.get("fix", False)),
        )
        return jsonify({"drift": reports, "fixed": bool(payload.get("fix", False))}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/recover")
@with_tenant_store
def recover_route():
    try:
        recovered = maintenance_service.recover_intents(g.store)
        return jsonify({"recovered": recovered}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to recover intents")
        return jsonify({"error": "Internal server error"}), 500
