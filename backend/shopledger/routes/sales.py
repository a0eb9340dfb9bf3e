# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""Sale lifecycle API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import sale_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@with_tenant_store
def create_sale_route():
    """
    Create a sale.

    A completed sale takes its items out of stock and consumes any old
    battery lines from scrap stock.
    """
    try:
        outcome = sale_service.create_sale(g.store, request.get_json(silent=True))
        return jsonify({"sale": outcome.document, "outcome": outcome.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@with_tenant_store
def list_sales_route():
    customer_id = request.args.get("customer_id")
    return jsonify({"sales": sale_service.list_sales(g.store, customer_id)}), 200


@sales_bp.get("/<sale_id>")
@with_tenant_store
def get_sale_route(sale_id: str):
    try:
        return jsonify({"sale": sale_service.get_sale(g.store, sale_id)}), 200
    except LedgerError as e:
        return ledger_error_response(e)


@sales_bp.patch("/<sale_id>")
@with_tenant_store
def update_sale_route(sale_id: str):
    """
    Patch a sale.

    Stock moves by the difference between the old and new item quantities.
    """
    try:
        outcome = sale_service.update_sale(g.store, sale_id, request.get_json(silent=True))
        return jsonify({"sale": outcome.document, "outcome": outcome.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<sale_id>")
@with_tenant_store
def delete_sale_route(sale_id: str):
    try:
        outcome = sale_service.delete_sale(g.store, sale_id)
        return jsonify({"deleted": sale_id, "outcome": outcome.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
