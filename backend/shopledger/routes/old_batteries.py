# Overview: Flask API routes for old-battery scrap stock and standalone old-battery sales.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import old_battery_service


old_batteries_bp = Blueprint("old_batteries", __name__, url_prefix="/api")


@old_batteries_bp.get("/old-batteries/stock")
@with_tenant_store
def old_battery_stock_route():
    return jsonify({"stock": old_battery_service.get_old_battery_stock(g.store)}), 200


@old_batteries_bp.post("/old-batteries/collections")
@with_tenant_store
def collect_route():
    """Scrap brought in: {name, weight, ratePerKg, quantity?, deductionAmount?}."""
    try:
        fact = old_battery_service.collect_old_battery(g.store, request.get_json(silent=True))
        return jsonify({
            "collection": fact,
            "aggregate": old_battery_service.get_aggregate(g.store, fact["name"]),
        }), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record old battery collection")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.patch("/old-batteries/collections/<fact_id>")
@with_tenant_store
def update_collection_route(fact_id: str):
    """Correct a collection entry; 409 if the scrap it removes was already used."""
    try:
        fact = old_battery_service.update_collection(g.store, fact_id, request.get_json(silent=True))
        return jsonify({
            "collection": fact,
            "aggregate": old_battery_service.get_aggregate(g.store, fact["name"]),
        }), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update old battery collection")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.delete("/old-batteries/collections/<fact_id>")
@with_tenant_store
def delete_collection_route(fact_id: str):
    try:
        old_battery_service.delete_collection(g.store, fact_id)
        return jsonify({"deleted": fact_id}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete old battery collection")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.post("/old-batteries/consumptions")
@with_tenant_store
def consume_route():
    """Scrap taken out: {name, weight, quantity?}; 409 when stock is short."""
    try:
        fact = old_battery_service.record_old_battery_consumption(g.store, request.get_json(silent=True))
        return jsonify({
            "consumption": fact,
            "aggregate": old_battery_service.get_aggregate(g.store, fact["name"]),
        }), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record old battery consumption")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.post("/old-batteries/consumptions/<fact_id>/reverse")
@with_tenant_store
def reverse_route(fact_id: str):
    try:
        reversal = old_battery_service.undo_old_battery_consumption(g.store, fact_id)
        return jsonify({"reversal": reversal}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reverse old battery consumption")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.get("/old-battery-sales")
@with_tenant_store
def list_old_battery_sales_route():
    return jsonify({"sales": old_battery_service.list_old_battery_sales(g.store)}), 200


@old_batteries_bp.post("/old-battery-sales")
@with_tenant_store
def create_old_battery_sale_route():
    try:
        sale = old_battery_service.create_old_battery_sale(g.store, request.get_json(silent=True))
        return jsonify({"sale": sale}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create old battery sale")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.patch("/old-battery-sales/<sale_id>")
@with_tenant_store
def update_old_battery_sale_route(sale_id: str):
    try:
        sale = old_battery_service.update_old_battery_sale(g.store, sale_id, request.get_json(silent=True))
        return jsonify({"sale": sale}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update old battery sale")
        return jsonify({"error": "Internal server error"}), 500


@old_batteries_bp.delete("/old-battery-sales/<sale_id>")
@with_tenant_store
def delete_old_battery_sale_route(sale_id: str):
    try:
        old_battery_service.delete_old_battery_sale(g.store, sale_id)
        return jsonify({"deleted": sale_id}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete old battery sale")
        return jsonify({"error": "Internal server error"}), 500
