# Overview: Flask API routes for products, customers and suppliers.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..services import catalog_service, payment_service
from ..validation import to_number


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.post("/products")
@with_tenant_store
def create_product_route():
    """Create a product; a non-zero currentStock is booked as opening stock."""
    try:
        product = catalog_service.create_product(g.store, request.get_json(silent=True))
        return jsonify({"product": product}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products")
@with_tenant_store
def list_products_route():
    return jsonify({"products": catalog_service.list_products(g.store)}), 200


@catalog_bp.get("/products/low-stock")
@with_tenant_store
def low_stock_route():
    return jsonify({"products": catalog_service.low_stock_products(g.store)}), 200


@catalog_bp.post("/customers")
@with_tenant_store
def create_customer_route():
    try:
        customer = catalog_service.create_customer(g.store, request.get_json(silent=True))
        return jsonify({"customer": customer}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/customers/<customer_id>/balance")
@with_tenant_store
def customer_balance_route(customer_id: str):
    """Outstanding balance: sum of remainingBalance over the customer's sales."""
    try:
        customer = catalog_service.get_customer(g.store, customer_id)
    except LedgerError as e:
        return ledger_error_response(e)

    sales = payment_service.outstanding_sales(g.store, customer_id)
    return jsonify({
        "customerId": customer["id"],
        "name": customer.get("name"),
        "balance": to_number(payment_service.customer_outstanding_balance(g.store, customer_id)),
        "openSales": [
            {
                "saleId": s["id"],
                "invoiceNumber": s.get("invoiceNumber"),
                "saleDate": s.get("saleDate"),
                "remainingBalance": s.get("remainingBalance"),
            }
            for s in sales
        ],
    }), 200


@catalog_bp.post("/suppliers")
@with_tenant_store
def create_supplier_route():
    try:
        supplier = catalog_service.create_supplier(g.store, request.get_json(silent=True))
        return jsonify({"supplier": supplier}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


def _edit(update, entity_id: str, key: str, what: str):
    try:
        return jsonify({key: update(g.store, entity_id, request.get_json(silent=True))}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update %s", what)
        return jsonify({"error": "Internal server error"}), 500


def _remove(delete, entity_id: str, what: str):
    try:
        delete(g.store, entity_id)
        return jsonify({"deleted": entity_id}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete %s", what)
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<product_id>")
@with_tenant_store
def update_product_route(product_id: str):
    """Edit product details; currentStock is rejected (the ledger moves it)."""
    return _edit(catalog_service.update_product, product_id, "product", "product")


@catalog_bp.delete("/products/<product_id>")
@with_tenant_store
def delete_product_route(product_id: str):
    return _remove(catalog_service.delete_product, product_id, "product")


@catalog_bp.patch("/customers/<customer_id>")
@with_tenant_store
def update_customer_route(customer_id: str):
    return _edit(catalog_service.update_customer, customer_id, "customer", "customer")


@catalog_bp.delete("/customers/<customer_id>")
@with_tenant_store
def delete_customer_route(customer_id: str):
    return _remove(catalog_service.delete_customer, customer_id, "customer")


@catalog_bp.patch("/suppliers/<supplier_id>")
@with_tenant_store
def update_supplier_route(supplier_id: str):
    """Edit supplier details; balance is rejected (purchases maintain it)."""
    return _edit(catalog_service.update_supplier, supplier_id, "supplier", "supplier")


@catalog_bp.delete("/suppliers/<supplier_id>")
@with_tenant_store
def delete_supplier_route(supplier_id: str):
    return _remove(catalog_service.delete_supplier, supplier_id, "supplier")
