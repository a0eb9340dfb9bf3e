# Overview: Products, customers and suppliers; creation with opening stock, edits, deletes and lookups.

"""
Catalog Service

Products carry a cached currentStock that only the stock ledger moves. A
product created with opening stock gets a transfer_in movement
(referenceType "opening_stock"), so the cache equals the movement sum from
the first write.

Customers carry no stored balance: what a customer owes is the sum of
remainingBalance over their sales. Suppliers carry a running balance that
purchase_service maintains.

Edits never touch those derived fields: a patch carrying currentStock (product)
or balance (supplier) is rejected. Deleting a product or party removes the
document only; movements, sales and purchases that name it stay as they are,
and later lifecycle operations skip the missing product with a warning.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InvalidInput, ReferenceNotFound
from ..time_utils import now_z
from ..validation import coerce_int, coerce_money, coerce_text, require_mapping, to_number
from . import ledger_service
from .document_store import DocumentStore
from .lifecycle_service import execute


PRODUCTS = "products"
CUSTOMERS = "customers"
SUPPLIERS = "suppliers"

ZERO = Decimal("0.00")


def parse_product(data) -> tuple[dict, int]:
    """Validated product body plus its opening stock quantity."""
    data = require_mapping(data, "product")
    body = {
        "code": coerce_text(data.get("code"), "code", required=False) or "",
        "name": coerce_text(data.get("name"), "name"),
        "category": coerce_text(data.get("category"), "category", required=False) or "",
        "unit": coerce_text(data.get("unit"), "unit", required=False) or "pcs",
        "tradePrice": to_number(coerce_money(data.get("tradePrice"), "tradePrice", default=ZERO)),
        "salePrice": to_number(coerce_money(data.get("salePrice"), "salePrice", default=ZERO)),
        "minStockLevel": coerce_int(data.get("minStockLevel", 10), "minStockLevel", minimum=0),
    }
    for flag in ("isBattery",):
        if flag in data:
            body[flag] = bool(data[flag])
    for text_field in ("packing", "retailer"):
        if data.get(text_field):
            body[text_field] = coerce_text(data.get(text_field), text_field, required=False)
    opening = coerce_int(data.get("currentStock", 0), "currentStock", minimum=0)
    return body, opening


def insert_product(store: DocumentStore, body: dict, opening_stock: int = 0) -> dict:
    """Write a product (and its opening stock movement). Caller owns the transaction."""
    product_id = store.push_key(PRODUCTS)
    now = now_z()
    product = store.put(f"{PRODUCTS}/{product_id}", {
        **body,
        "currentStock": 0,
        "createdAt": now,
        "updatedAt": now,
    })
    if opening_stock:
        ledger_service.apply_movement(
            store,
            product_id=product_id,
            movement_type="transfer_in",
            quantity=opening_stock,
            reference_id=product_id,
            reference_type="opening_stock",
        )
        product = store.get(f"{PRODUCTS}/{product_id}")
    return product


def create_product(store: DocumentStore, data) -> dict:
    body, opening = parse_product(data)
    return execute(
        store,
        operation="create_product",
        target=None,
        apply=lambda: insert_product(store, body, opening),
    )


def get_product(store: DocumentStore, product_id: str) -> dict:
    product = ledger_service.get_product_doc(store, product_id)
    if product is None:
        raise ReferenceNotFound(f"Product {product_id} not found", {"productId": product_id})
    return product


def list_products(store: DocumentStore) -> list[dict]:
    return sorted(store.list(PRODUCTS), key=lambda p: (p.get("name") or "").lower())


def low_stock_products(store: DocumentStore) -> list[dict]:
    """Products at or below their minimum stock level."""
    return [
        p for p in list_products(store)
        if int(p.get("currentStock") or 0) <= int(p.get("minStockLevel") or 0)
    ]


def _create_party(store: DocumentStore, collection: str, data, *, with_balance: bool) -> dict:
    data = require_mapping(data, collection[:-1])
    body = {
        "name": coerce_text(data.get("name"), "name"),
        "phone": coerce_text(data.get("phone"), "phone", required=False) or "",
        "address": coerce_text(data.get("address"), "address", required=False, max_length=1000) or "",
    }
    if with_balance:
        if data.get("balance") not in (None, "", 0):
            raise InvalidInput("supplier balance starts at 0 and is maintained by purchases")
        body["balance"] = 0.0
    now = now_z()
    body["createdAt"] = now
    body["updatedAt"] = now

    key = store.push_key(collection)
    return execute(
        store,
        operation=f"create_{collection[:-1]}",
        target=store.path(collection, key),
        apply=lambda: store.put(f"{collection}/{key}", body),
    )


def create_customer(store: DocumentStore, data) -> dict:
    return _create_party(store, CUSTOMERS, data, with_balance=False)


def create_supplier(store: DocumentStore, data) -> dict:
    return _create_party(store, SUPPLIERS, data, with_balance=True)


def get_customer(store: DocumentStore, customer_id: str) -> dict:
    customer = store.get(f"{CUSTOMERS}/{customer_id}") if customer_id else None
    if customer is None:
        raise ReferenceNotFound(f"Customer {customer_id} not found", {"customerId": customer_id})
    return customer


def get_supplier(store: DocumentStore, supplier_id: str) -> dict:
    supplier = store.get(f"{SUPPLIERS}/{supplier_id}") if supplier_id else None
    if supplier is None:
        raise ReferenceNotFound(f"Supplier {supplier_id} not found", {"supplierId": supplier_id})
    return supplier


# =============================================================================
# EDITS AND DELETES
# =============================================================================

PRODUCT_FIELDS = {
    "code", "name", "category", "unit", "tradePrice", "salePrice",
    "minStockLevel", "isBattery", "packing", "retailer",
}
PARTY_FIELDS = {"name", "phone", "address"}


def _check_patch(patch, allowed: set[str], derived: str, label: str) -> dict:
    patch = require_mapping(patch, f"{label} patch")
    if derived in patch:
        raise InvalidInput(f"{label} {derived} is derived and cannot be edited", {"field": derived})
    unknown = set(patch) - allowed - {"id"}
    if unknown:
        raise InvalidInput(f"Unknown {label} field(s): {', '.join(sorted(unknown))}")
    return patch


def update_product(store: DocumentStore, product_id: str, patch) -> dict:
    """Edit product details; currentStock only moves through the stock ledger."""
    patch = _check_patch(patch, PRODUCT_FIELDS, "currentStock", "product")
    old = get_product(store, product_id)
    merged = {k: v for k, v in old.items() if k in PRODUCT_FIELDS}
    merged.update(patch)
    body, _ = parse_product(merged)
    for text_field in ("packing", "retailer"):
        if text_field in patch and text_field not in body:
            body[text_field] = ""
    body["updatedAt"] = now_z()
    return execute(
        store,
        operation="update_product",
        target=store.path(PRODUCTS, product_id),
        apply=lambda: store.update(f"{PRODUCTS}/{product_id}", body),
    )


def delete_product(store: DocumentStore, product_id: str) -> None:
    product = get_product(store, product_id)
    execute(
        store,
        operation="delete_product",
        target=store.path(PRODUCTS, product_id),
        apply=lambda: store.remove(f"{PRODUCTS}/{product_id}"),
    )
    current_app.logger.info(
        "Deleted product %s (%s) with cached stock %s",
        product_id, product.get("name"), product.get("currentStock"),
    )


def _update_party(store: DocumentStore, collection: str, party: dict, patch, *, derived: str) -> dict:
    label = collection[:-1]
    patch = _check_patch(patch, PARTY_FIELDS, derived, label)
    body = {}
    if "name" in patch:
        body["name"] = coerce_text(patch.get("name"), "name")
    for text_field in ("phone", "address"):
        if text_field in patch:
            max_length = 1000 if text_field == "address" else 255
            body[text_field] = coerce_text(patch.get(text_field), text_field, required=False, max_length=max_length) or ""
    body["updatedAt"] = now_z()
    return execute(
        store,
        operation=f"update_{label}",
        target=store.path(collection, party["id"]),
        apply=lambda: store.update(f"{collection}/{party['id']}", body),
    )


def _delete_party(store: DocumentStore, collection: str, party: dict) -> None:
    execute(
        store,
        operation=f"delete_{collection[:-1]}",
        target=store.path(collection, party["id"]),
        apply=lambda: store.remove(f"{collection}/{party['id']}"),
    )


def update_customer(store: DocumentStore, customer_id: str, patch) -> dict:
    return _update_party(store, CUSTOMERS, get_customer(store, customer_id), patch, derived="balance")


def delete_customer(store: DocumentStore, customer_id: str) -> None:
    _delete_party(store, CUSTOMERS, get_customer(store, customer_id))


def update_supplier(store: DocumentStore, supplier_id: str, patch) -> dict:
    """Edit supplier details; balance is maintained by purchases only."""
    return _update_party(store, SUPPLIERS, get_supplier(store, supplier_id), patch, derived="balance")


def delete_supplier(store: DocumentStore, supplier_id: str) -> None:
    supplier = get_supplier(store, supplier_id)
    if float(supplier.get("balance") or 0):
        current_app.logger.warning(
            "Deleting supplier %s with outstanding balance %s", supplier_id, supplier.get("balance")
        )
    _delete_party(store, SUPPLIERS, supplier)
