# Overview: Stock ledger; append-only stock movements and the cached per-product currentStock derived from them.

"""
Stock Ledger

Inventory model:
- stockMovements/{id} is append-only: {productId, type, quantity, referenceId,
  referenceType, date, createdAt}. quantity is unsigned; the sign comes from
  the type.
- products/{id}.currentStock is a cache of the signed movement sum, folded in
  creation order under STOCK_NEGATIVE_POLICY:
    clamp  -> a subtractive movement never takes the cache below zero
    allow  -> the cache may go negative
    reject -> a movement that would go negative raises InsufficientStock
              before anything is written
- replay_stock() recomputes the cache from the movements; reconcile_stock()
  reports (and optionally fixes) drift between the two.
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..errors import InsufficientStock, InvalidInput, ReferenceNotFound
from ..time_utils import now_z, parse_business_date
from ..validation import coerce_int
from .document_store import DocumentStore


MOVEMENT_TYPES = {
    "purchase",
    "sale",
    "return_purchase",
    "return_sale",
    "transfer_in",
    "transfer_out",
}

ADDITIVE_TYPES = {"purchase", "return_sale", "transfer_in"}

STOCK_POLICIES = {"clamp", "allow", "reject"}


def stock_policy() -> str:
    policy = current_app.config.get("STOCK_NEGATIVE_POLICY", "clamp")
    if policy not in STOCK_POLICIES:
        raise InvalidInput(f"Unknown STOCK_NEGATIVE_POLICY '{policy}'")
    return policy


def signed_quantity(movement_type: str, quantity: int) -> int:
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidInput(f"Invalid movement type '{movement_type}'")
    return quantity if movement_type in ADDITIVE_TYPES else -quantity


def _fold(stock: int, delta: int, policy: str) -> int:
    result = stock + delta
    if result < 0 and policy == "clamp":
        return 0
    return result


def get_product_doc(store: DocumentStore, product_id: str) -> dict | None:
    if not product_id:
        return None
    return store.get(f"products/{product_id}")


def current_stock(store: DocumentStore, product_id: str) -> int:
    product = get_product_doc(store, product_id)
    if product is None:
        raise ReferenceNotFound(f"Product {product_id} not found", {"productId": product_id})
    return int(product.get("currentStock") or 0)


def ensure_stock_available(store: DocumentStore, deltas: dict[str, int]) -> None:
    """
    Pre-check signed stock deltas under the reject policy.

    deltas maps productId -> signed change. No-op for clamp/allow; missing
    products are ignored (they are skipped when applied).
    """
    if stock_policy() != "reject":
        return
    for product_id, delta in deltas.items():
        if delta >= 0:
            continue
        product = get_product_doc(store, product_id)
        if product is None:
            continue
        available = int(product.get("currentStock") or 0)
        if available + delta < 0:
            raise InsufficientStock(
                f"Insufficient stock for product {product.get('name') or product_id}",
                {"productId": product_id, "available": available, "requested": -delta},
            )


def apply_movement(
    store: DocumentStore,
    *,
    product_id: str,
    movement_type: str,
    quantity,
    reference_id: str | None = None,
    reference_type: str | None = None,
    date=None,
) -> dict:
    """
    Write one movement fact, then move the product's cached currentStock.

    Raises ReferenceNotFound / InvalidInput / InsufficientStock before the
    movement is written.
    """
    qty = coerce_int(quantity, "quantity", minimum=1)
    delta = signed_quantity(movement_type, qty)

    product = get_product_doc(store, product_id)
    if product is None:
        raise ReferenceNotFound(f"Product {product_id} not found", {"productId": product_id})

    policy = stock_policy()
    before = int(product.get("currentStock") or 0)
    if policy == "reject" and before + delta < 0:
        raise InsufficientStock(
            f"Insufficient stock for product {product.get('name') or product_id}",
            {"productId": product_id, "available": before, "requested": qty},
        )
    after = _fold(before, delta, policy)
    if after != before + delta:
        current_app.logger.warning(
            "Stock for product %s clamped at zero (%s %s from %s)",
            product_id, movement_type, qty, before,
        )

    try:
        movement_date = parse_business_date(date)
    except ValueError:
        raise InvalidInput("Invalid movement date")

    movement_id = store.push_key("stockMovements")
    movement = store.put(f"stockMovements/{movement_id}", {
        "productId": product_id,
        "type": movement_type,
        "quantity": qty,
        "referenceId": reference_id,
        "referenceType": reference_type,
        "date": movement_date,
        "createdAt": now_z(),
    })
    store.update(f"products/{product_id}", {
        "currentStock": after,
        "updatedAt": now_z(),
    })
    return movement


def list_movements(
    store: DocumentStore,
    product_id: str | None = None,
    reference_id: str | None = None,
) -> list[dict]:
    """Movements in creation order, optionally filtered."""
    def _match(m: dict) -> bool:
        if product_id is not None and m.get("productId") != product_id:
            return False
        if reference_id is not None and m.get("referenceId") != reference_id:
            return False
        return True

    return store.list("stockMovements", where=_match)


def replay_stock(store: DocumentStore, product_id: str) -> int:
    """Recompute a product's stock by folding its movements in creation order."""
    policy = stock_policy()
    stock = 0
    for movement in list_movements(store, product_id=product_id):
        delta = signed_quantity(movement["type"], int(movement.get("quantity") or 0))
        stock = _fold(stock, delta, policy)
    return stock


def reconcile_stock(
    store: DocumentStore,
    product_id: str | None = None,
    *,
    fix: bool = False,
) -> list[dict]:
    """
    Compare cached currentStock with the replayed movement sum.

    Returns one report per drifted product: {productId, cached, replayed, drift}.
    With fix=True the cache is rewritten to the replayed value (caller commits).
    """
    if product_id is not None:
        product = get_product_doc(store, product_id)
        if product is None:
            raise ReferenceNotFound(f"Product {product_id} not found", {"productId": product_id})
        products = [product]
    else:
        products = store.list("products")

    reports = []
    for product in products:
        cached = int(product.get("currentStock") or 0)
        replayed = replay_stock(store, product["id"])
        if cached == replayed:
            continue
        current_app.logger.warning(
            "Stock drift on product %s: cached=%s replayed=%s", product["id"], cached, replayed
        )
        if fix:
            store.update(f"products/{product['id']}", {"currentStock": replayed, "updatedAt": now_z()})
        reports.append({
            "productId": product["id"],
            "cached": cached,
            "replayed": replayed,
            "drift": cached - replayed,
        })
    return reports


def aggregate_quantities(items: Iterable[dict]) -> dict[str, int]:
    """productId -> total quantity over item lines (insertion order kept)."""
    totals: dict[str, int] = {}
    for item in items:
        pid = item.get("productId")
        if not pid:
            continue
        totals[pid] = totals.get(pid, 0) + int(item.get("quantity") or 0)
    return totals
