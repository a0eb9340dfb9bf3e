# Overview: Purchase lifecycle; create/update/delete of purchases with stock receipt and supplier balance updates.

"""
Purchase Lifecycle Service

Mirror of sale_service with the additive direction:
- effective quantities exist only for status "completed"
- positive deltas emit "purchase" movements, negative ones "return_purchase"
- NewProductLine entries create their product (currentStock 0) before any
  stock is received, then behave like ExistingProductLine

SUPPLIER BALANCE (SUPPLIER_BALANCE_POLICY):
    additive -> every save of a completed purchase adds its netAmount to the
                supplier balance, including repeated edits
    diffed   -> the supplier holds exactly netAmount per completed purchase;
                an edit adds only the difference

Either way the purchase records what it added in balanceContributed, and
delete_purchase takes that amount back off the supplier.

Write order: purchase document -> new products -> stock movements -> supplier.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InvalidInput, ReferenceNotFound
from ..time_utils import now_z, parse_business_date
from ..validation import coerce_money, coerce_text, money, require_mapping, to_number
from . import catalog_service, ledger_service
from .document_service import ensure_invoice_unused, next_invoice_number
from .document_store import DocumentStore
from .lifecycle_service import (
    PURCHASE_STATUSES,
    PURCHASE_TRANSITIONS,
    LifecycleOutcome,
    execute,
    require_transition,
    validate_status,
)
from .line_items import ExistingProductLine, NewProductLine, PurchaseLineInput, parse_purchase_lines, quantities


PURCHASES = "purchases"

ZERO = Decimal("0.00")

BALANCE_POLICIES = {"additive", "diffed"}

PATCHABLE_FIELDS = {"supplierId", "purchaseDate", "status", "items", "discount", "invoiceNumber", "notes"}


def balance_policy() -> str:
    policy = current_app.config.get("SUPPLIER_BALANCE_POLICY", "additive")
    if policy not in BALANCE_POLICIES:
        raise InvalidInput(f"Unknown SUPPLIER_BALANCE_POLICY '{policy}'")
    return policy


def get_purchase(store: DocumentStore, purchase_id: str) -> dict:
    purchase = store.get(f"{PURCHASES}/{purchase_id}")
    if purchase is None:
        raise ReferenceNotFound(f"Purchase {purchase_id} not found", {"id": purchase_id})
    return purchase


def list_purchases(store: DocumentStore, supplier_id: str | None = None) -> list[dict]:
    purchases = store.list(
        PURCHASES,
        where=lambda p: supplier_id is None or p.get("supplierId") == supplier_id,
    )
    return sorted(purchases, key=lambda p: (p.get("purchaseDate") or "", p.get("createdAt") or ""))


def compute_totals(lines: list[PurchaseLineInput], discount: Decimal) -> dict:
    total = sum((line.total for line in lines), ZERO)
    net = total - discount
    if net < 0:
        raise InvalidInput("discount cannot exceed the purchase total")
    return {
        "totalItems": sum(line.quantity for line in lines),
        "totalAmount": to_number(total),
        "discount": to_number(discount),
        "netAmount": to_number(net),
    }


def _require_supplier(store: DocumentStore, supplier_id) -> dict:
    return catalog_service.get_supplier(store, coerce_text(supplier_id, "supplierId"))


def _existing_quantities(status: str, lines) -> dict[str, int]:
    """Effective quantities of lines whose product already exists by id."""
    if status != "completed":
        return {}
    if lines and isinstance(lines[0], dict):
        return ledger_service.aggregate_quantities(lines)
    return quantities([line for line in lines if isinstance(line, ExistingProductLine)])


def _stock_deltas(before: dict[str, int], after: dict[str, int]) -> dict[str, int]:
    """productId -> signed stock change (purchases add stock)."""
    deltas = {}
    for product_id in list(after) + [p for p in before if p not in after]:
        change = after.get(product_id, 0) - before.get(product_id, 0)
        if change:
            deltas[product_id] = change
    return deltas


def _resolve_new_products(store: DocumentStore, lines: list[PurchaseLineInput]) -> list[ExistingProductLine]:
    resolved = []
    for line in lines:
        if isinstance(line, NewProductLine):
            product = catalog_service.insert_product(store, line.product)
            current_app.logger.info("Created product %s (%s) from purchase line", product["id"], product.get("code"))
            line = line.resolve(product["id"])
        resolved.append(line)
    return resolved


def _apply_stock(store: DocumentStore, purchase_id: str, deltas: dict[str, int], purchase_date: str, outcome: LifecycleOutcome) -> None:
    for product_id, delta in deltas.items():
        try:
            movement = ledger_service.apply_movement(
                store,
                product_id=product_id,
                movement_type="purchase" if delta > 0 else "return_purchase",
                quantity=abs(delta),
                reference_id=purchase_id,
                reference_type="purchase",
                date=purchase_date,
            )
        except ReferenceNotFound:
            current_app.logger.warning(
                "Purchase %s references missing product %s; stock not moved", purchase_id, product_id
            )
            outcome.skipped_product_ids.append(product_id)
            continue
        outcome.movements.append(movement)


def _adjust_supplier(store: DocumentStore, supplier_id: str, amount: Decimal) -> None:
    if not amount or not supplier_id:
        return
    supplier = store.get(f"suppliers/{supplier_id}")
    if supplier is None:
        current_app.logger.warning("Supplier %s vanished; balance not adjusted by %s", supplier_id, amount)
        return
    store.update(f"suppliers/{supplier_id}", {
        "balance": to_number(money(supplier.get("balance")) + amount),
        "updatedAt": now_z(),
    })


def _balance_change(status: str, net: Decimal, contributed: Decimal) -> Decimal:
    """What this save adds to the supplier balance."""
    if status != "completed":
        return ZERO if balance_policy() == "additive" else -contributed
    if balance_policy() == "additive":
        return net
    return net - contributed


def create_purchase(store: DocumentStore, draft) -> LifecycleOutcome:
    """
    Persist a new purchase; a completed purchase receives its items into stock
    and raises the supplier balance by netAmount.
    """
    draft = require_mapping(draft, "purchase")
    status = validate_status(draft.get("status", "pending"), PURCHASE_STATUSES, "purchase")
    supplier = _require_supplier(store, draft.get("supplierId"))
    lines = parse_purchase_lines(draft.get("items"))
    totals = compute_totals(lines, coerce_money(draft.get("discount"), "discount", default=ZERO))
    try:
        purchase_date = parse_business_date(draft.get("purchaseDate"))
    except ValueError:
        raise InvalidInput("Invalid purchaseDate")

    invoice_number = coerce_text(draft.get("invoiceNumber"), "invoiceNumber", required=False)
    if invoice_number:
        ensure_invoice_unused(store, "purchase", invoice_number)

    purchase_id = store.push_key(PURCHASES)
    added = _balance_change(status, money(totals["netAmount"]), ZERO)

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        now = now_z()
        body = {
            "invoiceNumber": invoice_number or next_invoice_number(store, "purchase"),
            "supplierId": supplier["id"],
            "supplierName": supplier.get("name") or "",
            "status": status,
            "purchaseDate": purchase_date,
            "notes": coerce_text(draft.get("notes"), "notes", required=False, max_length=2000) or "",
            "items": [],
            **totals,
            "balanceContributed": to_number(added),
            "createdAt": now,
            "updatedAt": now,
        }
        store.put(f"{PURCHASES}/{purchase_id}", body)
        resolved = _resolve_new_products(store, lines)
        body["items"] = [line.to_document() for line in resolved]
        outcome.document = store.put(f"{PURCHASES}/{purchase_id}", body)
        _apply_stock(store, purchase_id, _stock_deltas({}, _existing_quantities(status, resolved)), purchase_date, outcome)
        _adjust_supplier(store, supplier["id"], added)
        return outcome

    return execute(
        store,
        operation="create_purchase",
        target=store.path(PURCHASES, purchase_id),
        apply=_apply,
        product_ids=_existing_quantities(status, lines).keys(),
    )


def update_purchase(store: DocumentStore, purchase_id: str, patch) -> LifecycleOutcome:
    patch = require_mapping(patch, "purchase patch")
    unknown = set(patch) - PATCHABLE_FIELDS - {"id"}
    if unknown:
        raise InvalidInput(f"Unknown purchase field(s): {', '.join(sorted(unknown))}")

    old = get_purchase(store, purchase_id)
    old_status = old.get("status") or "pending"
    new_status = validate_status(patch.get("status", old_status), PURCHASE_STATUSES, "purchase")
    require_transition(old_status, new_status, PURCHASE_TRANSITIONS, "purchase")

    old_supplier_id = old.get("supplierId")
    if "supplierId" in patch and patch["supplierId"] != old_supplier_id:
        supplier = _require_supplier(store, patch["supplierId"])
    else:
        supplier = store.get(f"suppliers/{old_supplier_id}") or {"id": old_supplier_id, "name": old.get("supplierName")}

    lines = parse_purchase_lines(patch["items"] if "items" in patch else old.get("items"))
    if "discount" in patch:
        discount = coerce_money(patch.get("discount"), "discount", default=ZERO)
    else:
        discount = money(old.get("discount"))
    totals = compute_totals(lines, discount)
    try:
        purchase_date = parse_business_date(patch.get("purchaseDate", old.get("purchaseDate")))
    except ValueError:
        raise InvalidInput("Invalid purchaseDate")

    invoice_number = old.get("invoiceNumber")
    if patch.get("invoiceNumber") and patch["invoiceNumber"] != invoice_number:
        invoice_number = coerce_text(patch["invoiceNumber"], "invoiceNumber")
        ensure_invoice_unused(store, "purchase", invoice_number, exclude_id=purchase_id)

    before = _existing_quantities(old_status, old.get("items") or [])
    ledger_service.ensure_stock_available(
        store,
        _stock_deltas(before, _existing_quantities(new_status, lines)),
    )

    contributed = money(old.get("balanceContributed"))
    supplier_moved = supplier["id"] != old_supplier_id

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        body = dict(old)
        body.pop("id", None)
        body.update({
            "invoiceNumber": invoice_number,
            "supplierId": supplier["id"],
            "supplierName": supplier.get("name") or "",
            "status": new_status,
            "purchaseDate": purchase_date,
            "notes": coerce_text(patch.get("notes", old.get("notes")), "notes", required=False, max_length=2000) or "",
            **totals,
            "updatedAt": now_z(),
        })
        store.put(f"{PURCHASES}/{purchase_id}", body)
        resolved = _resolve_new_products(store, lines)
        deltas = _stock_deltas(before, _existing_quantities(new_status, resolved))
        _apply_stock(store, purchase_id, deltas, purchase_date, outcome)

        if supplier_moved:
            # The old supplier gives back everything this purchase added to it
            _adjust_supplier(store, old_supplier_id, -contributed)
            added = _balance_change(new_status, money(totals["netAmount"]), ZERO)
            new_contribution = added
        else:
            added = _balance_change(new_status, money(totals["netAmount"]), contributed)
            new_contribution = contributed + added
        _adjust_supplier(store, supplier["id"], added)

        body["items"] = [line.to_document() for line in resolved]
        body["balanceContributed"] = to_number(new_contribution)
        outcome.document = store.put(f"{PURCHASES}/{purchase_id}", body)
        return outcome

    return execute(
        store,
        operation="update_purchase",
        target=store.path(PURCHASES, purchase_id),
        apply=_apply,
        product_ids=set(before) | set(_existing_quantities(new_status, lines)),
    )


def delete_purchase(store: DocumentStore, purchase_id: str) -> LifecycleOutcome:
    """Take a completed purchase's items back out of stock, undo its supplier balance, remove it."""
    purchase = get_purchase(store, purchase_id)
    completed = (purchase.get("status") or "pending") == "completed"
    lines = [
        raw for raw in (purchase.get("items") or [])
        if isinstance(raw, dict) and raw.get("productId") and int(raw.get("quantity") or 0) > 0
    ] if completed else []
    ledger_service.ensure_stock_available(
        store,
        _stock_deltas(ledger_service.aggregate_quantities(lines), {}),
    )
    contributed = money(purchase.get("balanceContributed"))

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        for raw in lines:
            _apply_stock(
                store,
                purchase_id,
                {raw["productId"]: -int(raw["quantity"])},
                purchase.get("purchaseDate"),
                outcome,
            )
        if purchase.get("supplierId"):
            _adjust_supplier(store, purchase["supplierId"], -contributed)
        store.remove(f"{PURCHASES}/{purchase_id}")
        return outcome

    return execute(
        store,
        operation="delete_purchase",
        target=store.path(PURCHASES, purchase_id),
        apply=_apply,
        product_ids=[raw["productId"] for raw in lines],
    )
