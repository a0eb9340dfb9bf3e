# Overview: Sale lifecycle; create/update/delete of sale documents and their stock and old-battery side effects.

"""
Sale Lifecycle Service

================================================================================
ORDER OF WORK (every operation)
================================================================================
1. Validate: parse the draft/patch into line-item variants, compute totals,
   check customer, invoice number, status transition, and availability of
   old-battery scrap (and of product stock under the reject policy).
   Nothing is written in this phase.
2. Write, under a write-ahead intent (lifecycle_service.execute):
   persist the sale document -> apply stock movements -> old-battery effects.

STOCK EFFECTS:
Stock is moved by the difference between the *effective* quantities of the
document before and after the operation. A document only has an effective
quantity when its status is "completed":

    create:  {}            -> items(new)
    update:  items(old)    -> items(new)      (each side only if completed)
    delete:  items(old)    -> {}

Positive deltas emit "sale" movements, negative ones "return_sale". Editing
10 -> 4 therefore emits a single return_sale of 6, never a fresh sale of 4.

An item whose product no longer exists is skipped with a warning; the rest of
the sale still goes through.

OLD BATTERIES:
Lines of type ItemWithScrapConsumption take scrap out of the old-battery
aggregate (record_consumption). The consumption fact id is stored on the line
as oldBatteryId. On update, linked consumptions are reversed and re-recorded
only when the set of scrap lines changed; on delete they are reversed.
================================================================================
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InvalidInput, ReferenceNotFound
from ..time_utils import now_z, parse_business_date
from ..validation import coerce_money, coerce_text, money, require_mapping, to_number
from . import ledger_service, old_battery_service
from .document_service import ensure_invoice_unused, next_invoice_number
from .document_store import DocumentStore
from .lifecycle_service import (
    SALE_STATUSES,
    SALE_TRANSITIONS,
    LifecycleOutcome,
    execute,
    require_transition,
    validate_status,
)
from .line_items import ItemWithScrapConsumption, SaleItem, parse_sale_items, quantities


SALES = "sales"

ZERO = Decimal("0.00")

# Header fields a patch may touch directly
PATCHABLE_FIELDS = {
    "customerId",
    "customerName",
    "salesperson",
    "saleDate",
    "status",
    "items",
    "additionalDiscount",
    "amountPaid",
    "invoiceNumber",
}


# =============================================================================
# READS
# =============================================================================

def get_sale(store: DocumentStore, sale_id: str) -> dict:
    sale = store.get(f"{SALES}/{sale_id}")
    if sale is None:
        raise ReferenceNotFound(f"Sale {sale_id} not found", {"id": sale_id})
    return sale


def list_sales(store: DocumentStore, customer_id: str | None = None) -> list[dict]:
    sales = store.list(
        SALES,
        where=lambda s: customer_id is None or s.get("customerId") == customer_id,
    )
    return sorted(sales, key=lambda s: (s.get("saleDate") or "", s.get("createdAt") or ""))


# =============================================================================
# VALIDATION HELPERS (no writes)
# =============================================================================

def compute_totals(items: list[SaleItem], additional_discount: Decimal, amount_paid: Decimal) -> dict:
    """
    Money fields of a sale.

    totalAmount is the gross line value; discount folds per-line discounts,
    old-battery deductions and the header discount together.
    """
    total = sum((item.subtotal for item in items), ZERO)
    line_discounts = sum((item.discount for item in items), ZERO)
    deductions = sum((item.scrap.deduction_amount for item in items if item.scrap), ZERO)
    discount = line_discounts + deductions + additional_discount
    net = total - discount
    if net < 0:
        raise InvalidInput(
            "Discounts and old battery deductions exceed the sale total",
            {"totalAmount": to_number(total), "discount": to_number(discount)},
        )
    if amount_paid > net:
        raise InvalidInput(
            "amountPaid cannot exceed netAmount",
            {"netAmount": to_number(net), "amountPaid": to_number(amount_paid)},
        )
    return {
        "totalItems": sum(item.quantity for item in items),
        "totalAmount": to_number(total),
        "discount": to_number(discount),
        "additionalDiscount": to_number(additional_discount),
        "netAmount": to_number(net),
        "amountPaid": to_number(amount_paid),
        "remainingBalance": to_number(net - amount_paid),
    }


def _reject_stored_discount(data: dict) -> None:
    # Stored "discount" is the folded total; only additionalDiscount is input
    if "discount" in data:
        raise InvalidInput(
            "discount is computed; send the header discount as additionalDiscount",
            {"field": "discount"},
        )


def _resolve_customer(store: DocumentStore, customer_id, customer_name) -> tuple[str | None, str]:
    customer_id = coerce_text(customer_id, "customerId", required=False)
    customer_name = coerce_text(customer_name, "customerName", required=False)
    if customer_id:
        customer = store.get(f"customers/{customer_id}")
        if customer is None:
            raise ReferenceNotFound(f"Customer {customer_id} not found", {"customerId": customer_id})
        customer_name = customer_name or customer.get("name")
    return customer_id, customer_name or ""


def _effective_quantities(status: str, items) -> dict[str, int]:
    if status != "completed":
        return {}
    if items and isinstance(items[0], dict):
        return ledger_service.aggregate_quantities(items)
    return quantities(items)


def _stock_deltas(before: dict[str, int], after: dict[str, int]) -> dict[str, int]:
    """productId -> signed stock change (sales take stock out)."""
    deltas = {}
    for product_id in list(before) + [p for p in after if p not in before]:
        change = before.get(product_id, 0) - after.get(product_id, 0)
        if change:
            deltas[product_id] = change
    return deltas


def _active_scrap_links(store: DocumentStore, sale: dict) -> list[dict]:
    """Consumption facts still in effect for a stored sale's lines, recorded by this sale."""
    links = []
    for raw in sale.get("items") or []:
        fact = old_battery_service.active_consumption(store, (raw or {}).get("oldBatteryId"))
        if fact is None:
            continue
        if fact.get("referenceType") != "sale" or fact.get("referenceId") != sale.get("id"):
            current_app.logger.warning(
                "Sale %s line links consumption %s of %s %s; ignored",
                sale.get("id"), fact["id"], fact.get("referenceType"), fact.get("referenceId"),
            )
            continue
        links.append(fact)
    return links


def _scrap_demands(items: list[SaleItem]) -> tuple[dict[str, int], dict[str, str]]:
    demands: dict[str, int] = {}
    names: dict[str, str] = {}
    for item in items:
        if item.scrap is None:
            continue
        key = old_battery_service.battery_key(item.scrap.name)
        demands[key] = demands.get(key, 0) + item.scrap.quantity
        names[key] = item.scrap.name
    return demands, names


def _scrap_credits(links: list[dict]) -> dict[str, int]:
    credits: dict[str, int] = {}
    for fact in links:
        key = old_battery_service.battery_key(fact["name"])
        credits[key] = credits.get(key, 0) + int(fact.get("quantity") or 0)
    return credits


def _link_signature(fact: dict) -> tuple:
    return (
        (fact.get("name") or "").strip().lower(),
        round(float(fact.get("weight") or 0), 3),
        int(fact.get("quantity") or 0),
    )


# =============================================================================
# WRITE HELPERS (run inside execute)
# =============================================================================

def _apply_stock(store: DocumentStore, sale_id: str, deltas: dict[str, int], sale_date: str, outcome: LifecycleOutcome) -> None:
    for product_id, delta in deltas.items():
        movement_type = "return_sale" if delta > 0 else "sale"
        try:
            movement = ledger_service.apply_movement(
                store,
                product_id=product_id,
                movement_type=movement_type,
                quantity=abs(delta),
                reference_id=sale_id,
                reference_type="sale",
                date=sale_date,
            )
        except ReferenceNotFound:
            current_app.logger.warning(
                "Sale %s references missing product %s; stock not moved", sale_id, product_id
            )
            outcome.skipped_product_ids.append(product_id)
            continue
        outcome.movements.append(movement)


def _consume_scrap(store: DocumentStore, sale_id: str, items: list[SaleItem], outcome: LifecycleOutcome) -> None:
    for item in items:
        if not isinstance(item, ItemWithScrapConsumption):
            continue
        fact = old_battery_service.record_consumption(
            store,
            name=item.old_battery.name,
            weight=item.old_battery.weight,
            quantity=item.old_battery.quantity,
            reference_id=sale_id,
            reference_type="sale",
        )
        item.old_battery_id = fact["id"]
        outcome.consumptions.append(fact)


def _reverse_scrap(store: DocumentStore, links: list[dict], outcome: LifecycleOutcome) -> None:
    for fact in links:
        outcome.reversals.append(old_battery_service.reverse_consumption(store, fact["id"]))


# =============================================================================
# CREATE
# =============================================================================

def create_sale(store: DocumentStore, draft) -> LifecycleOutcome:
    """
    Persist a new sale; a completed sale takes its items out of stock.

    Draft fields: items (required), status (default "completed"),
    customerId, customerName, salesperson, saleDate, additionalDiscount,
    amountPaid, invoiceNumber (allocated from the "sale" series when absent).
    """
    draft = require_mapping(draft, "sale")
    _reject_stored_discount(draft)
    status = validate_status(draft.get("status", "completed"), SALE_STATUSES, "sale")
    items = parse_sale_items(draft.get("items"))
    # Consumption links are only ever set by _consume_scrap
    for item in items:
        if isinstance(item, ItemWithScrapConsumption):
            item.old_battery_id = None
    totals = compute_totals(
        items,
        coerce_money(draft.get("additionalDiscount"), "additionalDiscount", default=ZERO),
        coerce_money(draft.get("amountPaid"), "amountPaid", default=ZERO),
    )
    customer_id, customer_name = _resolve_customer(store, draft.get("customerId"), draft.get("customerName"))
    try:
        sale_date = parse_business_date(draft.get("saleDate"))
    except ValueError:
        raise InvalidInput("Invalid saleDate")

    invoice_number = coerce_text(draft.get("invoiceNumber"), "invoiceNumber", required=False)
    if invoice_number:
        ensure_invoice_unused(store, "sale", invoice_number)

    deltas = _stock_deltas({}, _effective_quantities(status, items))
    ledger_service.ensure_stock_available(store, deltas)
    scrap_items = [i for i in items if i.scrap] if status == "completed" else []
    demands, names = _scrap_demands(scrap_items)
    old_battery_service.ensure_available(store, demands, names=names)

    sale_id = store.push_key(SALES)

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        now = now_z()
        body = {
            "invoiceNumber": invoice_number or next_invoice_number(store, "sale"),
            "customerId": customer_id,
            "customerName": customer_name,
            "salesperson": coerce_text(draft.get("salesperson"), "salesperson", required=False) or "",
            "status": status,
            "saleDate": sale_date,
            "items": [item.to_document() for item in items],
            **totals,
            "createdAt": now,
            "updatedAt": now,
        }
        store.put(f"{SALES}/{sale_id}", body)
        _apply_stock(store, sale_id, deltas, sale_date, outcome)
        if scrap_items:
            _consume_scrap(store, sale_id, scrap_items, outcome)
            body["items"] = [item.to_document() for item in items]
        outcome.document = store.put(f"{SALES}/{sale_id}", body)
        return outcome

    return execute(
        store,
        operation="create_sale",
        target=store.path(SALES, sale_id),
        apply=_apply,
        product_ids=deltas.keys(),
        battery_names=names.values(),
    )


# =============================================================================
# UPDATE
# =============================================================================

def update_sale(store: DocumentStore, sale_id: str, patch) -> LifecycleOutcome:
    """
    Apply a patch to a sale and move stock by the quantity difference only.

    Money fields are recomputed from the merged document, so remainingBalance
    stays netAmount - amountPaid.
    """
    patch = require_mapping(patch, "sale patch")
    _reject_stored_discount(patch)
    unknown = set(patch) - PATCHABLE_FIELDS - {"id"}
    if unknown:
        raise InvalidInput(f"Unknown sale field(s): {', '.join(sorted(unknown))}")

    old = get_sale(store, sale_id)
    old_status = old.get("status") or "completed"
    new_status = validate_status(patch.get("status", old_status), SALE_STATUSES, "sale")
    require_transition(old_status, new_status, SALE_TRANSITIONS, "sale")

    items_supplied = "items" in patch
    items = parse_sale_items(patch["items"] if items_supplied else old.get("items"))

    if "additionalDiscount" in patch:
        additional = coerce_money(patch.get("additionalDiscount"), "additionalDiscount", default=ZERO)
    else:
        additional = money(old.get("additionalDiscount"))
    if "amountPaid" in patch:
        amount_paid = coerce_money(patch.get("amountPaid"), "amountPaid", default=ZERO)
    else:
        amount_paid = money(old.get("amountPaid"))
    totals = compute_totals(items, additional, amount_paid)

    if "customerId" in patch or "customerName" in patch:
        customer_id, customer_name = _resolve_customer(
            store,
            patch.get("customerId", old.get("customerId")),
            patch.get("customerName"),
        )
    else:
        customer_id, customer_name = old.get("customerId"), old.get("customerName") or ""

    try:
        sale_date = parse_business_date(patch.get("saleDate", old.get("saleDate")))
    except ValueError:
        raise InvalidInput("Invalid saleDate")

    invoice_number = old.get("invoiceNumber")
    if patch.get("invoiceNumber") and patch["invoiceNumber"] != invoice_number:
        invoice_number = coerce_text(patch["invoiceNumber"], "invoiceNumber")
        ensure_invoice_unused(store, "sale", invoice_number, exclude_id=sale_id)

    deltas = _stock_deltas(
        _effective_quantities(old_status, old.get("items") or []),
        _effective_quantities(new_status, items),
    )
    ledger_service.ensure_stock_available(store, deltas)

    # Old-battery lines: keep the existing consumptions unless the set changed
    old_links = _active_scrap_links(store, old)
    new_scrap = [i for i in items if i.scrap] if new_status == "completed" else []
    rescrap = sorted(_link_signature(f) for f in old_links) != sorted(i.scrap.signature() for i in new_scrap)
    demands, names = _scrap_demands(new_scrap)
    in_effect = {id(item) for item in new_scrap}
    for item in items:
        if isinstance(item, ItemWithScrapConsumption) and id(item) not in in_effect:
            item.old_battery_id = None
    if rescrap:
        old_battery_service.ensure_available(store, demands, _scrap_credits(old_links), names)
    else:
        by_signature: dict[tuple, list[str]] = {}
        for fact in old_links:
            by_signature.setdefault(_link_signature(fact), []).append(fact["id"])
        for item in new_scrap:
            item.old_battery_id = by_signature[item.scrap.signature()].pop(0)

    battery_names = list(names.values()) + [f["name"] for f in old_links]

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        body = dict(old)
        body.pop("id", None)
        body.update({
            "invoiceNumber": invoice_number,
            "customerId": customer_id,
            "customerName": customer_name,
            "salesperson": coerce_text(patch.get("salesperson", old.get("salesperson")), "salesperson", required=False) or "",
            "status": new_status,
            "saleDate": sale_date,
            "items": [item.to_document() for item in items],
            **totals,
            "updatedAt": now_z(),
        })
        store.put(f"{SALES}/{sale_id}", body)
        _apply_stock(store, sale_id, deltas, sale_date, outcome)
        if rescrap:
            _reverse_scrap(store, old_links, outcome)
            _consume_scrap(store, sale_id, new_scrap, outcome)
            body["items"] = [item.to_document() for item in items]
        outcome.document = store.put(f"{SALES}/{sale_id}", body)
        return outcome

    return execute(
        store,
        operation="update_sale",
        target=store.path(SALES, sale_id),
        apply=_apply,
        product_ids=deltas.keys(),
        battery_names=battery_names,
    )


# =============================================================================
# DELETE
# =============================================================================

def delete_sale(store: DocumentStore, sale_id: str) -> LifecycleOutcome:
    """
    Reverse a sale's effects and remove it.

    A completed sale returns the full quantity of every item to stock
    (one return_sale per line); linked old-battery consumptions are reversed.
    """
    sale = get_sale(store, sale_id)
    completed = (sale.get("status") or "completed") == "completed"
    lines = [
        raw for raw in (sale.get("items") or [])
        if isinstance(raw, dict) and raw.get("productId") and int(raw.get("quantity") or 0) > 0
    ] if completed else []
    links = _active_scrap_links(store, sale)

    def _apply() -> LifecycleOutcome:
        outcome = LifecycleOutcome(document=None)
        for raw in lines:
            _apply_stock(
                store,
                sale_id,
                {raw["productId"]: int(raw["quantity"])},
                sale.get("saleDate"),
                outcome,
            )
        _reverse_scrap(store, links, outcome)
        store.remove(f"{SALES}/{sale_id}")
        return outcome

    return execute(
        store,
        operation="delete_sale",
        target=store.path(SALES, sale_id),
        apply=_apply,
        product_ids=[raw["productId"] for raw in lines],
        battery_names=[f["name"] for f in links],
    )
