# Overview: Old-battery scrap stock; collection and consumption facts plus the per-name aggregate view.

"""
Old-Battery Stock Aggregator

Facts (consumptions append-only; a collection entry may be corrected or
removed, after which the aggregates it fed are rebuilt from the facts):
    oldBatteries/{id}            collection: {name, weight, ratePerKg, quantity,
                                 deductionAmount, saleId, saleItemId, createdAt}
    oldBatteryConsumptions/{id}  {type: "consumption", name, weight, quantity,
                                 referenceId, referenceType, createdAt}
                                 {type: "reversal", reversesId, name, weight,
                                 quantity, createdAt}

Aggregate view, keyed by the case-insensitive name:
    oldBatteryStock/{key}        {name, totalWeight, totalQuantity,
                                 blendedRatePerKg, originalUnitWeight, updatedAt}

Rules:
- Blended rate is the plain mean of the existing rate and the incoming rate,
  not a weighted mean.
- weight is the total for all quantity batteries of an entry, so
  originalUnitWeight is weight / quantity of the first collection of a name.
  It is never recomputed incrementally and survives the quantity reaching zero.
- A consumption asking for more than totalQuantity raises InsufficientStock
  before any write. Weight is clamped at zero.
"""

from __future__ import annotations

from decimal import Decimal
from urllib.parse import quote

from flask import current_app

from ..errors import InsufficientStock, InvalidInput, ReferenceNotFound
from ..time_utils import now_z, parse_business_date
from ..validation import (
    coerce_int,
    coerce_measure,
    coerce_money,
    coerce_text,
    require_mapping,
    to_number,
)
from .document_store import DocumentStore


COLLECTIONS = "oldBatteries"
CONSUMPTIONS = "oldBatteryConsumptions"
AGGREGATES = "oldBatteryStock"
SALES = "oldBatterySales"

WEIGHT_PLACES = 3

DETAIL_FIELDS = ("name", "weight", "ratePerKg", "quantity", "deductionAmount")
SALE_PATCH_FIELDS = {
    "customerId", "customerName", "salesperson", "saleDate", "discount",
    "amountPaid", "invoiceNumber", "oldBatteryDetails", *DETAIL_FIELDS,
}


def battery_key(name: str) -> str:
    normalized = (name or "").strip().lower()
    if not normalized:
        raise InvalidInput("old battery name is required")
    return quote(normalized, safe="")


def _w(value: float) -> float:
    return round(float(value), WEIGHT_PLACES)


def get_aggregate(store: DocumentStore, name: str) -> dict | None:
    return store.get(f"{AGGREGATES}/{battery_key(name)}")


def get_old_battery_stock(store: DocumentStore) -> list[dict]:
    return sorted(store.list(AGGREGATES), key=lambda a: (a.get("name") or "").lower())


def available_quantity(store: DocumentStore, name: str) -> int:
    aggregate = get_aggregate(store, name)
    return int(aggregate.get("totalQuantity") or 0) if aggregate else 0


def ensure_available(
    store: DocumentStore,
    demands: dict[str, int],
    credits: dict[str, int] | None = None,
    names: dict[str, str] | None = None,
) -> None:
    """
    Check that every key in demands can be consumed.

    credits are quantities that will be returned to the same keys (reversals)
    before the consumptions run.
    """
    credits = credits or {}
    names = names or {}
    for key, wanted in demands.items():
        if wanted <= 0:
            continue
        aggregate = store.get(f"{AGGREGATES}/{key}")
        available = int(aggregate.get("totalQuantity") or 0) if aggregate else 0
        available += credits.get(key, 0)
        if wanted > available:
            label = (aggregate or {}).get("name") or names.get(key) or key
            raise InsufficientStock(
                f"Not enough old battery stock for '{label}'",
                {"name": label, "available": available, "requested": wanted},
            )


# =============================================================================
# AGGREGATE ARITHMETIC (shared by the incremental and the replay paths)
# =============================================================================

def _add_collection(aggregate: dict | None, name: str, weight: float, rate: float, quantity: int) -> dict:
    if aggregate is None:
        return {
            "name": name,
            "totalWeight": _w(weight),
            "totalQuantity": quantity,
            "blendedRatePerKg": rate,
            "originalUnitWeight": _w(weight / quantity) if quantity else _w(weight),
        }
    result = dict(aggregate)
    result["totalWeight"] = _w(float(aggregate.get("totalWeight") or 0) + weight)
    result["totalQuantity"] = int(aggregate.get("totalQuantity") or 0) + quantity
    result["blendedRatePerKg"] = (float(aggregate.get("blendedRatePerKg") or 0) + rate) / 2
    if not aggregate.get("originalUnitWeight"):
        result["originalUnitWeight"] = _w(weight / quantity) if quantity else _w(weight)
    return result


def _subtract(aggregate: dict, weight: float, quantity: int) -> dict:
    result = dict(aggregate)
    result["totalWeight"] = _w(max(0.0, float(aggregate.get("totalWeight") or 0) - weight))
    result["totalQuantity"] = max(0, int(aggregate.get("totalQuantity") or 0) - quantity)
    return result


def _give_back(aggregate: dict | None, name: str, weight: float, quantity: int) -> dict:
    if aggregate is None:
        return {
            "name": name,
            "totalWeight": _w(weight),
            "totalQuantity": quantity,
            "blendedRatePerKg": 0.0,
            "originalUnitWeight": _w(weight / quantity) if quantity else _w(weight),
        }
    result = dict(aggregate)
    result["totalWeight"] = _w(float(aggregate.get("totalWeight") or 0) + weight)
    result["totalQuantity"] = int(aggregate.get("totalQuantity") or 0) + quantity
    return result


def _save_aggregate(store: DocumentStore, key: str, aggregate: dict) -> dict:
    aggregate = dict(aggregate)
    aggregate.pop("id", None)
    aggregate["updatedAt"] = now_z()
    return store.put(f"{AGGREGATES}/{key}", aggregate)


# =============================================================================
# OPERATIONS
# =============================================================================

def record_collection(
    store: DocumentStore,
    *,
    name,
    weight,
    rate_per_kg,
    quantity=1,
    deduction_amount=None,
    sale_id: str | None = None,
    sale_item_id: str | None = None,
) -> dict:
    """Add scrap to the named aggregate and store the collection fact."""
    name = coerce_text(name, "name")
    key = battery_key(name)
    weight = coerce_measure(weight, "weight")
    rate = coerce_measure(rate_per_kg, "ratePerKg")
    qty = coerce_int(quantity, "quantity", minimum=1)
    if deduction_amount is None:
        deduction = coerce_money(Decimal(str(weight)) * Decimal(str(rate)), "deductionAmount")
    else:
        deduction = coerce_money(deduction_amount, "deductionAmount")

    fact_id = store.push_key(COLLECTIONS)
    fact = store.put(f"{COLLECTIONS}/{fact_id}", {
        "name": name,
        "weight": weight,
        "ratePerKg": rate,
        "quantity": qty,
        "deductionAmount": to_number(deduction),
        "saleId": sale_id,
        "saleItemId": sale_item_id,
        "createdAt": now_z(),
    })

    aggregate = store.get(f"{AGGREGATES}/{key}")
    _save_aggregate(store, key, _add_collection(aggregate, name, weight, rate, qty))
    return fact


def record_consumption(
    store: DocumentStore,
    *,
    name,
    weight,
    quantity=1,
    reference_id: str | None = None,
    reference_type: str | None = None,
    fact_id: str | None = None,
) -> dict:
    """
    Take scrap out of the named aggregate and store the consumption fact.

    Raises InsufficientStock, with nothing written, when quantity exceeds
    what the aggregate holds.
    """
    name = coerce_text(name, "name")
    key = battery_key(name)
    weight = coerce_measure(weight, "weight")
    qty = coerce_int(quantity, "quantity", minimum=1)

    aggregate = store.get(f"{AGGREGATES}/{key}")
    available = int(aggregate.get("totalQuantity") or 0) if aggregate else 0
    if qty > available:
        raise InsufficientStock(
            f"Not enough old battery stock for '{name}'",
            {"name": name, "available": available, "requested": qty},
        )

    fact_id = fact_id or store.push_key(CONSUMPTIONS)
    fact = store.put(f"{CONSUMPTIONS}/{fact_id}", {
        "type": "consumption",
        "name": name,
        "weight": weight,
        "quantity": qty,
        "referenceId": reference_id,
        "referenceType": reference_type,
        "createdAt": now_z(),
    })
    _save_aggregate(store, key, _subtract(aggregate, weight, qty))
    return fact


def get_consumption(store: DocumentStore, fact_id: str) -> dict | None:
    if not fact_id:
        return None
    fact = store.get(f"{CONSUMPTIONS}/{fact_id}")
    if fact is None or fact.get("type") != "consumption":
        return None
    return fact


def is_reversed(store: DocumentStore, fact_id: str) -> bool:
    return bool(store.list(
        CONSUMPTIONS,
        where=lambda f: f.get("type") == "reversal" and f.get("reversesId") == fact_id,
    ))


def active_consumption(store: DocumentStore, fact_id: str | None) -> dict | None:
    """The consumption fact if it exists and has not been reversed yet."""
    fact = get_consumption(store, fact_id)
    if fact is None or is_reversed(store, fact_id):
        return None
    return fact


def reverse_consumption(store: DocumentStore, fact_id: str) -> dict:
    """Give a consumption's quantity/weight back to its aggregate."""
    fact = get_consumption(store, fact_id)
    if fact is None:
        raise ReferenceNotFound(f"Old battery consumption {fact_id} not found", {"id": fact_id})
    if is_reversed(store, fact_id):
        raise InvalidInput(f"Old battery consumption {fact_id} was already reversed", {"id": fact_id})

    key = battery_key(fact["name"])
    weight = float(fact.get("weight") or 0)
    qty = int(fact.get("quantity") or 0)

    reversal_id = store.push_key(CONSUMPTIONS)
    reversal = store.put(f"{CONSUMPTIONS}/{reversal_id}", {
        "type": "reversal",
        "reversesId": fact_id,
        "name": fact["name"],
        "weight": weight,
        "quantity": qty,
        "createdAt": now_z(),
    })
    aggregate = store.get(f"{AGGREGATES}/{key}")
    _save_aggregate(store, key, _give_back(aggregate, fact["name"], weight, qty))
    return reversal


def rebuild_old_battery_stock(store: DocumentStore, names=None) -> list[dict]:
    """
    Recompute aggregates from the facts (all names, or just the given ones).

    Collection and consumption facts are folded together in createdAt order;
    aggregates with no remaining facts are removed. Caller commits.
    """
    wanted = {battery_key(n) for n in names} if names is not None else None

    facts = []
    for order, fact in enumerate(store.list(COLLECTIONS)):
        facts.append((fact.get("createdAt") or "", 0, order, "collection", fact))
    for order, fact in enumerate(store.list(CONSUMPTIONS)):
        facts.append((fact.get("createdAt") or "", 1, order, fact.get("type"), fact))
    facts.sort(key=lambda t: t[:3])

    aggregates: dict[str, dict] = {}
    for _, _, _, kind, fact in facts:
        try:
            key = battery_key(fact.get("name"))
        except InvalidInput:
            current_app.logger.warning("Skipping old battery fact %s without a name", fact.get("id"))
            continue
        if wanted is not None and key not in wanted:
            continue
        weight = float(fact.get("weight") or 0)
        qty = int(fact.get("quantity") or 0)
        current = aggregates.get(key)
        if kind == "collection":
            aggregates[key] = _add_collection(current, fact["name"], weight, float(fact.get("ratePerKg") or 0), qty)
        elif kind == "consumption":
            if current is None:
                current = _give_back(None, fact["name"], 0.0, 0)
            aggregates[key] = _subtract(current, weight, qty)
        elif kind == "reversal":
            aggregates[key] = _give_back(current, fact["name"], weight, qty)

    existing = {a["id"] for a in store.list(AGGREGATES)}
    targets = existing | set(aggregates) if wanted is None else wanted
    rebuilt = []
    for key in sorted(targets):
        if key in aggregates:
            rebuilt.append(_save_aggregate(store, key, aggregates[key]))
        elif key in existing:
            store.remove(f"{AGGREGATES}/{key}")
    current_app.logger.info("Rebuilt %s old battery aggregate(s) for tenant %s", len(rebuilt), store.tenant_id)
    return rebuilt


# =============================================================================
# STANDALONE OLD-BATTERY SALES
# =============================================================================

def parse_old_battery_sale(store: DocumentStore, draft) -> dict:
    """Validate a standalone old-battery sale draft (no writes)."""
    draft = require_mapping(draft, "old battery sale")
    details = require_mapping(draft.get("oldBatteryDetails") or draft, "oldBatteryDetails")

    name = coerce_text(details.get("name"), "name")
    weight = coerce_measure(details.get("weight"), "weight")
    rate = coerce_measure(details.get("ratePerKg"), "ratePerKg")
    qty = coerce_int(details.get("quantity", 1), "quantity", minimum=1)
    if details.get("deductionAmount") is None:
        deduction = coerce_money(Decimal(str(weight)) * Decimal(str(rate)), "deductionAmount")
    else:
        deduction = coerce_money(details.get("deductionAmount"), "deductionAmount")

    discount = coerce_money(draft.get("discount"), "discount", default=Decimal("0.00"))
    amount_paid = coerce_money(draft.get("amountPaid"), "amountPaid", default=Decimal("0.00"))
    net = deduction - discount
    if net < 0:
        raise InvalidInput("discount cannot exceed the deduction amount")
    if amount_paid > net:
        raise InvalidInput("amountPaid cannot exceed netAmount")

    customer_id = coerce_text(draft.get("customerId"), "customerId", required=False)
    customer_name = coerce_text(draft.get("customerName"), "customerName", required=False)
    if customer_id:
        customer = store.get(f"customers/{customer_id}")
        if customer is None:
            raise ReferenceNotFound(f"Customer {customer_id} not found", {"customerId": customer_id})
        customer_name = customer_name or customer.get("name")

    try:
        sale_date = parse_business_date(draft.get("saleDate"))
    except ValueError:
        raise InvalidInput("Invalid saleDate")

    return {
        "customerId": customer_id,
        "customerName": customer_name or "",
        "salesperson": coerce_text(draft.get("salesperson"), "salesperson", required=False) or "",
        "saleDate": sale_date,
        "status": "completed",
        "totalAmount": to_number(deduction),
        "discount": to_number(discount),
        "netAmount": to_number(net),
        "amountPaid": to_number(amount_paid),
        "remainingBalance": to_number(net - amount_paid),
        "oldBatteryDetails": {
            "name": name,
            "weight": weight,
            "ratePerKg": rate,
            "deductionAmount": to_number(deduction),
            "quantity": qty,
        },
    }


def create_old_battery_sale(store: DocumentStore, draft) -> dict:
    """Sell scrap: allocate an OB invoice, consume the stock, persist the sale."""
    from .document_service import ensure_invoice_unused, next_invoice_number
    from .lifecycle_service import execute

    sale = parse_old_battery_sale(store, draft)
    details = sale["oldBatteryDetails"]
    invoice_number = coerce_text(require_mapping(draft).get("invoiceNumber"), "invoiceNumber", required=False)
    if invoice_number:
        ensure_invoice_unused(store, "old_battery", invoice_number)
    ensure_available(store, {battery_key(details["name"]): details["quantity"]}, names={battery_key(details["name"]): details["name"]})

    def _apply():
        sale_id = store.push_key(SALES)
        fact_id = store.push_key(CONSUMPTIONS)
        now = now_z()
        body = dict(sale)
        body["invoiceNumber"] = invoice_number or next_invoice_number(store, "old_battery")
        body["consumptionId"] = fact_id
        body["createdAt"] = now
        body["updatedAt"] = now
        stored = store.put(f"{SALES}/{sale_id}", body)
        record_consumption(
            store,
            name=details["name"],
            weight=details["weight"],
            quantity=details["quantity"],
            reference_id=sale_id,
            reference_type="old_battery_sale",
            fact_id=fact_id,
        )
        return stored

    return execute(
        store,
        operation="create_old_battery_sale",
        target=None,
        apply=_apply,
        battery_names=[details["name"]],
    )


def delete_old_battery_sale(store: DocumentStore, sale_id: str) -> None:
    from .lifecycle_service import execute

    sale = store.get(f"{SALES}/{sale_id}")
    if sale is None:
        raise ReferenceNotFound(f"Old battery sale {sale_id} not found", {"id": sale_id})
    name = (sale.get("oldBatteryDetails") or {}).get("name")

    def _apply():
        if active_consumption(store, sale.get("consumptionId")) is not None:
            reverse_consumption(store, sale["consumptionId"])
        store.remove(f"{SALES}/{sale_id}")

    execute(
        store,
        operation="delete_old_battery_sale",
        target=store.path(SALES, sale_id),
        apply=_apply,
        battery_names=[name] if name else [],
    )


def _consumption_signature(name: str, weight, quantity) -> tuple:
    return (battery_key(name), _w(weight), int(quantity))


def update_old_battery_sale(store: DocumentStore, sale_id: str, patch) -> dict:
    """
    Edit a standalone old-battery sale.

    When the scrap details change, the old consumption is reversed and a new
    one recorded; availability is checked first with the old quantity counted
    as returned. Money-only edits leave the consumption alone.
    """
    from .document_service import ensure_invoice_unused
    from .lifecycle_service import execute

    patch = require_mapping(patch, "old battery sale patch")
    unknown = set(patch) - SALE_PATCH_FIELDS - {"id"}
    if unknown:
        raise InvalidInput(f"Unknown old battery sale field(s): {', '.join(sorted(unknown))}")
    old = store.get(f"{SALES}/{sale_id}")
    if old is None:
        raise ReferenceNotFound(f"Old battery sale {sale_id} not found", {"id": sale_id})

    old_details = old.get("oldBatteryDetails") or {}
    detail_patch = dict(require_mapping(patch.get("oldBatteryDetails") or {}, "oldBatteryDetails"))
    detail_patch.update({k: patch[k] for k in DETAIL_FIELDS if k in patch})
    details = dict(old_details)
    if ("weight" in detail_patch or "ratePerKg" in detail_patch) and "deductionAmount" not in detail_patch:
        details.pop("deductionAmount", None)
    details.update(detail_patch)

    draft = {
        field: patch.get(field, old.get(field))
        for field in ("customerId", "customerName", "salesperson", "saleDate", "discount", "amountPaid")
    }
    if "customerId" in patch and "customerName" not in patch:
        draft["customerName"] = None
    draft["oldBatteryDetails"] = details
    sale = parse_old_battery_sale(store, draft)
    new_details = sale["oldBatteryDetails"]

    invoice_number = old.get("invoiceNumber")
    if patch.get("invoiceNumber") and patch["invoiceNumber"] != invoice_number:
        invoice_number = coerce_text(patch["invoiceNumber"], "invoiceNumber")
        ensure_invoice_unused(store, "old_battery", invoice_number, exclude_id=sale_id)

    linked = active_consumption(store, old.get("consumptionId"))
    new_signature = _consumption_signature(new_details["name"], new_details["weight"], new_details["quantity"])
    reconsume = linked is None or new_signature != _consumption_signature(
        linked["name"], linked.get("weight") or 0, linked.get("quantity") or 0,
    )
    if reconsume:
        new_key = battery_key(new_details["name"])
        credits = {battery_key(linked["name"]): int(linked.get("quantity") or 0)} if linked else {}
        ensure_available(store, {new_key: new_details["quantity"]}, credits, {new_key: new_details["name"]})

    def _apply():
        body = dict(old)
        body.pop("id", None)
        body.update(sale)
        body["invoiceNumber"] = invoice_number
        body["updatedAt"] = now_z()
        if reconsume:
            if linked is not None:
                reverse_consumption(store, linked["id"])
            fact = record_consumption(
                store,
                name=new_details["name"],
                weight=new_details["weight"],
                quantity=new_details["quantity"],
                reference_id=sale_id,
                reference_type="old_battery_sale",
            )
            body["consumptionId"] = fact["id"]
        return store.put(f"{SALES}/{sale_id}", body)

    names = [new_details["name"]] + ([linked["name"]] if linked else [])
    return execute(
        store,
        operation="update_old_battery_sale",
        target=store.path(SALES, sale_id),
        apply=_apply,
        battery_names=names,
    )


def list_old_battery_sales(store: DocumentStore) -> list[dict]:
    return store.list(SALES)


# =============================================================================
# API ENTRY POINTS (one intent per call)
# =============================================================================

def collect_old_battery(store: DocumentStore, data) -> dict:
    """Record scrap brought in (purchase or trade-in) as one lifecycle operation."""
    from .lifecycle_service import execute

    data = require_mapping(data, "old battery collection")
    name = coerce_text(data.get("name"), "name")
    battery_key(name)
    return execute(
        store,
        operation="record_old_battery_collection",
        target=None,
        apply=lambda: record_collection(
            store,
            name=name,
            weight=data.get("weight"),
            rate_per_kg=data.get("ratePerKg"),
            quantity=data.get("quantity", 1),
            deduction_amount=data.get("deductionAmount"),
            sale_id=data.get("saleId"),
            sale_item_id=data.get("saleItemId"),
        ),
        battery_names=[name],
    )


def record_old_battery_consumption(store: DocumentStore, data) -> dict:
    """Take scrap out of stock outside of a sale (InsufficientStock before any write)."""
    from .lifecycle_service import execute

    data = require_mapping(data, "old battery consumption")
    name = coerce_text(data.get("name"), "name")
    key = battery_key(name)
    weight = coerce_measure(data.get("weight"), "weight")
    qty = coerce_int(data.get("quantity", 1), "quantity", minimum=1)
    ensure_available(store, {key: qty}, names={key: name})
    return execute(
        store,
        operation="record_old_battery_consumption",
        target=None,
        apply=lambda: record_consumption(
            store,
            name=name,
            weight=weight,
            quantity=qty,
            reference_id=data.get("referenceId"),
            reference_type=data.get("referenceType") or "manual",
        ),
        battery_names=[name],
    )


def undo_old_battery_consumption(store: DocumentStore, fact_id: str) -> dict:
    from .lifecycle_service import execute

    fact = get_consumption(store, fact_id)
    if fact is None:
        raise ReferenceNotFound(f"Old battery consumption {fact_id} not found", {"id": fact_id})
    if is_reversed(store, fact_id):
        raise InvalidInput(f"Old battery consumption {fact_id} was already reversed", {"id": fact_id})
    return execute(
        store,
        operation="reverse_old_battery_consumption",
        target=store.path(CONSUMPTIONS, fact_id),
        apply=lambda: reverse_consumption(store, fact_id),
        battery_names=[fact["name"]],
    )


def get_collection(store: DocumentStore, fact_id: str) -> dict:
    fact = store.get(f"{COLLECTIONS}/{fact_id}") if fact_id else None
    if fact is None:
        raise ReferenceNotFound(f"Old battery collection {fact_id} not found", {"id": fact_id})
    return fact


def update_collection(store: DocumentStore, fact_id: str, patch) -> dict:
    """
    Correct a collection entry and rebuild the aggregates it feeds.

    Scrap already consumed cannot be edited away: shrinking the quantity (or
    moving the entry to another name) needs that much stock still on hand.
    """
    from .lifecycle_service import execute

    patch = require_mapping(patch, "old battery collection patch")
    unknown = set(patch) - set(DETAIL_FIELDS) - {"id"}
    if unknown:
        raise InvalidInput(f"Unknown old battery collection field(s): {', '.join(sorted(unknown))}")
    old = get_collection(store, fact_id)

    name = coerce_text(patch.get("name", old.get("name")), "name")
    weight = coerce_measure(patch.get("weight", old.get("weight")), "weight")
    rate = coerce_measure(patch.get("ratePerKg", old.get("ratePerKg")), "ratePerKg")
    qty = coerce_int(patch.get("quantity", old.get("quantity", 1)), "quantity", minimum=1)
    if "deductionAmount" in patch:
        deduction = coerce_money(patch.get("deductionAmount"), "deductionAmount")
    elif "weight" in patch or "ratePerKg" in patch or old.get("deductionAmount") is None:
        deduction = coerce_money(Decimal(str(weight)) * Decimal(str(rate)), "deductionAmount")
    else:
        deduction = coerce_money(old.get("deductionAmount"), "deductionAmount")

    old_key, new_key = battery_key(old["name"]), battery_key(name)
    old_qty = int(old.get("quantity") or 0)
    if old_key != new_key:
        ensure_available(store, {old_key: old_qty}, names={old_key: old["name"]})
    elif old_qty > qty:
        ensure_available(store, {old_key: old_qty - qty}, names={old_key: old["name"]})

    def _apply():
        body = dict(old)
        body.pop("id", None)
        body.update({
            "name": name,
            "weight": weight,
            "ratePerKg": rate,
            "quantity": qty,
            "deductionAmount": to_number(deduction),
            "updatedAt": now_z(),
        })
        fact = store.put(f"{COLLECTIONS}/{fact_id}", body)
        rebuild_old_battery_stock(store, {old["name"], name})
        return fact

    return execute(
        store,
        operation="update_old_battery_collection",
        target=store.path(COLLECTIONS, fact_id),
        apply=_apply,
        battery_names=[old["name"], name],
    )


def delete_collection(store: DocumentStore, fact_id: str) -> None:
    """Remove a collection entry; its whole quantity must still be in stock."""
    from .lifecycle_service import execute

    old = get_collection(store, fact_id)
    key = battery_key(old["name"])
    ensure_available(store, {key: int(old.get("quantity") or 0)}, names={key: old["name"]})

    def _apply():
        store.remove(f"{COLLECTIONS}/{fact_id}")
        rebuild_old_battery_stock(store, [old["name"]])

    execute(
        store,
        operation="delete_old_battery_collection",
        target=store.path(COLLECTIONS, fact_id),
        apply=_apply,
        battery_names=[old["name"]],
    )
