# Overview: Customer payment allocation; spreads one payment over outstanding sales, oldest debt first.

"""
Payment Allocation Service

WHY: A customer settles several credit sales with one payment. The payment is
split across their sales so that the earliest sale is cleared before any
later one is touched.

ALGORITHM:
1. Outstanding sales: the customer's sales with remainingBalance > 0,
   ordered by saleDate, then createdAt.
2. Reject amount <= 0 or amount > total outstanding (InvalidPaymentAmount),
   before anything is written.
3. For each sale in order: applied = min(pool, remainingBalance);
   amountPaid += applied, remainingBalance -= applied; stop at pool == 0.
4. Store payments/{id} with the per-sale allocations.

Money is handled as Decimal cents; documents keep JSON numbers.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import InvalidInput, InvalidPaymentAmount
from ..time_utils import now_z, parse_business_date
from ..validation import CENT, coerce_text, money, to_number
from .catalog_service import get_customer
from .document_store import DocumentStore
from .lifecycle_service import execute


PAYMENTS = "payments"

ZERO = Decimal("0.00")


def outstanding_sales(store: DocumentStore, customer_id: str) -> list[dict]:
    """The customer's sales that still owe money, oldest first."""
    sales = store.list(
        "sales",
        where=lambda s: s.get("customerId") == customer_id and money(s.get("remainingBalance")) > 0,
    )
    return sorted(sales, key=lambda s: (s.get("saleDate") or "", s.get("createdAt") or ""))


def customer_outstanding_balance(store: DocumentStore, customer_id: str) -> Decimal:
    return sum((money(s.get("remainingBalance")) for s in outstanding_sales(store, customer_id)), ZERO)


def _parse_amount(amount) -> Decimal:
    if amount is None or isinstance(amount, bool):
        raise InvalidPaymentAmount("Payment amount is required")
    try:
        value = Decimal(str(amount).strip())
    except ArithmeticError:
        raise InvalidPaymentAmount("Payment amount must be a number")
    if not value.is_finite():
        raise InvalidPaymentAmount("Payment amount must be a number")
    if value != value.quantize(CENT):
        raise InvalidPaymentAmount("Payment amount cannot have more than 2 decimal places")
    return value.quantize(CENT)


def plan_allocation(sales: list[dict], amount: Decimal) -> list[dict]:
    """Oldest-first split of amount over sales (pure; no writes)."""
    pool = amount
    plan = []
    for sale in sales:
        if pool <= 0:
            break
        remaining = money(sale.get("remainingBalance"))
        applied = min(pool, remaining)
        if applied <= 0:
            continue
        plan.append({
            "saleId": sale["id"],
            "invoiceNumber": sale.get("invoiceNumber"),
            "applied": applied,
            "amountPaid": money(sale.get("amountPaid")) + applied,
            "remainingBalance": remaining - applied,
        })
        pool -= applied
    return plan


def allocate_payment(store: DocumentStore, customer_id: str, amount, *, payment_date=None, note=None) -> dict:
    """
    Allocate a customer payment across their outstanding sales.

    Returns {paymentId, customerId, amount, allocations, unallocated}.
    """
    value = _parse_amount(amount)
    if value <= 0:
        raise InvalidPaymentAmount("Payment amount must be positive", {"amount": to_number(abs(value))})

    customer = get_customer(store, customer_id)
    sales = outstanding_sales(store, customer["id"])
    outstanding = sum((money(s.get("remainingBalance")) for s in sales), ZERO)
    if value > outstanding:
        raise InvalidPaymentAmount(
            "Payment amount exceeds the customer's outstanding balance",
            {"amount": to_number(value), "outstanding": to_number(outstanding)},
        )
    try:
        paid_on = parse_business_date(payment_date)
    except ValueError:
        raise InvalidInput("Invalid paymentDate")
    note = coerce_text(note, "note", required=False, max_length=1000) or ""

    plan = plan_allocation(sales, value)
    payment_id = store.push_key(PAYMENTS)

    def _apply() -> dict:
        now = now_z()
        for entry in plan:
            store.update(f"sales/{entry['saleId']}", {
                "amountPaid": to_number(entry["amountPaid"]),
                "remainingBalance": to_number(entry["remainingBalance"]),
                "updatedAt": now,
            })
        allocations = [
            {"saleId": e["saleId"], "invoiceNumber": e["invoiceNumber"], "amount": to_number(e["applied"])}
            for e in plan
        ]
        store.put(f"{PAYMENTS}/{payment_id}", {
            "customerId": customer["id"],
            "amount": to_number(value),
            "paymentDate": paid_on,
            "note": note,
            "allocations": allocations,
            "createdAt": now,
        })
        return {
            "paymentId": payment_id,
            "customerId": customer["id"],
            "amount": to_number(value),
            "allocations": allocations,
            "unallocated": 0.0,
        }

    return execute(
        store,
        operation="allocate_payment",
        target=store.path("customers", customer["id"]),
        apply=_apply,
    )


def list_payments(store: DocumentStore, customer_id: str | None = None) -> list[dict]:
    return store.list(PAYMENTS, where=lambda p: customer_id is None or p.get("customerId") == customer_id)
