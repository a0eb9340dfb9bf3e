# Overview: Pytest coverage for oldest-debt-first payment allocation.

import pytest

from shopledger.errors import InvalidPaymentAmount, ReferenceNotFound
from shopledger.services import payment_service, sale_service


@pytest.fixture
def customer_with_debts(store, make_product, make_customer):
    """Customer with two open sales: 300 due (Jan) and 500 due (Feb), created newest first."""
    product = make_product(stock=100)
    customer = make_customer()
    newer = sale_service.create_sale(store, {
        "customerId": customer["id"],
        "saleDate": "2024-02-01",
        "items": [{"productId": product["id"], "quantity": 1, "salePrice": 600}],
        "amountPaid": 100,
    }).document
    older = sale_service.create_sale(store, {
        "customerId": customer["id"],
        "saleDate": "2024-01-01",
        "items": [{"productId": product["id"], "quantity": 1, "salePrice": 300}],
    }).document
    return customer, older, newer


def _sale(store, sale_id):
    return store.get(f"sales/{sale_id}")


def test_oldest_sale_settled_first(store, customer_with_debts):
    customer, older, newer = customer_with_debts

    result = payment_service.allocate_payment(store, customer["id"], 400)

    s1, s2 = _sale(store, older["id"]), _sale(store, newer["id"])
    assert s1["remainingBalance"] == 0
    assert s1["amountPaid"] == older["amountPaid"] + 300
    assert s2["remainingBalance"] == 400
    assert s2["amountPaid"] == newer["amountPaid"] + 100
    assert [(a["saleId"], a["amount"]) for a in result["allocations"]] == [(older["id"], 300.0), (newer["id"], 100.0)]
    assert result["unallocated"] == 0


def test_small_payment_touches_only_oldest(store, customer_with_debts):
    customer, older, newer = customer_with_debts

    payment_service.allocate_payment(store, customer["id"], "120.50")

    assert _sale(store, older["id"])["remainingBalance"] == 179.5
    assert _sale(store, newer["id"]) == newer


def test_full_payment_clears_everything(store, customer_with_debts):
    customer, older, newer = customer_with_debts
    total = payment_service.customer_outstanding_balance(store, customer["id"])

    payment_service.allocate_payment(store, customer["id"], total)

    for sale_id in (older["id"], newer["id"]):
        assert _sale(store, sale_id)["remainingBalance"] == 0
    assert payment_service.outstanding_sales(store, customer["id"]) == []


def test_same_day_sales_ordered_by_creation(store, make_product, make_customer):
    product = make_product(stock=10)
    customer = make_customer()
    first = sale_service.create_sale(store, {
        "customerId": customer["id"], "saleDate": "2024-05-05",
        "items": [{"productId": product["id"], "quantity": 1, "salePrice": 100}],
    }).document
    second = sale_service.create_sale(store, {
        "customerId": customer["id"], "saleDate": "2024-05-05",
        "items": [{"productId": product["id"], "quantity": 1, "salePrice": 100}],
    }).document

    payment_service.allocate_payment(store, customer["id"], 100)

    assert _sale(store, first["id"])["remainingBalance"] == 0
    assert _sale(store, second["id"])["remainingBalance"] == 100


def test_payment_is_recorded(store, customer_with_debts):
    customer, _, _ = customer_with_debts

    result = payment_service.allocate_payment(store, customer["id"], 50, payment_date="2024-03-01", note="cash")

    payment = store.get(f"payments/{result['paymentId']}")
    assert payment["amount"] == 50.0
    assert payment["paymentDate"] == "2024-03-01"
    assert payment["allocations"] == result["allocations"]


@pytest.mark.parametrize("amount", [0, -10, 801, "abc", None, "10.001"])
def test_invalid_amounts_change_nothing(store, customer_with_debts, amount):
    customer, older, newer = customer_with_debts

    with pytest.raises(InvalidPaymentAmount):
        payment_service.allocate_payment(store, customer["id"], amount)

    assert _sale(store, older["id"]) == older
    assert _sale(store, newer["id"]) == newer
    assert payment_service.list_payments(store) == []


def test_unknown_customer(store):
    with pytest.raises(ReferenceNotFound):
        payment_service.allocate_payment(store, "nobody", 10)


def test_plan_allocation_is_pure():
    sales = [
        {"id": "a", "remainingBalance": 30, "amountPaid": 0},
        {"id": "b", "remainingBalance": 30, "amountPaid": 10},
    ]

    plan = payment_service.plan_allocation(sales, payment_service.money(45))

    assert [(p["saleId"], float(p["applied"]), float(p["remainingBalance"])) for p in plan] == [
        ("a", 30.0, 0.0),
        ("b", 15.0, 15.0),
    ]
    assert sales[0]["remainingBalance"] == 30
