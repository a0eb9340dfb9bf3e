# Overview: Pytest coverage for sale create/update/delete and their stock and old-battery side effects.

"""
Sale Lifecycle Tests

Covers:
- create/update/delete stock effects, including the 100 -> 90 -> 96 -> 100 walk
- edits move stock by the quantity difference only
- status transitions (completed <-> returned)
- money fields (discounts, old battery deductions, remainingBalance)
- old battery lines consuming and giving back scrap stock
- missing products are skipped, not fatal
- the reject stock policy
"""

import pytest

from shopledger.errors import InsufficientStock, InvalidInput, ReferenceNotFound
from shopledger.services import ledger_service, old_battery_service, sale_service
from conftest import stock_of


def _item(product_id, quantity, price=50, **extra):
    return {"productId": product_id, "quantity": quantity, "salePrice": price, **extra}


def _movement_sum(store, product_id):
    return sum(
        ledger_service.signed_quantity(m["type"], m["quantity"])
        for m in ledger_service.list_movements(store, product_id=product_id)
    )


class TestSaleStockEffects:
    def test_create_update_delete_walk(self, store, make_product):
        product = make_product(stock=100)
        pid = product["id"]

        sale = sale_service.create_sale(store, {"items": [_item(pid, 10)], "status": "completed"}).document
        assert stock_of(store, pid) == 90

        sale_service.update_sale(store, sale["id"], {"items": [_item(pid, 4)]})
        assert stock_of(store, pid) == 96

        sale_service.delete_sale(store, sale["id"])
        assert stock_of(store, pid) == 100
        assert store.get(f"sales/{sale['id']}") is None

    def test_edit_moves_only_the_difference(self, store, make_product):
        product = make_product(stock=50)
        pid = product["id"]
        sale = sale_service.create_sale(store, {"items": [_item(pid, 5)]}).document
        before_edit = stock_of(store, pid)

        outcome = sale_service.update_sale(store, sale["id"], {"items": [_item(pid, 8)]})

        assert stock_of(store, pid) == before_edit - 3
        assert [(m["type"], m["quantity"]) for m in outcome.movements] == [("sale", 3)]

    def test_edit_without_items_has_no_stock_effect(self, store, make_product):
        product = make_product(stock=20)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 2)]}).document

        outcome = sale_service.update_sale(store, sale["id"], {"salesperson": "Bilal"})

        assert outcome.movements == []
        assert outcome.document["salesperson"] == "Bilal"
        assert stock_of(store, product["id"]) == 18

    def test_items_added_and_removed(self, store, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(a["id"], 3)]}).document

        sale_service.update_sale(store, sale["id"], {"items": [_item(b["id"], 2)]})

        assert stock_of(store, a["id"]) == 10
        assert stock_of(store, b["id"]) == 8

    def test_cache_equals_movement_sum_after_mixed_operations(self, store, make_product):
        a = make_product(name="A", stock=40)
        b = make_product(name="B", stock=15)

        s1 = sale_service.create_sale(store, {"items": [_item(a["id"], 5), _item(b["id"], 5)]}).document
        s2 = sale_service.create_sale(store, {"items": [_item(a["id"], 7)]}).document
        sale_service.update_sale(store, s1["id"], {"items": [_item(a["id"], 2)]})
        sale_service.update_sale(store, s2["id"], {"status": "returned"})
        sale_service.delete_sale(store, s1["id"])

        for product in (a, b):
            assert stock_of(store, product["id"]) == _movement_sum(store, product["id"])
        assert stock_of(store, a["id"]) == 40
        assert stock_of(store, b["id"]) == 15

    def test_same_product_on_two_lines(self, store, make_product):
        product = make_product(stock=30)

        sale_service.create_sale(store, {"items": [_item(product["id"], 2), _item(product["id"], 3)]})

        assert stock_of(store, product["id"]) == 25

    def test_missing_product_is_skipped(self, store, make_product):
        product = make_product(stock=10)

        outcome = sale_service.create_sale(store, {"items": [_item("ghost", 1), _item(product["id"], 1)]})

        assert outcome.skipped_product_ids == ["ghost"]
        assert stock_of(store, product["id"]) == 9
        assert store.get(f"sales/{outcome.document['id']}") is not None


class TestSaleStatus:
    def test_returned_sale_has_no_stock_effect(self, store, make_product):
        product = make_product(stock=10)

        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 4)], "status": "returned"}).document
        assert stock_of(store, product["id"]) == 10

        sale_service.delete_sale(store, sale["id"])
        assert stock_of(store, product["id"]) == 10

    def test_completed_to_returned_gives_stock_back(self, store, make_product):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 4)]}).document

        sale_service.update_sale(store, sale["id"], {"status": "returned"})

        assert stock_of(store, product["id"]) == 10

    def test_returned_cannot_become_completed(self, store, make_product):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "status": "returned"}).document

        with pytest.raises(InvalidInput):
            sale_service.update_sale(store, sale["id"], {"status": "completed"})

    def test_unknown_status_rejected(self, store, make_product):
        product = make_product(stock=10)

        with pytest.raises(InvalidInput):
            sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "status": "draft"})

    def test_update_missing_sale(self, store):
        with pytest.raises(ReferenceNotFound):
            sale_service.update_sale(store, "missing", {"status": "returned"})


class TestSaleTotals:
    def test_money_fields(self, store, make_product):
        product = make_product(stock=10)

        sale = sale_service.create_sale(store, {
            "items": [_item(product["id"], 2, price=150, discount=20)],
            "additionalDiscount": 30,
            "amountPaid": 100,
        }).document

        assert sale["totalAmount"] == 300.0
        assert sale["discount"] == 50.0
        assert sale["netAmount"] == 250.0
        assert sale["remainingBalance"] == 150.0
        assert sale["items"][0]["total"] == 280.0
        assert sale["invoiceNumber"] == "INV-001"

    def test_edit_recomputes_remaining_balance(self, store, make_product):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 2, price=100)], "amountPaid": 50}).document

        updated = sale_service.update_sale(store, sale["id"], {"amountPaid": 120}).document

        assert updated["remainingBalance"] == 80.0
        assert updated["remainingBalance"] == updated["netAmount"] - updated["amountPaid"]

    def test_overpayment_rejected(self, store, make_product):
        product = make_product(stock=10)

        with pytest.raises(InvalidInput):
            sale_service.create_sale(store, {"items": [_item(product["id"], 1, price=10)], "amountPaid": 11})

    @pytest.mark.parametrize("bad_item", [
        {"quantity": 1, "salePrice": 10},
        {"productId": "p", "quantity": "two", "salePrice": 10},
        {"productId": "p", "quantity": 1, "salePrice": "cheap"},
        {"productId": "p", "quantity": 1.5, "salePrice": 10},
    ])
    def test_invalid_items_write_nothing(self, store, bad_item):
        with pytest.raises(InvalidInput):
            sale_service.create_sale(store, {"items": [bad_item]})

        assert sale_service.list_sales(store) == []
        assert store.list("intents") == []

    def test_duplicate_invoice_number_rejected(self, store, make_product):
        product = make_product(stock=10)
        sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "invoiceNumber": "INV-010"})

        with pytest.raises(InvalidInput):
            sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "invoiceNumber": "INV-010"})

    def test_unknown_customer_rejected(self, store, make_product):
        product = make_product(stock=10)

        with pytest.raises(ReferenceNotFound):
            sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "customerId": "nobody"})

    def test_stored_discount_cannot_be_sent_back(self, store, make_product):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 1, price=100, discount=10)]}).document
        assert sale["netAmount"] == 90.0

        with pytest.raises(InvalidInput):
            sale_service.update_sale(store, sale["id"], {"discount": sale["discount"]})
        with pytest.raises(InvalidInput):
            sale_service.create_sale(store, {"items": [_item(product["id"], 1)], "discount": 5})

        assert sale_service.get_sale(store, sale["id"])["netAmount"] == 90.0

    def test_header_discount_patch(self, store, make_product):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 1, price=100, discount=10)]}).document

        updated = sale_service.update_sale(store, sale["id"], {"additionalDiscount": 5}).document

        assert updated["discount"] == 15.0
        assert updated["netAmount"] == 85.0


class TestSaleOldBatteryLines:
    @pytest.fixture
    def scrap(self, store):
        old_battery_service.record_collection(store, name="Exide-12V", weight=50, rate_per_kg=100, quantity=5)

    def _scrap_item(self, product_id, **overrides):
        data = {"name": "exide-12v", "weight": 10, "ratePerKg": 100, "deductionAmount": 200}
        data.update(overrides)
        return _item(product_id, 1, price=1000, oldBatteryData=data, includeOldBattery=True)

    def test_create_consumes_scrap_and_deducts(self, store, make_product, scrap):
        product = make_product(stock=10)

        outcome = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]})
        sale = outcome.document

        aggregate = old_battery_service.get_aggregate(store, "Exide-12V")
        assert aggregate["totalQuantity"] == 4
        assert aggregate["totalWeight"] == 40
        assert sale["discount"] == 200.0
        assert sale["netAmount"] == 800.0
        assert sale["items"][0]["oldBatteryId"] == outcome.consumptions[0]["id"]

    def test_insufficient_scrap_blocks_whole_sale(self, store, make_product, scrap):
        product = make_product(stock=10)

        with pytest.raises(InsufficientStock):
            sale_service.create_sale(store, {"items": [self._scrap_item(product["id"], quantity=6)]})

        assert sale_service.list_sales(store) == []
        assert stock_of(store, product["id"]) == 10
        assert old_battery_service.available_quantity(store, "Exide-12V") == 5

    def test_unchanged_scrap_is_not_reconsumed(self, store, make_product, scrap):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document

        outcome = sale_service.update_sale(store, sale["id"], {"items": sale["items"], "salesperson": "Sana"})

        assert outcome.consumptions == []
        assert outcome.reversals == []
        assert outcome.document["items"][0]["oldBatteryId"] == sale["items"][0]["oldBatteryId"]
        assert old_battery_service.available_quantity(store, "Exide-12V") == 4

    def test_changed_scrap_is_reversed_and_rerecorded(self, store, make_product, scrap):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document

        outcome = sale_service.update_sale(store, sale["id"], {"items": [self._scrap_item(product["id"], quantity=5)]})

        assert len(outcome.reversals) == 1
        assert len(outcome.consumptions) == 1
        assert old_battery_service.available_quantity(store, "Exide-12V") == 0

    def test_removing_scrap_line_gives_it_back(self, store, make_product, scrap):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document

        sale_service.update_sale(store, sale["id"], {"items": [_item(product["id"], 1, price=1000)]})

        assert old_battery_service.available_quantity(store, "Exide-12V") == 5

    def test_delete_reverses_scrap(self, store, make_product, scrap):
        product = make_product(stock=10)
        sale = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document

        sale_service.delete_sale(store, sale["id"])

        assert old_battery_service.available_quantity(store, "Exide-12V") == 5
        assert stock_of(store, product["id"]) == 10

    def test_client_supplied_link_is_discarded(self, store, make_product, scrap):
        product = make_product(stock=10)
        first = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document
        foreign_id = first["items"][0]["oldBatteryId"]

        returned = sale_service.create_sale(store, {
            "status": "returned",
            "items": [dict(self._scrap_item(product["id"]), oldBatteryId=foreign_id)],
        }).document
        assert returned["items"][0]["oldBatteryId"] is None

        sale_service.delete_sale(store, returned["id"])

        assert old_battery_service.available_quantity(store, "Exide-12V") == 4
        assert old_battery_service.active_consumption(store, foreign_id) is not None

    def test_link_to_another_sales_consumption_is_ignored(self, store, make_product, scrap):
        product = make_product(stock=10)
        first = sale_service.create_sale(store, {"items": [self._scrap_item(product["id"])]}).document
        second = sale_service.create_sale(store, {"items": [_item(product["id"], 1)]}).document
        items = [dict(second["items"][0], oldBatteryId=first["items"][0]["oldBatteryId"])]
        store.update(f"sales/{second['id']}", {"items": items})

        outcome = sale_service.delete_sale(store, second["id"])

        assert outcome.reversals == []
        assert old_battery_service.available_quantity(store, "Exide-12V") == 4


class TestRejectPolicy:
    def test_oversell_rejected_before_any_write(self, store, make_product, policy):
        policy("STOCK_NEGATIVE_POLICY", "reject")
        product = make_product(stock=5)

        with pytest.raises(InsufficientStock):
            sale_service.create_sale(store, {"items": [_item(product["id"], 6)]})

        assert sale_service.list_sales(store) == []
        assert stock_of(store, product["id"]) == 5

    def test_edit_checks_only_the_increase(self, store, make_product, policy):
        policy("STOCK_NEGATIVE_POLICY", "reject")
        product = make_product(stock=5)
        sale = sale_service.create_sale(store, {"items": [_item(product["id"], 4)]}).document

        sale_service.update_sale(store, sale["id"], {"items": [_item(product["id"], 5)]})
        assert stock_of(store, product["id"]) == 0

        with pytest.raises(InsufficientStock):
            sale_service.update_sale(store, sale["id"], {"items": [_item(product["id"], 6)]})
        assert stock_of(store, product["id"]) == 0

    def test_clamp_policy_lets_oversell_through(self, store, make_product):
        product = make_product(stock=5)

        sale_service.create_sale(store, {"items": [_item(product["id"], 8)]})

        assert stock_of(store, product["id"]) == 0
