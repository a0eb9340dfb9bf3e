# Overview: Pytest coverage for product, customer and supplier edits and deletes.

import pytest

from shopledger.errors import InvalidInput, ReferenceNotFound
from shopledger.services import catalog_service, ledger_service, sale_service
from conftest import stock_of


class TestProducts:
    def test_update_details_keeps_stock(self, store, make_product):
        product = make_product(stock=12, salePrice=100)

        updated = catalog_service.update_product(store, product["id"], {"name": "Exide N100", "salePrice": 120})

        assert updated["name"] == "Exide N100"
        assert updated["salePrice"] == 120.0
        assert updated["code"] == product["code"]
        assert stock_of(store, product["id"]) == 12

    @pytest.mark.parametrize("patch", [
        {"currentStock": 50},
        {"stock": 1},
        {"salePrice": "cheap"},
        {"name": "  "},
    ])
    def test_invalid_patch_changes_nothing(self, store, make_product, patch):
        product = make_product(stock=3)

        with pytest.raises(InvalidInput):
            catalog_service.update_product(store, product["id"], patch)

        assert catalog_service.get_product(store, product["id"]) == product

    def test_clearing_optional_text(self, store, make_product):
        product = make_product(packing="Box of 4")

        updated = catalog_service.update_product(store, product["id"], {"packing": ""})

        assert updated["packing"] == ""

    def test_delete_leaves_movements(self, store, make_product):
        product = make_product(stock=5)

        catalog_service.delete_product(store, product["id"])

        with pytest.raises(ReferenceNotFound):
            catalog_service.get_product(store, product["id"])
        assert len(ledger_service.list_movements(store, product_id=product["id"])) == 1

    def test_sale_of_deleted_product_is_skipped_on_delete(self, store, make_product):
        product = make_product(stock=10)
        other = make_product(name="Volta 12V", stock=10)
        sale = sale_service.create_sale(store, {"items": [
            {"productId": product["id"], "quantity": 2, "salePrice": 50},
            {"productId": other["id"], "quantity": 3, "salePrice": 50},
        ]}).document
        catalog_service.delete_product(store, product["id"])

        outcome = sale_service.delete_sale(store, sale["id"])

        assert outcome.skipped_product_ids == [product["id"]]
        assert stock_of(store, other["id"]) == 10
        assert sale_service.list_sales(store) == []

    def test_unknown_product(self, store):
        with pytest.raises(ReferenceNotFound):
            catalog_service.update_product(store, "missing", {"name": "x"})
        with pytest.raises(ReferenceNotFound):
            catalog_service.delete_product(store, "missing")


class TestParties:
    def test_update_customer(self, store, make_customer):
        customer = make_customer()

        updated = catalog_service.update_customer(store, customer["id"], {"phone": "0300-1234567"})

        assert updated["phone"] == "0300-1234567"
        assert updated["name"] == customer["name"]

    def test_customer_balance_is_not_editable(self, store, make_customer):
        customer = make_customer()

        with pytest.raises(InvalidInput):
            catalog_service.update_customer(store, customer["id"], {"balance": 100})

    def test_delete_customer(self, store, make_customer):
        customer = make_customer()

        catalog_service.delete_customer(store, customer["id"])

        with pytest.raises(ReferenceNotFound):
            catalog_service.get_customer(store, customer["id"])

    def test_update_supplier_keeps_balance(self, store, make_supplier):
        supplier = make_supplier()
        store.update(f"suppliers/{supplier['id']}", {"balance": 700.0})

        updated = catalog_service.update_supplier(store, supplier["id"], {"name": "Battery House Ltd", "address": "Main Rd"})

        assert updated["name"] == "Battery House Ltd"
        assert updated["address"] == "Main Rd"
        assert updated["balance"] == 700.0

    def test_supplier_balance_is_not_editable(self, store, make_supplier):
        supplier = make_supplier()

        with pytest.raises(InvalidInput):
            catalog_service.update_supplier(store, supplier["id"], {"balance": 5})

        assert catalog_service.get_supplier(store, supplier["id"])["balance"] == 0.0

    def test_delete_supplier(self, store, make_supplier):
        supplier = make_supplier()

        catalog_service.delete_supplier(store, supplier["id"])

        with pytest.raises(ReferenceNotFound):
            catalog_service.get_supplier(store, supplier["id"])
