# Overview: Pytest coverage for the tenant-scoped document store gateway.

import pytest

from shopledger.errors import InvalidInput, ReferenceNotFound
from shopledger.services.document_store import DocumentStore


class TestPaths:
    def test_short_and_full_paths_are_equivalent(self, store):
        store.put("products/p1", {"name": "N70"})

        assert store.get("shop-a/products/p1")["name"] == "N70"
        assert store.get("/products/p1/")["id"] == "p1"

    def test_foreign_tenant_path_rejected(self, store):
        with pytest.raises(InvalidInput):
            store.get("shop-b/products/p1")

    @pytest.mark.parametrize("path", ["products", "a/b/c/d", ""])
    def test_malformed_paths_rejected(self, store, path):
        with pytest.raises(InvalidInput):
            store.get(path)

    @pytest.mark.parametrize("tenant", ["", "  ", "a/b", None])
    def test_tenant_id_required(self, db_session, tenant):
        with pytest.raises(InvalidInput):
            DocumentStore(tenant)


class TestCrud:
    def test_put_replaces_whole_document(self, store):
        store.put("customers/c1", {"name": "Ali", "phone": "123"})
        store.put("customers/c1", {"name": "Ali Khan"})

        assert store.get("customers/c1") == {"id": "c1", "name": "Ali Khan"}

    def test_update_merges(self, store):
        store.put("customers/c1", {"name": "Ali", "phone": "123"})

        updated = store.update("customers/c1", {"phone": "456", "id": "ignored"})

        assert updated == {"id": "c1", "name": "Ali", "phone": "456"}

    def test_update_missing_document(self, store):
        with pytest.raises(ReferenceNotFound):
            store.update("customers/none", {"name": "x"})

    def test_remove(self, store):
        store.put("customers/c1", {"name": "Ali"})

        assert store.remove("customers/c1") is True
        assert store.remove("customers/c1") is False
        assert store.get("customers/c1") is None

    def test_returned_documents_are_copies(self, store):
        store.put("products/p1", {"tags": ["a"]})

        doc = store.get("products/p1")
        doc["tags"].append("b")

        assert store.get("products/p1")["tags"] == ["a"]

    def test_list_keeps_insertion_order(self, store):
        for key in ("z", "a", "m"):
            store.put(f"stockMovements/{key}", {"quantity": 1})

        assert [d["id"] for d in store.list("stockMovements")] == ["z", "a", "m"]

    def test_tenants_are_isolated(self, store):
        other = DocumentStore("shop-b")
        store.put("products/p1", {"name": "mine"})
        other.put("products/p1", {"name": "theirs"})

        assert store.get("products/p1")["name"] == "mine"
        assert [d["name"] for d in other.list("products")] == ["theirs"]

    def test_increment(self, store):
        assert store.increment("counters/x", "value", 1, initial=4) == 5
        assert store.increment("counters/x", "value", 2) == 7


class TestSubscribe:
    def test_listener_sees_writes_under_prefix(self, store):
        seen = []
        unsubscribe = store.subscribe("sales", lambda path, value: seen.append((path, value)))

        store.put("sales/s1", {"status": "completed"})
        store.update("sales/s1", {"status": "returned"})
        store.put("products/p1", {"name": "ignored"})
        store.remove("sales/s1")

        assert seen == [
            ("shop-a/sales/s1", {"id": "s1", "status": "completed"}),
            ("shop-a/sales/s1", {"id": "s1", "status": "returned"}),
            ("shop-a/sales/s1", None),
        ]

        unsubscribe()
        store.put("sales/s2", {"status": "completed"})
        assert len(seen) == 3

    def test_listener_for_single_document(self, store):
        seen = []
        store.subscribe("shop-a/products/p1", lambda path, value: seen.append(path))

        store.put("products/p1", {"name": "a"})
        store.put("products/p10", {"name": "b"})

        assert seen == ["shop-a/products/p1"]
