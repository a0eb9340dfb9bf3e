# Overview: Pytest coverage for the HTTP API through Flask's test client.

from conftest import tenant_headers


def _post(client, url, payload, tenant="shop-a"):
    return client.post(url, json=payload, headers=tenant_headers(tenant))


def _product(client, stock=100):
    response = _post(client, "/api/products", {"code": "N70", "name": "Exide N70", "salePrice": 50, "currentStock": stock})
    assert response.status_code == 201
    return response.json["product"]


def _stock(client, product_id, tenant="shop-a"):
    response = client.get(f"/api/inventory/{product_id}/stock", headers=tenant_headers(tenant))
    return response.json["currentStock"]


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["policies"]["stock_negative"] == "clamp"


def test_sale_lifecycle_over_http(client, db_session):
    product = _product(client)
    item = {"productId": product["id"], "quantity": 10, "salePrice": 50}

    created = _post(client, "/api/sales", {"items": [item], "status": "completed"})
    assert created.status_code == 201
    sale_id = created.json["sale"]["id"]
    assert _stock(client, product["id"]) == 90

    patched = client.patch(
        f"/api/sales/{sale_id}",
        json={"items": [{**item, "quantity": 4}]},
        headers=tenant_headers(),
    )
    assert patched.status_code == 200
    assert _stock(client, product["id"]) == 96

    deleted = client.delete(f"/api/sales/{sale_id}", headers=tenant_headers())
    assert deleted.status_code == 200
    assert _stock(client, product["id"]) == 100

    missing = client.get(f"/api/sales/{sale_id}", headers=tenant_headers())
    assert missing.status_code == 404
    assert missing.json["kind"] == "ReferenceNotFound"

    movements = client.get(f"/api/inventory/{product['id']}/movements", headers=tenant_headers())
    assert [m["type"] for m in movements.json["movements"]] == ["transfer_in", "sale", "return_sale", "return_sale"]


def test_invalid_sale_is_400(client, db_session):
    response = _post(client, "/api/sales", {"items": []})

    assert response.status_code == 400
    assert response.json["kind"] == "InvalidInput"


def test_purchase_and_supplier_balance(client, db_session):
    product = _product(client, stock=0)
    supplier = _post(client, "/api/suppliers", {"name": "Battery House"}).json["supplier"]

    response = _post(client, "/api/purchases", {
        "supplierId": supplier["id"],
        "status": "completed",
        "items": [{"productId": product["id"], "quantity": 5, "tradePrice": 40}],
    })

    assert response.status_code == 201
    assert response.json["purchase"]["netAmount"] == 200.0
    assert _stock(client, product["id"]) == 5
    assert client.get("/api/products/low-stock", headers=tenant_headers()).json["products"][0]["id"] == product["id"]


def test_payment_allocation_over_http(client, db_session):
    product = _product(client)
    customer = _post(client, "/api/customers", {"name": "Ali"}).json["customer"]
    for date, price in (("2024-02-01", 500), ("2024-01-01", 300)):
        _post(client, "/api/sales", {
            "customerId": customer["id"],
            "saleDate": date,
            "items": [{"productId": product["id"], "quantity": 1, "salePrice": price}],
        })

    too_much = _post(client, "/api/payments/allocate", {"customer_id": customer["id"], "amount": 900})
    assert too_much.status_code == 400
    assert too_much.json["kind"] == "InvalidPaymentAmount"

    paid = _post(client, "/api/payments/allocate", {"customer_id": customer["id"], "amount": 400})
    assert paid.status_code == 201
    assert [a["amount"] for a in paid.json["allocations"]] == [300.0, 100.0]

    balance = client.get(f"/api/customers/{customer['id']}/balance", headers=tenant_headers())
    assert balance.json["balance"] == 400.0
    assert len(balance.json["openSales"]) == 1


def test_old_battery_endpoints(client, db_session):
    collected = _post(client, "/api/old-batteries/collections", {"name": "Exide-12V", "weight": 50, "ratePerKg": 100, "quantity": 5})
    assert collected.status_code == 201
    assert collected.json["aggregate"]["totalQuantity"] == 5

    consumed = _post(client, "/api/old-batteries/consumptions", {"name": "Exide-12V", "weight": 10, "quantity": 1})
    assert consumed.status_code == 201
    assert consumed.json["aggregate"]["totalQuantity"] == 4

    short = _post(client, "/api/old-batteries/consumptions", {"name": "Exide-12V", "weight": 10, "quantity": 10})
    assert short.status_code == 409
    assert short.json["kind"] == "InsufficientStock"

    fact_id = consumed.json["consumption"]["id"]
    assert _post(client, f"/api/old-batteries/consumptions/{fact_id}/reverse", {}).status_code == 200
    assert _post(client, f"/api/old-batteries/consumptions/{fact_id}/reverse", {}).status_code == 400

    stock = client.get("/api/old-batteries/stock", headers=tenant_headers()).json["stock"]
    assert stock[0]["totalQuantity"] == 5

    sale = _post(client, "/api/old-battery-sales", {"name": "Exide-12V", "weight": 10, "ratePerKg": 95})
    assert sale.status_code == 201
    assert sale.json["sale"]["invoiceNumber"] == "OB-001"
    deleted = client.delete(f"/api/old-battery-sales/{sale.json['sale']['id']}", headers=tenant_headers())
    assert deleted.status_code == 200


def test_next_invoice_number(client, db_session):
    assert client.get("/api/invoices/next?series=purchase").json["invoiceNumber"] == "PUR-001"
    assert client.get("/api/invoices/next?series=bogus").status_code == 400


def test_tenants_do_not_see_each_other(client, db_session):
    product = _product(client)

    assert client.get("/api/products", headers=tenant_headers("shop-b")).json["products"] == []
    response = client.get(f"/api/inventory/{product['id']}/stock", headers=tenant_headers("shop-b"))
    assert response.status_code == 404


def test_reconcile_and_recover_endpoints(client, db_session):
    _product(client, stock=7)

    reconcile = _post(client, "/api/inventory/reconcile", {"fix": False})
    assert reconcile.status_code == 200
    assert reconcile.json["drift"] == []

    recover = _post(client, "/api/inventory/recover", {})
    assert recover.json["recovered"] == []


def test_catalog_edit_and_delete_over_http(client, db_session):
    product = _product(client, stock=4)
    supplier = _post(client, "/api/suppliers", {"name": "Battery House"}).json["supplier"]

    renamed = client.patch(f"/api/products/{product['id']}", json={"name": "Exide N70Z"}, headers=tenant_headers())
    assert renamed.status_code == 200
    assert renamed.json["product"]["currentStock"] == 4

    restock = client.patch(f"/api/products/{product['id']}", json={"currentStock": 99}, headers=tenant_headers())
    assert restock.status_code == 400

    balance = client.patch(f"/api/suppliers/{supplier['id']}", json={"balance": 10}, headers=tenant_headers())
    assert balance.status_code == 400

    assert client.delete(f"/api/products/{product['id']}", headers=tenant_headers()).status_code == 200
    assert client.delete(f"/api/products/{product['id']}", headers=tenant_headers()).status_code == 404


def test_old_battery_edits_over_http(client, db_session):
    collected = _post(client, "/api/old-batteries/collections", {"name": "Exide-12V", "weight": 50, "ratePerKg": 100, "quantity": 5})
    fact_id = collected.json["collection"]["id"]
    sale = _post(client, "/api/old-battery-sales", {"name": "Exide-12V", "weight": 10, "ratePerKg": 95}).json["sale"]

    edited = client.patch(f"/api/old-battery-sales/{sale['id']}", json={"quantity": 2, "weight": 20}, headers=tenant_headers())
    assert edited.status_code == 200
    assert edited.json["sale"]["totalAmount"] == 1900.0

    shrink = client.patch(f"/api/old-batteries/collections/{fact_id}", json={"quantity": 1}, headers=tenant_headers())
    assert shrink.status_code == 409

    grown = client.patch(f"/api/old-batteries/collections/{fact_id}", json={"quantity": 6, "weight": 60}, headers=tenant_headers())
    assert grown.status_code == 200
    assert grown.json["aggregate"]["totalQuantity"] == 4

    assert client.delete(f"/api/old-batteries/collections/{fact_id}", headers=tenant_headers()).status_code == 409
