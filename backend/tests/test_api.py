"""
HTTP round trips through the blueprints: status codes and error bodies.
"""

from pharmaledger.services import register_service


def test_register_day_over_http(client, cashier_headers, branch, product):
    opened = client.post("/api/registers/open", json={"opening_balance_cents": 10000}, headers=cashier_headers)
    assert opened.status_code == 201
    summary_id = opened.json["summary"]["id"]

    again = client.post("/api/registers/open", json={"opening_balance_cents": 0}, headers=cashier_headers)
    assert again.status_code == 400
    assert again.json["details"] == {"summary_id": summary_id}

    sale = client.post(
        "/api/sales",
        json={"items": [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 2500}]},
        headers=cashier_headers,
    )
    assert sale.status_code == 201

    expense = client.post(
        "/api/expenses",
        json={"concept": "Papelería", "amount_cents": 3000, "category": "Insumos"},
        headers=cashier_headers,
    )
    assert expense.status_code == 201

    current = client.get("/api/registers/current", headers=cashier_headers)
    assert current.json["summary"]["expected_balance_cents"] == 12000

    entries = client.get(f"/api/registers/{summary_id}/entries", headers=cashier_headers)
    assert [e["entry_type"] for e in entries.json] == ["expense", "sale", "initial"]

    closed = client.post(
        f"/api/registers/{summary_id}/close",
        json={"actual_balance_cents": 11500},
        headers=cashier_headers,
    )
    assert closed.status_code == 200
    assert closed.json["summary"]["difference_cents"] == -500

    reconcile = client.get(f"/api/registers/{summary_id}/reconcile", headers=cashier_headers)
    assert reconcile.json["matches"] is True


def test_insufficient_stock_body(client, cashier_headers, branch, product):
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": product["id"], "quantity": 50, "unit_price_cents": 2500}]},
        headers=cashier_headers,
    )
    assert resp.status_code == 400
    assert resp.json["details"]["items"][0]["available"] == 10


def test_validation_and_not_found(client, admin_headers):
    resp = client.post("/api/expenses", data="not json", headers=admin_headers)
    assert resp.status_code == 400

    resp = client.delete("/api/expenses/9999", headers=admin_headers)
    assert resp.status_code == 404

    resp = client.get("/api/catalog/colors", headers=admin_headers)
    assert resp.status_code == 404


def test_duplicate_barcode_conflict(client, admin_headers, product):
    resp = client.post(
        "/api/products",
        json={
            "barcode": product["barcode"],
            "commercial_name": "Otro",
            "category": "Analgésicos",
            "selling_price_cents": 100,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 409


def test_bulk_delete_over_http(client, admin_headers, branch, product):
    created = client.post(
        "/api/sales",
        json={"items": [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}]},
        headers=admin_headers,
    )
    sale_id = created.json["sale"]["id"]

    resp = client.post("/api/sales/bulk-delete", json={"ids": [sale_id, 777]}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json["summary"] == "1 of 2 deleted"
    assert resp.json["failed"][0]["id"] == 777


def test_storefront_order(client, admin_headers, branch, product):
    resp = client.post(
        "/api/store/orders",
        json={
            "items": [{"product_id": product["id"], "quantity": 1}],
            "customer_name": "Luis Gómez",
            "customer_phone": "555-0100",
        },
    )
    assert resp.status_code == 201
    order_id = resp.json["order"]["id"]
    assert resp.json["order"]["final_total_cents"] == 2500

    resp = client.patch(f"/api/sales/{order_id}/status", json={"status": "processing"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json["sale"]["status"] == "processing"


def test_contado_purchase_over_http(client, admin_headers, admin, branch):
    register_service.open_register(50000, admin, branch_id=branch.id)

    supplier = client.post("/api/suppliers", json={"name": "Droguería Sur"}, headers=admin_headers)
    assert supplier.status_code == 201

    purchase = client.post(
        "/api/purchases",
        json={
            "supplier_id": supplier.json["id"],
            "invoice_number": "A-1",
            "item_count": 3,
            "total_amount_cents": 20000,
            "payment_type": "contado",
        },
        headers=admin_headers,
    )
    assert purchase.status_code == 201
    assert purchase.json["purchase"]["is_paid"] is True

    current = client.get("/api/registers/current", headers=admin_headers)
    assert current.json["summary"]["expected_balance_cents"] == 30000


def test_report_over_http(client, admin_headers, branch):
    resp = client.get("/api/reports/inventory", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json["report_type"] == "inventory"

    resp = client.get("/api/reports/profit", headers=admin_headers)
    assert resp.status_code == 400


def test_string_branch_ids_in_bodies(client, cashier_headers, admin_headers, branch, other_branch):
    opened = client.post(
        "/api/registers/open",
        json={"opening_balance_cents": 100, "branch_id": str(branch.id)},
        headers=cashier_headers,
    )
    assert opened.status_code == 201
    assert opened.json["summary"]["branch_id"] == branch.id

    elsewhere = client.post(
        "/api/registers/open",
        json={"opening_balance_cents": 0, "branch_id": str(other_branch.id)},
        headers=admin_headers,
    )
    assert elsewhere.status_code == 201
    summary_id = elsewhere.json["summary"]["id"]

    closed = client.post(
        f"/api/registers/{summary_id}/close",
        json={"actual_balance_cents": 0, "branch_id": str(other_branch.id)},
        headers=admin_headers,
    )
    assert closed.status_code == 200

    bad = client.post(
        "/api/registers/open",
        json={"opening_balance_cents": 0, "branch_id": "centro"},
        headers=admin_headers,
    )
    assert bad.status_code == 400
    assert "branch_id" in bad.json["error"]
