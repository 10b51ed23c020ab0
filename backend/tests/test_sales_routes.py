"""HTTP surface: payload parsing and error mapping."""

from checkout.models import Sale


def _create_payload(shop, quantity=3, total=3000, paid=3000, **extra):
    payload = {
        "cash_register_id": shop.register.id,
        "total_amount_cents": total,
        "amount_cancelled_cents": paid,
        "lines": [{"stock_id": shop.malta.id, "quantity": quantity, "unit_price_cents": 1000}],
        "payments": [{"payment_method_id": shop.cash.id, "amount_cancelled_cents": paid}] if paid else [],
    }
    payload.update(extra)
    return payload


def test_create_and_get_sale(client, shop, db_session):
    response = client.post("/api/sales/", json=_create_payload(shop))
    assert response.status_code == 201
    sale = response.get_json()["sale"]
    assert sale["status"] == "paid"
    assert sale["ticket_number"] == 1
    assert sale["lines"][0]["product_name"] == "Malta"
    assert sale["payments"][0]["payment_method"] == "Cash"

    response = client.get(f"/api/sales/{sale['id']}")
    assert response.status_code == 200
    assert response.get_json()["sale"]["id"] == sale["id"]

    db_session.expire_all()
    assert shop.malta.quantity == 2


def test_shortage_is_409_with_every_line(client, shop, db_session):
    payload = _create_payload(shop, quantity=6, total=6000, paid=6000)
    payload["lines"].append({"stock_id": shop.chips.id, "quantity": 11, "unit_price_cents": 250})

    response = client.post("/api/sales/", json=payload)

    assert response.status_code == 409
    body = response.get_json()
    assert body["error"] == "Insufficient stock for one or more items"
    assert len(body["details"]["shortages"]) == 2
    assert db_session.query(Sale).count() == 0


def test_validation_errors_are_400(client, shop, db_session):
    assert client.post("/api/sales/", json=_create_payload(shop, lines=[])).status_code == 400
    assert client.post("/api/sales/", json=_create_payload(shop, total_amount_cents="ten")).status_code == 400
    assert client.post("/api/sales/", json=_create_payload(shop, paid=4000)).status_code == 400

    missing_register = _create_payload(shop)
    del missing_register["cash_register_id"]
    response = client.post("/api/sales/", json=missing_register)
    assert response.status_code == 400
    assert response.get_json()["error"] == "cash_register_id is required"

    response = client.post("/api/sales/", json=_create_payload(shop, lines=[{"stock_id": shop.malta.id}]))
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("lines[0]:")


def test_unknown_ids_are_404(client, shop, db_session):
    assert client.post("/api/sales/", json=_create_payload(shop, cash_register_id=99999)).status_code == 404
    assert client.get("/api/sales/99999").status_code == 404
    assert client.put("/api/sales/99999", json=_create_payload(shop)).status_code == 404


def test_update_patch_and_approve(client, shop, db_session):
    created = client.post("/api/sales/", json=_create_payload(shop, quantity=2, total=2000, paid=500)).get_json()["sale"]
    line_id = created["lines"][0]["id"]

    response = client.put(f"/api/sales/{created['id']}", json={
        "total_amount_cents": 3000,
        "amount_cancelled_cents": 500,
        "lines": [{"id": line_id, "stock_id": shop.malta.id, "quantity": 3, "unit_price_cents": 1000}],
        "payments": [{"payment_method_id": shop.cash.id, "amount_cancelled_cents": 500}],
    })
    assert response.status_code == 200
    assert response.get_json()["sale"]["lines"][0]["quantity"] == 3

    response = client.patch(f"/api/sales/{created['id']}", json={
        "amount_cancelled_cents": 3000,
        "payments": [
            {"payment_method_id": shop.cash.id, "amount_cancelled_cents": 500},
            {"payment_method_id": shop.card.id, "amount_cancelled_cents": 2500},
        ],
    })
    assert response.status_code == 200
    assert response.get_json()["sale"]["status"] == "paid"

    response = client.post(f"/api/sales/{created['id']}/approve", json={"approve": True, "user_id": shop.customer.id})
    assert response.status_code == 200
    assert response.get_json()["sale"]["client_approved"] is True

    response = client.post(f"/api/sales/{created['id']}/approve", json={"approve": "yes"})
    assert response.status_code == 400

    db_session.expire_all()
    assert shop.malta.quantity == 2


def test_list_and_summary(client, shop, db_session):
    client.post("/api/sales/", json=_create_payload(shop, quantity=1, total=1000, paid=1000))
    client.post("/api/sales/", json=_create_payload(shop, quantity=1, total=1000, paid=0, client_name="Maria"))

    response = client.get(f"/api/sales/?branch_id={shop.branch.id}&status=pending")
    body = response.get_json()
    assert response.status_code == 200
    assert body["total"] == 1
    assert body["data"][0]["client_name"] == "Maria"
    assert "lines" not in body["data"][0]

    response = client.get(f"/api/sales/summary?branch_id={shop.branch.id}")
    summary = response.get_json()["summary"]
    assert summary["completed"] == 1
    assert summary["pendingAmount"] == 1000

    assert client.get("/api/sales/summary").status_code == 400
    assert client.get("/api/sales/?date_field=nope").status_code == 400


def test_last_purchase_and_last_sale(client, shop, db_session):
    assert client.get(f"/api/sales/last-purchase?user_id={shop.customer.id}").status_code == 404

    client.post("/api/sales/", json=_create_payload(shop, quantity=1, total=1000, paid=1000, user_id=shop.customer.id))

    response = client.get(f"/api/sales/last-purchase?user_id={shop.customer.id}")
    assert response.status_code == 200
    assert response.get_json()["sale"]["user_id"] == shop.customer.id

    response = client.get(f"/api/sales/last-sale?branch_id={shop.branch.id}")
    assert response.status_code == 200
    assert client.get("/api/sales/last-sale").status_code == 400


def test_link_client_route(client, shop, db_session):
    client.post("/api/sales/", json=_create_payload(shop, quantity=1, total=1000, paid=0, client_dni="V-111"))

    response = client.post("/api/sales/link-client", json={"client_dni": "V-111", "user_id": shop.customer.id})
    assert response.status_code == 200
    assert response.get_json()["sales_linked"] == 1

    assert client.post("/api/sales/link-client", json={"client_dni": "V-111"}).status_code == 400


def test_category_totals_route(client, shop, db_session):
    client.post("/api/sales/", json=_create_payload(shop))

    response = client.get(f"/api/reports/category-totals?branch_id={shop.branch.id}")
    assert response.status_code == 200
    body = response.get_json()
    assert body["ledger"] == "SALES"
    assert len(body["months"]) == 12
    assert sum(c["total_cents"] for m in body["months"] for c in m["categories"]) == 3000

    assert client.get("/api/reports/category-totals?ledger=purchases").status_code == 400


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"
