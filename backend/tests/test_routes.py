"""HTTP tests for the JSON API (status codes and error bodies)."""

from decimal import Decimal


JUSTIFICATION = "Wrong customer on the invoice"


def _create_sale(client, customer, product, quantity="2", **header):
    body = {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"}
    body.update(header)
    body["items"] = [{"product_id": product.id, "quantity": quantity}]
    response = client.post("/api/sales/", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["sale"]


def test_create_and_get_product(client, db_session, category):
    response = client.post("/api/catalog/products", json={
        "code": "API-1",
        "description": "Created over HTTP",
        "sale_price": "4.50",
        "stock_current": "5",
        "category_id": category.id,
    })
    assert response.status_code == 201
    product_id = response.get_json()["product"]["id"]

    response = client.get(f"/api/catalog/products/{product_id}")
    payload = response.get_json()["product"]
    assert response.status_code == 200
    assert Decimal(payload["stock_current"]) == Decimal("5")
    assert Decimal(payload["current_price"]) == Decimal("4.50")


def test_product_requires_fields(client, db_session):
    response = client.post("/api/catalog/products", json={"code": "X"})

    assert response.status_code == 400


def test_stock_movement_and_availability(client, db_session, product):
    response = client.post(f"/api/catalog/products/{product.id}/movements", json={
        "quantity": "15", "direction": "out",
    })
    assert response.status_code == 422
    assert response.get_json()["type"] == "InsufficientStockError"

    response = client.post(f"/api/catalog/products/{product.id}/movements", json={
        "quantity": "5", "direction": "in", "reason": "receiving",
    })
    assert response.status_code == 201
    assert Decimal(response.get_json()["movement"]["new"]) == Decimal("15")

    response = client.get(f"/api/catalog/products/{product.id}/availability?quantity=15")
    assert response.get_json()["availability"]["available"] is True


def test_category_tree_endpoint(client, db_session, category):
    response = client.post("/api/catalog/categories", json={
        "name": "Sparkling", "code": "SPK", "parent_id": category.id,
    })
    assert response.status_code == 201
    assert response.get_json()["category"]["path"] == "Beverages/Sparkling"

    tree = client.get(f"/api/catalog/categories/{category.id}/tree").get_json()["tree"]
    assert tree["children"][0]["code"] == "SPK"


def test_sale_lifecycle_over_http(client, db_session, customer, product):
    sale = _create_sale(client, customer, product)
    assert sale["status"] == "pending"
    assert Decimal(sale["total"]) == Decimal("20.00")
    assert len(sale["lines"]) == 1

    response = client.post(f"/api/sales/{sale['id']}/transition", json={"status": "delivered"})
    assert response.status_code == 409
    body = response.get_json()
    assert body["type"] == "IllegalTransitionError"
    assert body["details"]["current_status"] == "pending"

    response = client.post(f"/api/sales/{sale['id']}/confirm", json={"first_due_date": "2024-05-01"})
    assert response.status_code == 200
    confirmed = response.get_json()
    assert confirmed["sale"]["status"] == "approved"
    assert confirmed["receivables"][0]["due_date"] == "2024-05-01"

    response = client.post(f"/api/sales/{sale['id']}/transition", json={"status": "picking"})
    assert response.status_code == 200
    assert response.get_json()["sale"]["status"] == "picking"


def test_edit_pending_sale_over_http(client, db_session, customer, product):
    sale = _create_sale(client, customer, product)

    response = client.patch(f"/api/sales/{sale['id']}", json={"freight": "5.00"})
    assert response.status_code == 200
    assert Decimal(response.get_json()["sale"]["total"]) == Decimal("25.00")

    response = client.post(f"/api/sales/{sale['id']}/lines", json={"product_id": product.id, "quantity": "1"})
    assert response.status_code == 201
    line_id = response.get_json()["line"]["id"]

    response = client.delete(f"/api/sales/{sale['id']}/lines/{line_id}")
    assert response.status_code == 200
    assert len(response.get_json()["sale"]["lines"]) == 1

    response = client.delete(f"/api/sales/{sale['id']}")
    assert response.status_code == 204
    assert client.get(f"/api/sales/{sale['id']}").status_code == 404


def test_unknown_sale_returns_404(client, db_session):
    response = client.get("/api/sales/424242")

    assert response.status_code == 404
    assert response.get_json()["type"] == "NotFoundError"


def test_invalid_sale_body_returns_400(client, db_session, customer, product):
    response = client.post("/api/sales/", json={
        "customer_id": customer.id,
        "seller_id": 1,
        "payment_method": "cash",
        "items": [{"product_id": product.id, "quantity": "-1"}],
    })

    assert response.status_code == 400
    assert response.get_json()["type"] == "ValidationError"


def test_fiscal_document_lifecycle_over_http(client, db_session, customer, product):
    sale = _create_sale(client, customer, product)

    response = client.post("/api/fiscal-documents/", json={"sale_id": sale["id"]})
    assert response.status_code == 201
    document = response.get_json()["document"]
    assert document["status"] == "drafting"
    assert len(document["access_key"]) == 44

    response = client.post("/api/fiscal-documents/", json={"sale_id": sale["id"]})
    assert response.status_code == 409
    assert response.get_json()["type"] == "ConflictError"

    doc_id = document["id"]
    assert client.post(f"/api/fiscal-documents/{doc_id}/submit").status_code == 200
    assert client.post(f"/api/fiscal-documents/{doc_id}/processing").status_code == 200
    response = client.post(f"/api/fiscal-documents/{doc_id}/authorize", json={"protocol": "135240000000001"})
    assert response.status_code == 200
    assert response.get_json()["status"]["status"] == "authorized"

    response = client.post(f"/api/fiscal-documents/{doc_id}/cancel", json={"justification": "short"})
    assert response.status_code == 400

    response = client.post(f"/api/fiscal-documents/{doc_id}/cancel", json={"justification": JUSTIFICATION})
    assert response.status_code == 200
    assert response.get_json()["document"]["status"] == "cancelled"

    response = client.post(f"/api/fiscal-documents/{doc_id}/cancel", json={"justification": JUSTIFICATION})
    assert response.status_code == 409
    assert response.get_json()["type"] == "InvalidStateError"

    payload = client.get(f"/api/fiscal-documents/{doc_id}").get_json()
    assert Decimal(payload["taxes"]["icms"]["value"]) == Decimal("3.60")


def test_ledger_over_http(client, db_session, customer):
    response = client.post("/api/ledger/receivables", json={
        "customer_id": customer.id,
        "document_number": "INV-77",
        "amount": "100.00",
        "issue_date": "2024-01-01",
        "due_date": "2024-01-15",
        "category": "services",
    })
    assert response.status_code == 201
    entry_id = response.get_json()["entry"]["id"]

    response = client.get(f"/api/ledger/entries/{entry_id}?as_of=2024-02-01")
    assert response.get_json()["entry"]["overdue"] is True

    response = client.post(f"/api/ledger/entries/{entry_id}/accrue", json={"as_of": "2024-02-14"})
    assert response.status_code == 200
    assert response.get_json()["charges"]["interest"] == "0.99"

    response = client.post(f"/api/ledger/entries/{entry_id}/settle", json={"amount": "500.00"})
    assert response.status_code == 422
    assert response.get_json()["type"] == "OverpaymentError"

    response = client.post(f"/api/ledger/entries/{entry_id}/settle", json={
        "amount": "102.99", "settled_on": "2024-02-14", "method": "pix",
    })
    assert response.status_code == 200
    assert response.get_json()["entry"]["status"] == "settled"

    response = client.post(f"/api/ledger/entries/{entry_id}/next-recurrence")
    assert response.status_code == 422
    assert response.get_json()["type"] == "NotRecurringError"


def test_bad_date_returns_400(client, db_session, customer):
    response = client.post("/api/ledger/receivables", json={
        "customer_id": customer.id,
        "document_number": "INV-78",
        "amount": "10.00",
        "due_date": "15/01/2024",
        "category": "services",
    })

    assert response.status_code == 400


def test_confirm_options_must_be_booleans(client, db_session, customer, product):
    sale = _create_sale(client, customer, product)

    response = client.post(f"/api/sales/{sale['id']}/confirm", json={"issue_document": "false"})
    assert response.status_code == 400
    body = response.get_json()
    assert body["type"] == "ValidationError"
    assert body["details"]["field"] == "issue_document"
    assert client.get(f"/api/sales/{sale['id']}").get_json()["sale"]["status"] == "pending"

    response = client.post(f"/api/sales/{sale['id']}/confirm", json={"issue_document": False, "create_receivables": False})
    assert response.status_code == 200
    confirmed = response.get_json()
    assert confirmed["fiscal_document"] is None
    assert confirmed["receivables"] == []


def test_settlement_with_sub_cent_amount_returns_400(client, db_session, customer):
    response = client.post("/api/ledger/receivables", json={
        "customer_id": customer.id,
        "document_number": "REC-HTTP-2",
        "amount": "10.00",
        "due_date": "2024-03-01",
        "category": "services",
    })
    entry_id = response.get_json()["entry"]["id"]

    for amount in ("9.999", "NaN"):
        response = client.post(f"/api/ledger/entries/{entry_id}/settle", json={"amount": amount})
        assert response.status_code == 400
        assert response.get_json()["type"] == "ValidationError"

    entry = client.get(f"/api/ledger/entries/{entry_id}").get_json()["entry"]
    assert entry["status"] == "open"
