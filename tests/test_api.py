from __future__ import annotations


def _create_fabric(client, name="Cotton", **extra):
    response = client.post("/fabrics", json={"name": name, **extra})
    assert response.status_code == 201
    return response.json()["fabric_id"]


def _purchase(client, fabric_id, **body):
    response = client.post(f"/fabrics/{fabric_id}/batches", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_fabric_lifecycle_and_summary(client):
    fabric_id = _create_fabric(client, low_stock_threshold=3)
    _purchase(client, fabric_id, quantity=5, unit_cost=10, purchase_date="2024-01-01")
    _purchase(client, fabric_id, quantity=5, unit_cost=12, purchase_date="2024-02-01")

    detail = client.get(f"/fabrics/{fabric_id}").json()
    assert detail["summary"]["total_quantity"] == 10
    assert detail["summary"]["weighted_average_cost"] == 11
    assert detail["summary"]["low_stock"] is False
    assert len(detail["batches"]) == 2

    listing = client.get("/fabrics").json()
    assert listing["count"] == 1
    assert "batches" not in listing["fabrics"][0]


def test_sell_returns_cost_breakdown(client):
    fabric_id = _create_fabric(client)
    _purchase(client, fabric_id, quantity=5, unit_cost=10, purchase_date="2024-01-01")
    _purchase(client, fabric_id, quantity=5, unit_cost=12, purchase_date="2024-02-01")

    response = client.post(f"/fabrics/{fabric_id}/sell", json={"quantity": 7})

    assert response.status_code == 200
    body = response.json()
    assert body["total_cost"] == 74
    assert [line["quantity_taken"] for line in body["cost_of_goods_sold"]] == [5, 2]


def test_error_mapping(client):
    fabric_id = _create_fabric(client)
    _purchase(client, fabric_id, quantity=10, unit_cost=1)

    short = client.post(f"/fabrics/{fabric_id}/sell", json={"quantity": 11})
    assert short.status_code == 409
    assert short.json()["error"] == "insufficient_stock"
    assert short.json()["available"] == 10
    assert short.json()["requested"] == 11

    zero = client.post(f"/fabrics/{fabric_id}/sell", json={"quantity": 0})
    assert zero.status_code == 422
    assert zero.json()["error"] == "invalid_quantity"

    missing = client.get("/fabrics/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["error"] == "fabric_not_found"

    empty_id = _create_fabric(client, name="Empty")
    empty = client.post(f"/fabrics/{empty_id}/sell", json={"quantity": 1})
    assert empty.status_code == 409
    assert empty.json()["error"] == "no_batches"


def test_purchase_requires_exactly_one_of_quantity_or_items(client):
    fabric_id = _create_fabric(client)

    response = client.post(f"/fabrics/{fabric_id}/batches", json={"unit_cost": 1})
    assert response.status_code == 400


def test_colored_batch_edit_flows(client):
    fabric_id = _create_fabric(client)
    batch = _purchase(
        client,
        fabric_id,
        unit_cost=4,
        items=[{"color_name": "Red", "quantity": 3}, {"color_name": "Blue", "quantity": 4}],
    )

    patched = client.patch(f"/fabrics/{fabric_id}/batches/{batch['id']}", json={"container_no": "CN-9"})
    assert patched.status_code == 200
    assert patched.json()["container_no"] == "CN-9"

    adjusted = client.put(
        f"/fabrics/{fabric_id}/batches/{batch['id']}/quantity",
        json={"items": [{"color_name": "Red", "quantity": 1}, {"color_name": "Blue", "quantity": 4}]},
    )
    assert adjusted.status_code == 200
    assert adjusted.json()["quantity"] == 5

    missing = client.put(f"/fabrics/{fabric_id}/batches/nope/quantity", json={"quantity": 1})
    assert missing.status_code == 404
    assert missing.json()["error"] == "batch_not_found"


def test_sales_quote_check_and_reduce(client):
    fabric_id = _create_fabric(client)
    _purchase(
        client,
        fabric_id,
        unit_cost=5,
        purchase_date="2024-01-01",
        items=[{"color_name": "Red", "quantity": 3}, {"color_name": "Blue", "quantity": 4}],
    )

    quote = client.post("/sales/quote", json={"fabricId": fabric_id, "quantity": 3, "color": "Red"})
    assert quote.status_code == 200
    assert quote.json()["total_cost"] == 15

    check = client.post(
        "/sales/check",
        json={"products": [{"fabricId": fabric_id, "quantity": 4, "color": "Red"}]},
    )
    assert check.json()["all_available"] is False
    assert check.json()["products"][0]["current_stock"] == 3

    reduced = client.post("/sales/reduce", json={"products": [{"fabricId": fabric_id, "quantity": 3, "color": "Red"}]})
    assert reduced.status_code == 200
    assert reduced.json()["results"][0]["total_cost"] == 15

    detail = client.get(f"/fabrics/{fabric_id}").json()
    assert detail["summary"]["colors"] == [{"color": "Blue", "quantity": 4}]


def test_memo_quote_and_commit(client):
    fabric_id = _create_fabric(client)
    _purchase(client, fabric_id, quantity=10, unit_cost=2)

    lines = [{"fabricId": fabric_id, "name": "Cotton", "quantity": 4, "price": 5}]
    quote = client.post("/memos/quote", json={"lines": lines})
    assert quote.status_code == 200
    assert quote.json()["profit"] == 12

    committed = client.post("/memos/commit", json={"lines": lines})
    assert committed.status_code == 200
    assert committed.json()["grand_total"] == 20

    too_much = client.post("/memos/commit", json={"lines": [{**lines[0], "quantity": 7}]})
    assert too_much.status_code == 409
    assert client.get(f"/fabrics/{fabric_id}").json()["summary"]["total_quantity"] == 6


def test_sales_quote_on_fabric_without_batches(client):
    fabric_id = _create_fabric(client, name="Empty")

    response = client.post("/sales/quote", json={"fabricId": fabric_id, "quantity": 1})

    assert response.status_code == 409
    assert response.json()["error"] == "no_batches"
