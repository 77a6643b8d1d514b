def test_guest_gets_session_cookie_and_empty_cart(client):
    res = client.get("/api/cart")
    assert res.status_code == 200
    assert "cart_session" in res.cookies
    cart = res.json()["cart"]
    assert cart["items"] == []
    assert cart["is_empty"] is True
    assert cart["formatted_total"] == "$0.00"


def test_add_item_to_cart(client, make_product):
    product = make_product(price_cents=499)

    res = client.post("/api/cart", json={"product_id": product.id, "quantity": 2})
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["data"]["quantity"] == 2
    assert body["data"]["price"] == 499
    assert body["data"]["product_snapshot"]["sku"] == product.sku
    assert body["cart_summary"]["total_quantity"] == 2
    assert body["cart_summary"]["total_price"] == 998

    # the cookie keeps the same cart across requests
    cart = client.get("/api/cart").json()["cart"]
    assert len(cart["items"]) == 1
    assert cart["formatted_total"] == "$9.98"


def test_add_unknown_product_is_404(client):
    res = client.post("/api/cart", json={"product_id": 9999, "quantity": 1})
    assert res.status_code == 404
    assert res.json()["code"] == "NOT_FOUND"


def test_add_more_than_stock_is_rejected(client, make_product):
    product = make_product(stock=1)
    res = client.post("/api/cart", json={"product_id": product.id, "quantity": 2})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["code"] == "STOCK_INSUFFICIENT"
    assert body["data"]["available"] == 1


def test_limit_error_carries_numbers(client, make_product):
    product = make_product(stock=100)
    client.post("/api/cart", json={"product_id": product.id, "quantity": 5})
    res = client.post("/api/cart", json={"product_id": product.id, "quantity": 6})
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "CART_LIMIT_EXCEEDED"
    assert body["message"] == "Maximum quantity per item is 10"
    assert body["data"]["current_quantity"] == 5


def test_update_and_remove_item(client, make_product):
    product = make_product()
    item_id = client.post("/api/cart", json={"product_id": product.id, "quantity": 1}).json()["data"]["id"]

    res = client.put(f"/api/cart/{item_id}", json={"quantity": 4})
    assert res.status_code == 200
    assert res.json()["cart_summary"]["total_quantity"] == 4

    res = client.put(f"/api/cart/{item_id}", json={"quantity": 11})
    assert res.status_code == 400

    res = client.delete(f"/api/cart/{item_id}")
    assert res.status_code == 200
    assert res.json()["cart_summary"]["is_empty"] is True

    assert client.delete(f"/api/cart/{item_id}").status_code == 404


def test_other_identity_cannot_touch_item(client, make_product):
    from fastapi.testclient import TestClient

    from storefront.main import app

    product = make_product()
    item_id = client.post("/api/cart", json={"product_id": product.id, "quantity": 1}).json()["data"]["id"]

    intruder = TestClient(app)
    res = intruder.put(f"/api/cart/{item_id}", json={"quantity": 3})
    assert res.status_code == 403
    assert res.json()["code"] == "CART_UNAUTHORIZED"

    res = intruder.delete(f"/api/cart/{item_id}", headers={"X-User-Id": "77"})
    assert res.status_code == 403


def test_user_header_selects_user_cart(client, make_product):
    product = make_product()
    headers = {"X-User-Id": "21"}
    client.post("/api/cart", json={"product_id": product.id, "quantity": 3}, headers=headers)

    assert client.get("/api/cart/summary", headers=headers).json()["cart_summary"]["total_quantity"] == 3
    assert client.get("/api/cart/summary").json()["cart_summary"]["total_quantity"] == 0
    assert client.get("/api/cart", headers={"X-User-Id": "abc"}).status_code == 400


def test_clear_cart(client, make_product):
    for p in (make_product(), make_product()):
        client.post("/api/cart", json={"product_id": p.id, "quantity": 1})
    res = client.delete("/api/cart")
    assert res.status_code == 200
    assert res.json()["cart_summary"]["items_count"] == 0


def test_validate_reports_stale_lines(client, db, make_product):
    product = make_product(stock=5)
    item_id = client.post("/api/cart", json={"product_id": product.id, "quantity": 3}).json()["data"]["id"]

    assert client.get("/api/cart/validate").json()["has_errors"] is False

    product.stock_quantity = 1
    db.commit()
    body = client.get("/api/cart/validate").json()
    assert body["has_errors"] is True
    assert body["validation_errors"] == {str(item_id): ["Only 1 items available in stock"]}


def test_transfer_on_sign_in(client, make_product):
    product = make_product()
    client.post("/api/cart", json={"product_id": product.id, "quantity": 2})

    res = client.post("/api/cart/transfer", headers={"X-User-Id": "31"})
    assert res.status_code == 200
    assert res.json()["success"] is True

    summary = client.get("/api/cart/summary", headers={"X-User-Id": "31"}).json()["cart_summary"]
    assert summary["total_quantity"] == 2


def test_transfer_requires_user_and_session(client):
    assert client.post("/api/cart/transfer").status_code == 400


def test_update_checks_live_stock(client, db, make_product):
    product = make_product(stock=2)
    item_id = client.post("/api/cart", json={"product_id": product.id, "quantity": 1}).json()["data"]["id"]

    res = client.put(f"/api/cart/{item_id}", json={"quantity": 10})
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "STOCK_INSUFFICIENT"
    assert body["data"] == {"product_id": product.id, "variant_id": None, "available": 2, "requested": 10}
    assert client.get("/api/cart/summary").json()["cart_summary"]["total_quantity"] == 1

    assert client.put(f"/api/cart/{item_id}", json={"quantity": 2}).status_code == 200

    # removing through a zero quantity works even when the product is sold out
    product.stock_quantity = 0
    db.commit()
    res = client.put(f"/api/cart/{item_id}", json={"quantity": 0})
    assert res.status_code == 200
    assert res.json()["cart_summary"]["is_empty"] is True


def test_update_variant_line_checks_variant_stock(client, make_product, make_variant):
    product = make_product(stock=50)
    variant = make_variant(product, stock=3)
    item_id = client.post(
        "/api/cart", json={"product_id": product.id, "quantity": 1, "variant_id": variant.id}
    ).json()["data"]["id"]

    res = client.put(f"/api/cart/{item_id}", json={"quantity": 4})
    assert res.status_code == 400
    assert res.json()["data"]["available"] == 3
