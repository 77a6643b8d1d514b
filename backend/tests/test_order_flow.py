from conftest import ADDRESS
from storefront.models.product import Product


def _checkout(client, **extra):
    payload = {"billing_address": ADDRESS, "shipping_address": ADDRESS, **extra}
    return client.post("/api/orders", json=payload)


def test_preview_then_checkout(client, make_product):
    product = make_product(price_cents=4999, stock=3)
    client.post("/api/cart", json={"product_id": product.id, "quantity": 1})

    totals = client.get("/api/orders/preview").json()["totals"]
    assert totals["subtotal"] == 4999
    assert totals["shipping_amount"] == 999
    assert totals["tax_amount"] == 400
    assert totals["total_amount"] == 6398
    assert totals["formatted_total"] == "$63.98"

    res = _checkout(client, guest_email="dara@example.com")
    assert res.status_code == 201
    order = res.json()["order"]
    assert order["total_amount"] == 6398
    assert order["status"] == "pending"
    assert order["payment_method"] == "aba_bank"
    assert order["items"][0]["product_name"] == product.name
    assert order["shipping_address"]["city"] == ADDRESS["city"]

    # the converted cart is gone; the next request gets a fresh one
    assert client.get("/api/cart").json()["cart"]["is_empty"] is True

    res = client.get(f"/api/orders/{order['order_number']}")
    assert res.status_code == 200
    assert res.json()["order"]["id"] == order["id"]


def test_checkout_empty_cart(client):
    res = _checkout(client)
    assert res.status_code == 400
    assert res.json()["code"] == "CART_EMPTY"


def test_checkout_rejects_bad_address(client, make_product):
    client.post("/api/cart", json={"product_id": make_product().id, "quantity": 1})
    res = client.post(
        "/api/orders",
        json={"billing_address": {"full_name": "x"}, "shipping_address": ADDRESS},
    )
    assert res.status_code == 422


def test_checkout_after_stock_drops(client, db, make_product):
    product = make_product(stock=2)
    client.post("/api/cart", json={"product_id": product.id, "quantity": 2})
    product.stock_quantity = 1
    db.commit()

    res = _checkout(client)
    assert res.status_code == 400
    assert res.json()["code"] == "STOCK_INSUFFICIENT"
    assert client.get("/api/cart/summary").json()["cart_summary"]["total_quantity"] == 2


def test_cancel_order_restores_stock(client, db, make_product):
    product = make_product(stock=2)
    client.post("/api/cart", json={"product_id": product.id, "quantity": 2})
    order_number = _checkout(client).json()["order"]["order_number"]

    res = client.post(f"/api/orders/{order_number}/cancel", json={"reason": "ordered twice"})
    assert res.status_code == 200
    order = res.json()["order"]
    assert order["status"] == "cancelled"
    assert order["notes"] == "Cancelled: ordered twice"

    db.expire_all()
    assert db.get(Product, product.id).stock_quantity == 2

    res = client.post(f"/api/orders/{order_number}/cancel", json={})
    assert res.status_code == 400
    assert res.json()["code"] == "ORDER_NOT_CANCELLABLE"


def test_orders_are_private(client, make_product):
    from fastapi.testclient import TestClient

    from storefront.main import app

    client.post("/api/cart", json={"product_id": make_product().id, "quantity": 1})
    order_number = _checkout(client).json()["order"]["order_number"]

    stranger = TestClient(app)
    assert stranger.get(f"/api/orders/{order_number}").status_code == 403
    assert stranger.post(f"/api/orders/{order_number}/cancel", json={}).status_code == 403
    assert client.get("/api/orders/ORD-1999-ZZZZZZZZ").status_code == 404
