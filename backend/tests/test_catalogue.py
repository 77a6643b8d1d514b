def test_list_products(client, make_product, make_variant):
    coffee = make_product(name="Test Coffee", price_cents=499)
    make_variant(coffee, price_cents=699, name="1kg")
    make_product(name="Hidden Tea", status="draft")

    res = client.get("/api/products")
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 1
    (item,) = body["items"]
    assert item["name"] == "Test Coffee"
    assert item["price_cents"] == 499
    assert item["variants"][0]["effective_price_cents"] == 699


def test_search_products(client, make_product):
    make_product(name="Arabica Beans")
    make_product(name="Green Tea")

    res = client.get("/api/products", params={"q": "tea"})
    assert [it["name"] for it in res.json()["items"]] == ["Green Tea"]


def test_get_product_by_slug(client, make_product):
    product = make_product(name="Test Coffee")

    res = client.get(f"/api/products/{product.slug}")
    assert res.status_code == 200
    assert res.json()["sku"] == product.sku

    assert client.get("/api/products/no-such-thing").status_code == 404
