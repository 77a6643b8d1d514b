import itertools
import os
import tempfile

# Point settings at a throwaway database and lock directory before storefront is imported.
_TMP = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOCK_DIR"] = os.path.join(_TMP, "locks")
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest

from storefront.db import SessionLocal, init_db
from storefront.models.product import Brand, Product, ProductImage, ProductVariant

ADDRESS = {
    "full_name": "Dara Sok",
    "line1": "12 Street 240",
    "city": "Phnom Penh",
    "postal_code": "12207",
    "country": "KH",
    "phone": "+855 12 345 678",
}


@pytest.fixture(autouse=True)
def fresh_schema():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_product(db):
    counter = itertools.count(1)

    def _make(price_cents=1000, stock=20, status="published", name=None, brand=None, images=()):
        n = next(counter)
        p = Product(
            sku=f"SKU-{n:03d}",
            slug=f"product-{n}",
            name=name or f"Product {n}",
            description=f"Description {n}",
            price_cents=price_cents,
            stock_quantity=stock,
            status=status,
            brand=brand,
        )
        for i, path in enumerate(images):
            p.images.append(ProductImage(image_path=path, alt_text=f"image {i}", is_primary=(i == 0), sort_order=i))
        db.add(p)
        db.commit()
        return p

    return _make


@pytest.fixture
def make_variant(db):
    counter = itertools.count(1)

    def _make(product, price_cents=None, stock=10, is_active=True, name=None):
        n = next(counter)
        v = ProductVariant(
            product_id=product.id,
            sku=f"{product.sku}-V{n}",
            name=name or f"Variant {n}",
            price_cents=price_cents,
            stock_quantity=stock,
            is_active=is_active,
        )
        db.add(v)
        db.commit()
        return v

    return _make


@pytest.fixture
def brand(db):
    b = Brand(name="Acme", slug="acme")
    db.add(b)
    db.commit()
    return b


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from storefront.main import app

    # a new client per test, so no cart cookie leaks between tests
    return TestClient(app)
