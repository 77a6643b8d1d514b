from storefront.db import SessionLocal
from storefront.models.product import Product
from storefront.utils.transactions import atomic


def _price_seen_by_other_session(product_id):
    other = SessionLocal()
    try:
        return other.get(Product, product_id).price_cents
    finally:
        other.close()


def test_atomic_commits_on_exit_after_reads(db, make_product):
    product = make_product(price_cents=1000)
    db.query(Product).all()
    assert db.in_transaction()

    with atomic(db):
        db.get(Product, product.id).price_cents = 1500

    assert not db.in_transaction()
    assert _price_seen_by_other_session(product.id) == 1500


def test_atomic_with_pending_changes_leaves_commit_to_caller(db, make_product):
    first = make_product(price_cents=1000)
    second = make_product(price_cents=2000)

    db.get(Product, first.id).price_cents = 1100
    assert db.dirty

    with atomic(db):
        db.get(Product, second.id).price_cents = 2200

    # nested block: the outer transaction is still open and nothing is durable yet
    assert db.in_transaction()
    db.rollback()

    assert db.get(Product, first.id).price_cents == 1000
    assert db.get(Product, second.id).price_cents == 2000
    assert _price_seen_by_other_session(second.id) == 2000
