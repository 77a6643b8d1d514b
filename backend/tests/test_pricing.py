from types import SimpleNamespace

from storefront.services import pricing


def line(price_cents, quantity):
    return SimpleNamespace(price_cents=price_cents, quantity=quantity)


def test_totals_are_sums_over_lines():
    items = [line(1999, 2), line(500, 1), line(1, 10)]
    assert pricing.total_quantity(items) == 13
    assert pricing.total_price(items) == 1999 * 2 + 500 + 10
    assert not pricing.is_empty(items)
    assert pricing.is_empty([])


def test_format_cents_is_display_only():
    assert pricing.format_cents(0) == "$0.00"
    assert pricing.format_cents(5) == "$0.05"
    assert pricing.format_cents(639800) == "$6,398.00"
    assert pricing.format_cents(-250) == "-$2.50"


def test_shipping_threshold():
    assert pricing.calculate_shipping(4999) == 999
    assert pricing.calculate_shipping(5000) == 0
    assert pricing.calculate_shipping(12000) == 0


def test_tax_rounds_half_up():
    assert pricing.calculate_tax(4999) == 400  # 399.92
    assert pricing.calculate_tax(5000) == 400
    assert pricing.calculate_tax(1) == 0  # 0.08
    assert pricing.calculate_tax(7) == 1  # 0.56


def test_tax_half_cent_rounds_away_from_zero(monkeypatch):
    from decimal import Decimal

    monkeypatch.setattr(pricing.settings, "TAX_RATE", Decimal("0.05"))
    assert pricing.calculate_tax(10) == 1  # 0.5
    assert pricing.calculate_tax(30) == 2  # 1.5


def test_calculate_totals_below_free_shipping():
    totals = pricing.calculate_totals([line(4999, 1)])
    assert totals.subtotal_cents == 4999
    assert totals.shipping_cents == 999
    assert totals.tax_cents == 400
    assert totals.discount_cents == 0
    assert totals.total_cents == 6398
    assert totals.as_dict()["formatted_total"] == "$63.98"


def test_calculate_totals_at_free_shipping():
    totals = pricing.calculate_totals([line(2500, 2)])
    assert totals.subtotal_cents == 5000
    assert totals.shipping_cents == 0
    assert totals.tax_cents == 400
    assert totals.total_cents == 5400
