"""
Cart valuation and order pricing.

Pure functions over anything shaped like a cart line (``quantity`` and
``price_cents``). Every amount is an integer number of cents; ``format_cents``
is display only and its output is never parsed back.

Tax uses ``ROUND_HALF_UP`` on a Decimal product, which for the non-negative
amounts handled here is round-half-away-from-zero (4999 * 0.08 = 399.92 -> 400).
At the default 8% rate an integer subtotal never lands on an exact half cent;
the mode matters once TAX_RATE is configured otherwise (e.g. 5% of 10 -> 1).
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from storefront.config import settings


def total_quantity(items: Iterable) -> int:
    return sum(item.quantity for item in items)


def total_price(items: Iterable) -> int:
    return sum(item.price_cents * item.quantity for item in items)


def is_empty(items: Sequence) -> bool:
    return len(items) == 0


def format_cents(cents: int, symbol: Optional[str] = None) -> str:
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    amount = (Decimal(abs(cents)) / 100).quantize(Decimal("0.01"))
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{amount:,.2f}"


def calculate_shipping(subtotal_cents: int) -> int:
    if subtotal_cents >= settings.FREE_SHIPPING_THRESHOLD_CENTS:
        return 0
    return settings.SHIPPING_RATE_CENTS


def calculate_tax(subtotal_cents: int) -> int:
    tax = Decimal(subtotal_cents) * Decimal(settings.TAX_RATE)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal_cents,
            "shipping_amount": self.shipping_cents,
            "tax_amount": self.tax_cents,
            "discount_amount": self.discount_cents,
            "total_amount": self.total_cents,
            "formatted_subtotal": format_cents(self.subtotal_cents),
            "formatted_shipping": format_cents(self.shipping_cents),
            "formatted_tax": format_cents(self.tax_cents),
            "formatted_total": format_cents(self.total_cents),
        }


def calculate_totals(items: Iterable) -> OrderTotals:
    subtotal = total_price(items)
    shipping = calculate_shipping(subtotal)
    tax = calculate_tax(subtotal)
    discount = 0  # reserved for promotions
    return OrderTotals(
        subtotal_cents=subtotal,
        shipping_cents=shipping,
        tax_cents=tax,
        discount_cents=discount,
        total_cents=subtotal + shipping + tax - discount,
    )
