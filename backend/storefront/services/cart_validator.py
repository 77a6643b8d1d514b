from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.models.cart import Cart
from storefront.models.cart_item import CartItem
from storefront.models.product import Product, ProductVariant
from storefront.repositories.product_repo import ProductRepository

PRODUCT_UNAVAILABLE = "Product is no longer available"
VARIANT_UNAVAILABLE = "Selected variant is no longer available"


def stock_message(available: int) -> str:
    return f"Only {available} items available in stock"


class CartValidator:
    """
    Advisory check of cart lines against the live catalog.

    Never writes and never raises for a bad line; callers decide whether a
    non-empty result blocks checkout. The authoritative check happens inside
    the order transaction (see OrderService).
    """

    def __init__(self, db: Session):
        self.db = db
        self.product_repo = ProductRepository(db)

    @staticmethod
    def check(
        item: CartItem, product: Optional[Product], variant: Optional[ProductVariant]
    ) -> List[str]:
        errors = []
        if product is None or not product.is_published:
            errors.append(PRODUCT_UNAVAILABLE)

        if item.variant_id is not None:
            stock_source = variant
        else:
            stock_source = product
        if stock_source is not None and item.quantity > stock_source.stock_quantity:
            errors.append(stock_message(stock_source.stock_quantity))

        if item.variant_id is not None and (variant is None or not variant.is_active):
            errors.append(VARIANT_UNAVAILABLE)
        return errors

    def validate_item(self, item: CartItem) -> List[str]:
        product = self.product_repo.get(item.product_id)
        variant = self.product_repo.get_variant(item.variant_id) if item.variant_id is not None else None
        return self.check(item, product, variant)

    def validate_cart(self, cart: Cart) -> Dict[int, List[str]]:
        """Map of item id -> discrepancies; empty when every line is still purchasable."""
        items = list(cart.items)
        # one query per table instead of one per line
        products = self.product_repo.load_products(i.product_id for i in items)
        variants = self.product_repo.load_variants(i.variant_id for i in items)

        errors = {}
        for item in items:
            variant = variants.get(item.variant_id) if item.variant_id is not None else None
            item_errors = self.check(item, products.get(item.product_id), variant)
            if item_errors:
                errors[item.id] = item_errors
        return errors
