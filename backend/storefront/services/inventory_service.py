import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from storefront.exceptions import ProductUnavailable, StockInsufficient
from storefront.models.product import IN_STOCK, OUT_OF_STOCK, Product, ProductVariant
from storefront.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)


def stock_lock_key(product_id: int, variant_id: Optional[int]) -> Tuple[str, int]:
    """Stock lives on the variant when one is set, else on the product."""
    if variant_id is not None:
        return ("variant", variant_id)
    return ("product", product_id)


def stock_lock_keys(lines: Iterable) -> List[Tuple[str, int]]:
    return [stock_lock_key(line.product_id, line.variant_id) for line in lines]


class InventoryService:
    """
    Live stock for products and variants.

    Callers hold the entity locks from ``stock_lock_keys`` and an open
    transaction; this service takes the row locks and applies the changes.
    """

    def __init__(self, db: Session):
        self.db = db
        self.product_repo = ProductRepository(db)

    def lock_stock(
        self, product_id: int, variant_id: Optional[int]
    ) -> Tuple[Optional[Product], Optional[ProductVariant]]:
        if variant_id is not None:
            variant = self.product_repo.lock_variant(variant_id)
            product = self.product_repo.get(product_id)
            return product, variant
        return self.product_repo.lock_product(product_id), None

    @staticmethod
    def available(product: Product, variant: Optional[ProductVariant]) -> int:
        if variant is not None:
            return variant.stock_quantity
        return product.stock_quantity

    def ensure_available(
        self,
        product: Optional[Product],
        variant: Optional[ProductVariant],
        quantity: int,
        product_id: int,
        variant_id: Optional[int] = None,
    ) -> None:
        """Raise unless ``quantity`` units of the product/variant can be sold right now."""
        if product is None or not product.is_published:
            name = product.name if product is not None else f"#{product_id}"
            raise ProductUnavailable(
                f"Product '{name}' is no longer available",
                {"product_id": product_id, "variant_id": variant_id},
            )
        if variant_id is not None and (
            variant is None or not variant.is_active or variant.product_id != product.id
        ):
            raise ProductUnavailable(
                f"Selected variant of '{product.name}' is no longer available",
                {"product_id": product_id, "variant_id": variant_id},
            )
        available = self.available(product, variant)
        if quantity > available:
            name = f"{product.name} - {variant.name}" if variant is not None else product.name
            logger.warning(
                "insufficient stock for product=%s variant=%s requested=%s available=%s",
                product_id, variant_id, quantity, available,
            )
            raise StockInsufficient(
                f"Insufficient stock for '{name}'. Only {available} available",
                {
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "available": available,
                    "requested": quantity,
                },
            )

    def decrement(self, product: Product, variant: Optional[ProductVariant], quantity: int) -> int:
        target = variant if variant is not None else product
        target.stock_quantity = target.stock_quantity - quantity
        if target.stock_quantity <= 0:
            target.stock_status = OUT_OF_STOCK
        self.db.flush()
        return target.stock_quantity

    def restore(self, product: Product, variant: Optional[ProductVariant], quantity: int) -> int:
        target = variant if variant is not None else product
        target.stock_quantity = target.stock_quantity + quantity
        if target.stock_quantity > 0 and target.stock_status == OUT_OF_STOCK:
            target.stock_status = IN_STOCK
        self.db.flush()
        return target.stock_quantity
