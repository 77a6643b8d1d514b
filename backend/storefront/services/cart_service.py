import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.exceptions import (
    CartNotActive,
    LimitExceeded,
    NotFound,
    ProductUnavailable,
    Unauthorized,
)
from storefront.models.cart import CART_ABANDONED, Cart
from storefront.models.cart_item import CartItem
from storefront.models.product import Product, ProductVariant
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.snapshots import CartItemSnapshot
from storefront.services import pricing
from storefront.services.cart_context import CartContext, Identity
from storefront.utils.clock import utcnow
from storefront.utils.locking import entity_lock
from storefront.utils.transactions import atomic

logger = logging.getLogger(__name__)


def _pk(obj) -> int:
    # works for instances whose row was deleted by another session
    identity = inspect(obj).identity
    return identity[0] if identity else obj.id


class CartService:
    """
    Cart resolution and mutation.

    Every write runs in its own transaction while holding the cart's entity
    lock (file lock + ``FOR UPDATE`` on the cart row, then on the line item),
    so concurrent requests against one cart are applied one after another.
    Successful writes invalidate the request's memoized cart.
    """

    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)

    # --- resolution -------------------------------------------------------

    @staticmethod
    def _expiry_for(identity: Identity):
        days = settings.GUEST_CART_TTL_DAYS if identity.is_guest else settings.USER_CART_TTL_DAYS
        return utcnow() + timedelta(days=days)

    def resolve(self, ctx: CartContext) -> Cart:
        """Return the identity's active, unexpired cart, creating one if needed."""
        cached = ctx.get()
        if cached is not None:
            return cached

        cart = self.cart_repo.get_active_for(ctx.identity)
        if cart is None:
            kind, key = ctx.identity.lock_key
            created = False
            with entity_lock(kind, key):
                with atomic(self.db):
                    cart = self.cart_repo.get_active_for(ctx.identity)
                    if cart is None:
                        cart = self.cart_repo.create(ctx.identity, self._expiry_for(ctx.identity))
                        created = True
            if created:
                logger.info("created cart %s for %s:%s", cart.id, kind, key)

        ctx.remember(cart)
        return cart

    def abandon(self, ctx: CartContext, cart: Optional[Cart] = None) -> bool:
        cart_id = _pk(cart) if cart is not None else self.resolve(ctx).id
        with entity_lock("cart", cart_id):
            with atomic(self.db):
                locked = self.cart_repo.lock(cart_id)
                if locked is None or not locked.is_active:
                    return False
                locked.status = CART_ABANDONED
        ctx.invalidate()
        logger.info("cart %s abandoned", cart_id)
        return True

    # --- helpers ----------------------------------------------------------

    @staticmethod
    def _ensure_active(cart: Optional[Cart], cart_id: int) -> Cart:
        if cart is None or not cart.is_active:
            raise CartNotActive(
                "Cart can no longer be modified",
                {"cart_id": cart_id, "status": cart.status if cart is not None else None},
            )
        return cart

    def _purchasable(
        self, product_id: int, variant_id: Optional[int]
    ) -> Tuple[Product, Optional[ProductVariant]]:
        product = self.product_repo.get(product_id)
        if product is None or not product.is_published:
            raise ProductUnavailable(
                "Product is not available", {"product_id": product_id}
            )
        variant = None
        if variant_id is not None:
            variant = self.product_repo.get_variant(variant_id)
            if variant is None or variant.product_id != product.id or not variant.is_active:
                raise ProductUnavailable(
                    "Selected variant is not available",
                    {"product_id": product_id, "variant_id": variant_id},
                )
        return product, variant

    @staticmethod
    def _check_requested(quantity: int, allow_zero: bool = False) -> None:
        max_quantity = settings.MAX_ITEM_QUANTITY
        if quantity > max_quantity:
            logger.warning("rejected quantity %s (max %s)", quantity, max_quantity)
            raise LimitExceeded(
                f"Maximum quantity per item is {max_quantity}",
                {"max_quantity": max_quantity, "requested_quantity": quantity},
            )
        minimum = 0 if allow_zero else 1
        if quantity < minimum:
            raise LimitExceeded(
                f"Quantity must be at least {minimum}",
                {"min_quantity": minimum, "requested_quantity": quantity},
            )

    # --- mutations --------------------------------------------------------

    def add_item(
        self,
        ctx: CartContext,
        product_id: int,
        quantity: int = 1,
        variant_id: Optional[int] = None,
    ) -> CartItem:
        """
        Add ``quantity`` of a product (or one of its variants) to the cart.

        Re-adding an existing product/variant pair increments the line in
        place. The unit price is captured now and kept for the line's lifetime.
        Raises LimitExceeded without writing anything when the line would go
        over MAX_ITEM_QUANTITY or a new line would exceed MAX_CART_ITEMS.
        """
        self._check_requested(quantity)
        cart_id = self.resolve(ctx).id
        max_quantity = settings.MAX_ITEM_QUANTITY

        with entity_lock("cart", cart_id):
            with atomic(self.db):
                cart = self._ensure_active(self.cart_repo.lock(cart_id), cart_id)
                product, variant = self._purchasable(product_id, variant_id)

                item = self.cart_repo.find_item(cart_id, product_id, variant_id, for_update=True)
                if item is not None:
                    new_quantity = item.quantity + quantity
                    if new_quantity > max_quantity:
                        logger.warning(
                            "cart %s item %s would reach %s (max %s)",
                            cart_id, item.id, new_quantity, max_quantity,
                        )
                        raise LimitExceeded(
                            f"Maximum quantity per item is {max_quantity}",
                            {
                                "max_quantity": max_quantity,
                                "current_quantity": item.quantity,
                                "requested_quantity": quantity,
                                "total_quantity": new_quantity,
                            },
                        )
                    item.quantity = new_quantity
                    self.db.flush()
                else:
                    current_items = self.cart_repo.count_items(cart_id)
                    if current_items >= settings.MAX_CART_ITEMS:
                        logger.warning("cart %s is full (%s items)", cart_id, current_items)
                        raise LimitExceeded(
                            f"Maximum cart items exceeded ({settings.MAX_CART_ITEMS})",
                            {"max_items": settings.MAX_CART_ITEMS, "current_items": current_items},
                        )
                    price = variant.effective_price_cents if variant is not None else product.price_cents
                    item = self.cart_repo.add_item(
                        cart,
                        product_id=product_id,
                        variant_id=variant_id,
                        quantity=quantity,
                        price_cents=price,
                        snapshot=CartItemSnapshot.from_product(product).model_dump(mode="json"),
                    )
                item_id, final_quantity = item.id, item.quantity

        ctx.invalidate()
        logger.info(
            "cart %s: product=%s variant=%s +%s -> qty %s (item %s)",
            cart_id, product_id, variant_id, quantity, final_quantity, item_id,
        )
        return item

    def update_quantity(self, ctx: CartContext, item: CartItem, quantity: int) -> bool:
        """Overwrite a line's quantity; 0 removes the line. False if the line is gone."""
        self._check_requested(quantity, allow_zero=True)
        item_id = _pk(item)
        current = self.cart_repo.get_item(item_id)
        if current is None:
            return False
        cart_id = current.cart_id

        with entity_lock("cart", cart_id):
            with atomic(self.db):
                self._ensure_active(self.cart_repo.lock(cart_id), cart_id)
                locked = self.cart_repo.lock_item(item_id)
                if locked is None:
                    return False
                if quantity == 0:
                    self.cart_repo.delete_item(locked)
                else:
                    locked.quantity = quantity
                    self.db.flush()

        ctx.invalidate()
        logger.info("cart %s item %s quantity set to %s", cart_id, item_id, quantity)
        return True

    def remove_item(self, ctx: CartContext, item: CartItem) -> bool:
        """Delete a line. Removing a line that is already gone is a no-op success."""
        item_id = _pk(item)
        current = self.cart_repo.get_item(item_id)
        if current is None:
            ctx.invalidate()
            return True
        cart_id = current.cart_id

        with entity_lock("cart", cart_id):
            with atomic(self.db):
                self._ensure_active(self.cart_repo.lock(cart_id), cart_id)
                locked = self.cart_repo.lock_item(item_id)
                if locked is not None:
                    self.cart_repo.delete_item(locked)

        ctx.invalidate()
        logger.info("cart %s item %s removed", cart_id, item_id)
        return True

    def clear(self, ctx: CartContext, cart: Optional[Cart] = None) -> None:
        cart_id = _pk(cart) if cart is not None else self.resolve(ctx).id
        with entity_lock("cart", cart_id):
            with atomic(self.db):
                self._ensure_active(self.cart_repo.lock(cart_id), cart_id)
                removed = self.cart_repo.clear(cart_id)
        # bulk delete bypasses the session; drop stale collections
        self.db.expire_all()
        ctx.invalidate()
        logger.info("cart %s cleared (%s items)", cart_id, removed)

    def refresh_prices(self, ctx: CartContext, cart: Optional[Cart] = None) -> int:
        """Re-read catalog prices into every line. Returns the number of lines whose price changed."""
        cart_id = _pk(cart) if cart is not None else self.resolve(ctx).id
        changed = 0
        with entity_lock("cart", cart_id):
            with atomic(self.db):
                locked = self._ensure_active(self.cart_repo.lock(cart_id), cart_id)
                items = list(locked.items)
                products = self.product_repo.load_products(i.product_id for i in items)
                variants = self.product_repo.load_variants(i.variant_id for i in items)
                for item in items:
                    product = products.get(item.product_id)
                    if product is None:
                        continue
                    variant = variants.get(item.variant_id) if item.variant_id is not None else None
                    if item.variant_id is not None and variant is None:
                        continue
                    price = variant.effective_price_cents if variant is not None else product.price_cents
                    if price != item.price_cents:
                        item.price_cents = price
                        changed += 1
                    item.product_snapshot = CartItemSnapshot.from_product(product).model_dump(mode="json")
                self.db.flush()
        ctx.invalidate()
        logger.info("cart %s prices refreshed (%s changed)", cart_id, changed)
        return changed

    # --- reads ------------------------------------------------------------

    def get_item_for(self, ctx: CartContext, item_id: int) -> CartItem:
        """Load a line item the context's identity is allowed to touch."""
        item = self.cart_repo.get_item(item_id)
        if item is None:
            raise NotFound("Cart item not found", {"item_id": item_id})
        if not item.cart.owned_by(ctx.identity):
            logger.warning("identity %s tried to access cart item %s", ctx.identity, item_id)
            raise Unauthorized(data={"item_id": item_id})
        return item

    def summary(self, ctx: CartContext) -> Dict[str, Any]:
        cart = self.resolve(ctx)
        items = list(cart.items)
        total = pricing.total_price(items)
        return {
            "id": cart.id,
            "total_quantity": pricing.total_quantity(items),
            "total_price": total,
            "formatted_total": pricing.format_cents(total),
            "items_count": len(items),
            "is_empty": pricing.is_empty(items),
        }

    @staticmethod
    def item_to_dict(item: CartItem) -> Dict[str, Any]:
        product = item.product
        variant = item.variant
        return {
            "id": item.id,
            "product_id": item.product_id,
            "variant_id": item.variant_id,
            "quantity": item.quantity,
            "price": item.price_cents,
            "total_price": item.total_price_cents,
            "formatted_price": pricing.format_cents(item.price_cents),
            "formatted_total": pricing.format_cents(item.total_price_cents),
            "display_name": item.display_name,
            "product_snapshot": item.product_snapshot,
            "product": (
                {"id": product.id, "name": product.name, "slug": product.slug, "sku": product.sku}
                if product is not None
                else None
            ),
            "variant": (
                {"id": variant.id, "name": variant.name, "sku": variant.sku}
                if variant is not None
                else None
            ),
        }

    def cart_data(self, ctx: CartContext) -> Dict[str, Any]:
        data = self.summary(ctx)
        cart = self.resolve(ctx)
        data["items"] = [self.item_to_dict(it) for it in cart.items]
        return data
