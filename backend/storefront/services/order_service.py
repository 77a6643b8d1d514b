import logging
import secrets
import string
from typing import Optional, Union

from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.exceptions import (
    CartNotActive,
    EmptyCart,
    InvalidStatus,
    NotFound,
    OrderNotCancellable,
)
from storefront.models.cart import CART_CONVERTED, Cart
from storefront.models.cart_item import CartItem
from storefront.models.order import ORDER_STATUSES, PAYMENT_STATUSES, Order, OrderItem
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.snapshots import AddressSnapshot, ProductSnapshot
from storefront.services import pricing
from storefront.services.inventory_service import InventoryService, stock_lock_keys
from storefront.utils.clock import utcnow
from storefront.utils.locking import entity_lock, entity_locks, lock_row
from storefront.utils.transactions import atomic

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

AddressInput = Union[AddressSnapshot, dict]


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository(db)
        self.cart_repo = CartRepository(db)
        self.inventory = InventoryService(db)

    def _gen_order_number(self) -> str:
        year = utcnow().year
        while True:
            suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(8))
            candidate = f"ORD-{year}-{suffix}"
            if not self.repo.number_exists(candidate):
                return candidate
            logger.info("order number collision on %s, retrying", candidate)

    @staticmethod
    def _address(value: AddressInput) -> dict:
        if not isinstance(value, AddressSnapshot):
            value = AddressSnapshot.model_validate(value)
        return value.model_dump(mode="json")

    def _cart_lines(self, cart_id: int):
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
            .populate_existing()
            .all()
        )

    def preview_totals(self, cart: Cart) -> pricing.OrderTotals:
        return pricing.calculate_totals(list(cart.items))

    def create_order_from_cart(
        self,
        cart: Cart,
        billing_address: AddressInput,
        shipping_address: AddressInput,
        guest_email: Optional[str] = None,
        payment_method: str = "aba_bank",
    ) -> Order:
        """
        Convert a cart into an order in a single transaction.

        Holds the cart lock and the stock locks of every line while it
        re-checks live stock, writes the order with frozen product and address
        snapshots, decrements stock and marks the cart converted. Any failure
        (EmptyCart, ProductUnavailable, StockInsufficient, database errors)
        rolls the whole conversion back.
        """
        billing = self._address(billing_address)
        shipping = self._address(shipping_address)
        cart_id = cart.id

        with entity_lock("cart", cart_id):
            # lines cannot change while the cart lock is held
            keys = stock_lock_keys(self._cart_lines(cart_id))
            with entity_locks(keys):
                with atomic(self.db):
                    locked_cart = self.cart_repo.lock(cart_id)
                    if locked_cart is None or not locked_cart.is_active:
                        raise CartNotActive(
                            "Cart has already been checked out or abandoned",
                            {"cart_id": cart_id},
                        )
                    items = self._cart_lines(cart_id)
                    if not items:
                        raise EmptyCart("Cannot create order from empty cart", {"cart_id": cart_id})

                    lines = []
                    for item in items:
                        product, variant = self.inventory.lock_stock(item.product_id, item.variant_id)
                        self.inventory.ensure_available(
                            product, variant, item.quantity, item.product_id, item.variant_id
                        )
                        lines.append((item, product, variant))

                    totals = pricing.calculate_totals(items)
                    order = self.repo.add(
                        Order(
                            order_number=self._gen_order_number(),
                            user_id=locked_cart.user_id,
                            session_id=locked_cart.session_id,
                            guest_email=guest_email,
                            status="pending",
                            payment_status="pending",
                            payment_method=payment_method,
                            subtotal_cents=totals.subtotal_cents,
                            tax_cents=totals.tax_cents,
                            shipping_cents=totals.shipping_cents,
                            discount_cents=totals.discount_cents,
                            total_cents=totals.total_cents,
                            currency=settings.CURRENCY,
                            billing_address=billing,
                            shipping_address=shipping,
                        )
                    )

                    for item, product, variant in lines:
                        self.db.add(
                            OrderItem(
                                order_id=order.id,
                                product_id=item.product_id,
                                variant_id=item.variant_id,
                                product_name=product.name,
                                product_sku=variant.sku if variant is not None else product.sku,
                                quantity=item.quantity,
                                unit_price_cents=item.price_cents,
                                total_price_cents=item.total_price_cents,
                                product_snapshot=ProductSnapshot.capture(product, variant).model_dump(mode="json"),
                            )
                        )

                    for item, product, variant in lines:
                        self.inventory.decrement(product, variant, item.quantity)

                    locked_cart.status = CART_CONVERTED
                    for item in items:
                        self.db.delete(item)
                    self.db.flush()
                    order_id = order.id

        logger.info(
            "order %s created from cart %s: total=%s user=%s guest_email=%s",
            order.order_number, cart_id, order.total_cents, order.user_id, guest_email,
        )
        return self.repo.get_with_items(order_id)

    def get_order_with_items(self, order_id: int) -> Optional[Order]:
        return self.repo.get_with_items(order_id)

    def get_by_number(self, order_number: str) -> Order:
        order = self.repo.get_by_number(order_number)
        if order is None:
            raise NotFound("Order not found", {"order_number": order_number})
        return order

    def cancel_order(self, order: Order, reason: Optional[str] = None) -> bool:
        """Cancel a pending/processing order and put its stock back, atomically."""
        order_id = order.id
        with entity_lock("order", order_id):
            keys = stock_lock_keys(self.repo.get_with_items(order_id).items)
            with entity_locks(keys):
                with atomic(self.db):
                    locked = lock_row(self.db, Order, order_id)
                    if not locked.can_be_cancelled():
                        raise OrderNotCancellable(
                            "Order cannot be cancelled in its current status",
                            {"order_number": locked.order_number, "status": locked.status},
                        )
                    for item in locked.items:
                        if item.product_id is None:
                            logger.warning(
                                "order %s item %s: product deleted, stock not restored",
                                locked.order_number, item.id,
                            )
                            continue
                        product, variant = self.inventory.lock_stock(item.product_id, item.variant_id)
                        if product is None or (item.variant_id is not None and variant is None):
                            logger.warning(
                                "order %s item %s: catalog row missing, stock not restored",
                                locked.order_number, item.id,
                            )
                            continue
                        self.inventory.restore(product, variant, item.quantity)

                    locked.status = "cancelled"
                    if reason:
                        note = f"Cancelled: {reason}"
                        locked.notes = f"{locked.notes}\n{note}" if locked.notes else note
                    order_number = locked.order_number

        logger.info("order %s cancelled (reason=%s)", order_number, reason)
        return True

    def update_order_status(self, order: Order, status: str) -> bool:
        if status not in ORDER_STATUSES:
            raise InvalidStatus(f"Invalid order status: {status}", {"status": status})
        if status == "cancelled":
            return self.cancel_order(order)

        order_id = order.id
        with entity_lock("order", order_id):
            with atomic(self.db):
                locked = lock_row(self.db, Order, order_id)
                old_status = locked.status
                locked.status = status
                if status == "shipped":
                    locked.shipped_at = utcnow()
                elif status == "delivered":
                    locked.delivered_at = utcnow()
                order_number = locked.order_number

        logger.info("order %s status %s -> %s", order_number, old_status, status)
        return True

    def update_payment_status(
        self, order: Order, payment_status: str, reference: Optional[str] = None
    ) -> bool:
        """Record a payment outcome; a confirmed payment moves a pending order to processing."""
        if payment_status not in PAYMENT_STATUSES:
            raise InvalidStatus(
                f"Invalid payment status: {payment_status}", {"payment_status": payment_status}
            )

        order_id = order.id
        with entity_lock("order", order_id):
            with atomic(self.db):
                locked = lock_row(self.db, Order, order_id)
                locked.payment_status = payment_status
                if reference:
                    locked.payment_reference = reference
                if payment_status == "paid" and locked.status == "pending":
                    locked.status = "processing"
                order_number = locked.order_number

        logger.info(
            "order %s payment status %s (reference=%s)", order_number, payment_status, reference
        )
        return True
