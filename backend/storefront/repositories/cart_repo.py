from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.models.cart import CART_ACTIVE, Cart
from storefront.models.cart_item import CartItem
from storefront.utils.clock import utcnow
from storefront.utils.locking import lock_row


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def _active(self, now: Optional[datetime] = None):
        now = now or utcnow()
        return self.db.query(Cart).filter(
            Cart.status == CART_ACTIVE,
            or_(Cart.expires_at.is_(None), Cart.expires_at > now),
        )

    def get(self, cart_id: int) -> Optional[Cart]:
        return self.db.get(Cart, cart_id)

    def get_active_by_user(self, user_id: int) -> Optional[Cart]:
        return self._active().filter(Cart.user_id == user_id).order_by(Cart.id).first()

    def get_active_by_session(self, session_id: str) -> Optional[Cart]:
        return (
            self._active()
            .filter(Cart.session_id == session_id, Cart.user_id.is_(None))
            .order_by(Cart.id)
            .first()
        )

    def get_active_for(self, identity) -> Optional[Cart]:
        if identity.user_id is not None:
            return self.get_active_by_user(identity.user_id)
        return self.get_active_by_session(identity.session_id)

    def create(self, identity, expires_at: datetime) -> Cart:
        c = Cart(
            user_id=identity.user_id,
            session_id=identity.session_id,
            status=CART_ACTIVE,
            expires_at=expires_at,
            meta={},
        )
        self.db.add(c)
        self.db.flush()
        return c

    def lock(self, cart_id: int) -> Optional[Cart]:
        return lock_row(self.db, Cart, cart_id)

    def get_item(self, item_id: int) -> Optional[CartItem]:
        return self.db.get(CartItem, item_id)

    def lock_item(self, item_id: int) -> Optional[CartItem]:
        return lock_row(self.db, CartItem, item_id)

    def find_item(
        self, cart_id: int, product_id: int, variant_id: Optional[int], for_update: bool = False
    ) -> Optional[CartItem]:
        qry = self.db.query(CartItem).filter(
            CartItem.cart_id == cart_id, CartItem.product_id == product_id
        )
        if variant_id is None:
            qry = qry.filter(CartItem.variant_id.is_(None))
        else:
            qry = qry.filter(CartItem.variant_id == variant_id)
        if for_update:
            qry = qry.populate_existing().with_for_update()
        return qry.first()

    def count_items(self, cart_id: int) -> int:
        return self.db.query(CartItem).filter(CartItem.cart_id == cart_id).count()

    def add_item(
        self,
        cart: Cart,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
        price_cents: int,
        snapshot: dict,
    ) -> CartItem:
        item = CartItem(
            cart_id=cart.id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            price_cents=price_cents,
            product_snapshot=snapshot,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item: CartItem) -> None:
        self.db.delete(item)
        self.db.flush()

    def clear(self, cart_id: int) -> int:
        return self.db.query(CartItem).filter(CartItem.cart_id == cart_id).delete(
            synchronize_session=False
        )
