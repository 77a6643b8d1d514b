import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.repositories.cart_repo import CartRepository
from storefront.utils.clock import utcnow
from storefront.utils.locking import entity_lock, entity_locks
from storefront.utils.transactions import atomic

logger = logging.getLogger(__name__)


class CartTransferService:
    """Moves a guest's cart to a user when the guest signs in."""

    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)

    def transfer_guest_cart(self, session_id: str, user_id: int) -> None:
        """
        Hand the guest cart for ``session_id`` over to ``user_id``.

        Without an active user cart the guest cart itself is re-pointed to the
        user (same cart id, 30-day expiry). Otherwise guest lines are merged
        into the user cart, matching lines add up (capped at
        MAX_ITEM_QUANTITY), and the emptied guest cart is deleted.

        Runs under the user's entity lock, so two sign-ins of the same user
        cannot interleave their merges.
        """
        with entity_lock("user", user_id):
            guest = self.cart_repo.get_active_by_session(session_id)
            if guest is None or not guest.items:
                return
            guest_id = guest.id
            user_cart = self.cart_repo.get_active_by_user(user_id)
            keys = [("cart", guest_id)]
            if user_cart is not None:
                keys.append(("cart", user_cart.id))

            with entity_locks(keys):
                with atomic(self.db):
                    guest = self.cart_repo.lock(guest_id)
                    if guest is None or not guest.is_active or not guest.items:
                        return

                    target = self.cart_repo.lock(user_cart.id) if user_cart is not None else None
                    if target is not None and (not target.is_active or target.is_expired()):
                        # checked out or abandoned since the lookup; no new user cart can appear under the user lock
                        logger.info(
                            "user %s cart %s is no longer active (%s), handing over guest cart %s",
                            user_id, target.id, target.status, guest_id,
                        )
                        target = None

                    if target is None:
                        guest.user_id = user_id
                        guest.session_id = None
                        guest.expires_at = utcnow() + timedelta(days=settings.USER_CART_TTL_DAYS)
                        moved, merged = len(guest.items), 0
                        target_id = guest_id
                    else:
                        moved, merged = self._merge(guest, target)
                        target_id = target.id
                        self.db.delete(guest)
                    self.db.flush()

        logger.info(
            "guest cart %s transferred to user %s as cart %s (moved=%s merged=%s)",
            guest_id, user_id, target_id, moved, merged,
        )

    def _merge(self, guest, target):
        max_quantity = settings.MAX_ITEM_QUANTITY
        moved = merged = 0
        for guest_item in list(guest.items):
            existing = self.cart_repo.find_item(
                target.id, guest_item.product_id, guest_item.variant_id, for_update=True
            )
            if existing is None:
                # relationship move, so the guest cart's delete-orphan cascade skips it
                guest_item.cart = target
                moved += 1
                continue

            combined = existing.quantity + guest_item.quantity
            if combined > max_quantity:
                logger.warning(
                    "merge of product=%s variant=%s into cart %s capped at %s (was %s)",
                    guest_item.product_id, guest_item.variant_id, target.id, max_quantity, combined,
                )
                combined = max_quantity
            existing.quantity = combined
            merged += 1
        return moved, merged
