from dataclasses import dataclass
from typing import Optional, Tuple

from storefront.models.cart import Cart


@dataclass(frozen=True)
class Identity:
    """Who owns a cart: an authenticated user id or an anonymous session token, never both."""

    user_id: Optional[int] = None
    session_id: Optional[str] = None

    def __post_init__(self):
        if (self.user_id is None) == (self.session_id is None):
            raise ValueError("Identity needs exactly one of user_id or session_id")

    @classmethod
    def user(cls, user_id: int) -> "Identity":
        return cls(user_id=user_id)

    @classmethod
    def guest(cls, session_id: str) -> "Identity":
        return cls(session_id=session_id)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def lock_key(self) -> Tuple[str, object]:
        if self.user_id is not None:
            return ("user", self.user_id)
        return ("session", self.session_id)


class CartContext:
    """
    Request-scoped state for one logical cart operation.

    Holds the identity and memoizes the resolved cart so repeated lookups in
    the same request hit the database once. A new context is built for every
    request; it is never shared between identities.
    """

    def __init__(self, identity: Identity):
        self.identity = identity
        self._cart: Optional[Cart] = None

    def get(self) -> Optional[Cart]:
        cart = self._cart
        if cart is None:
            return None
        if not (cart.owned_by(self.identity) and cart.is_active and not cart.is_expired()):
            self._cart = None
            return None
        return cart

    def remember(self, cart: Cart) -> None:
        self._cart = cart

    def invalidate(self) -> None:
        self._cart = None
