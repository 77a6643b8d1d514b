from typing import Any, Dict, Optional


class CartException(Exception):
    """
    Base class for domain errors raised by the cart and order services.

    Every error carries a machine-readable ``code`` and a ``data`` dict with the
    values the client needs to render a specific message (limits, requested
    and available quantities, ids). Subclasses fix the code, so callers can
    branch on the exception type or on ``code``.
    """

    code = "CART_ERROR"

    def __init__(self, message: str = "Cart operation failed", data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


class LimitExceeded(CartException):
    """Per-item quantity or distinct-item cap violated. The caller may retry with less."""

    code = "CART_LIMIT_EXCEEDED"


class StockInsufficient(CartException):
    code = "STOCK_INSUFFICIENT"


class ProductUnavailable(CartException):
    code = "PRODUCT_UNAVAILABLE"


class Unauthorized(CartException):
    code = "CART_UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized cart access", data: Optional[Dict[str, Any]] = None):
        super().__init__(message, data)


class EmptyCart(CartException):
    code = "CART_EMPTY"


class CartNotActive(CartException):
    code = "CART_NOT_ACTIVE"


class OrderNotCancellable(CartException):
    code = "ORDER_NOT_CANCELLABLE"


class InvalidStatus(CartException):
    code = "INVALID_STATUS"


class NotFound(CartException):
    code = "NOT_FOUND"
