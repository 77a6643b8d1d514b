import uuid
from typing import Optional

from fastapi import HTTPException, Request, Response

from storefront.config import settings
from storefront.services.cart_context import CartContext, Identity


def user_id_from_header(request: Request) -> Optional[int]:
    # set by the authentication layer in front of this service
    raw = request.headers.get(settings.USER_ID_HEADER)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {settings.USER_ID_HEADER} header")


def get_session_id(request: Request, response: Response) -> str:
    session_id = request.cookies.get(settings.CART_SESSION_COOKIE)
    if not session_id:
        session_id = uuid.uuid4().hex
        response.set_cookie(
            settings.CART_SESSION_COOKIE, session_id, httponly=True, samesite="Lax"
        )
    return session_id


def get_identity(request: Request, response: Response) -> Identity:
    user_id = user_id_from_header(request)
    if user_id is not None:
        return Identity.user(user_id)
    return Identity.guest(get_session_id(request, response))


def get_cart_context(request: Request, response: Response) -> CartContext:
    """A fresh context per request; the memoized cart never outlives it."""
    return CartContext(get_identity(request, response))
