from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_cart_context
from storefront.db import get_db
from storefront.exceptions import Unauthorized
from storefront.models.order import Order
from storefront.schemas.cart_schema import CancelOrderIn, CheckoutIn
from storefront.services import pricing
from storefront.services.cart_context import CartContext
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService

router = APIRouter(tags=["orders"])


def _order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal": order.subtotal_cents,
        "tax_amount": order.tax_cents,
        "shipping_amount": order.shipping_cents,
        "discount_amount": order.discount_cents,
        "total_amount": order.total_cents,
        "formatted_total": pricing.format_cents(order.total_cents),
        "currency": order.currency,
        "billing_address": order.billing_address,
        "shipping_address": order.shipping_address,
        "notes": order.notes,
        "items": [
            {
                "id": it.id,
                "product_id": it.product_id,
                "variant_id": it.variant_id,
                "product_name": it.product_name,
                "product_sku": it.product_sku,
                "brand_name": it.brand_name,
                "image_path": it.image_path,
                "quantity": it.quantity,
                "unit_price": it.unit_price_cents,
                "total_price": it.total_price_cents,
                "product_snapshot": it.product_snapshot,
            }
            for it in order.items
        ],
    }


def _owned_order(svc: OrderService, ctx: CartContext, order_number: str) -> Order:
    order = svc.get_by_number(order_number)
    identity = ctx.identity
    if identity.user_id is not None:
        owned = order.user_id == identity.user_id
    else:
        owned = order.user_id is None and order.session_id == identity.session_id
    if not owned:
        raise Unauthorized("Unauthorized order access", {"order_number": order_number})
    return order


@router.get("/preview", summary="Totals for the current cart")
def preview(ctx: CartContext = Depends(get_cart_context), db: Session = Depends(get_db)):
    cart = CartService(db).resolve(ctx)
    return {"success": True, "totals": OrderService(db).preview_totals(cart).as_dict()}


@router.post("", summary="Create order (checkout)", status_code=201)
def create_order(
    payload: CheckoutIn,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    cart = CartService(db).resolve(ctx)
    order = OrderService(db).create_order_from_cart(
        cart,
        payload.billing_address,
        payload.shipping_address,
        guest_email=payload.guest_email,
        payment_method=payload.payment_method,
    )
    ctx.invalidate()
    return {"success": True, "order": _order_to_dict(order)}


@router.get("/{order_number}", summary="Get order")
def get_order(
    order_number: str,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    order = _owned_order(OrderService(db), ctx, order_number)
    return {"success": True, "order": _order_to_dict(order)}


@router.post("/{order_number}/cancel", summary="Cancel order")
def cancel_order(
    order_number: str,
    payload: CancelOrderIn,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    order = _owned_order(svc, ctx, order_number)
    svc.cancel_order(order, payload.reason)
    return {"success": True, "order": _order_to_dict(svc.get_order_with_items(order.id))}
