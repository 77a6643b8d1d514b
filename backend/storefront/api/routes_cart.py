import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from storefront.api.deps import user_id_from_header, get_cart_context
from storefront.config import settings
from storefront.db import get_db
from storefront.exceptions import NotFound
from storefront.schemas.cart_schema import AddItemIn, UpdateItemIn
from storefront.services.cart_context import CartContext
from storefront.services.cart_service import CartService
from storefront.services.cart_transfer import CartTransferService
from storefront.services.cart_validator import CartValidator
from storefront.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", summary="Get cart with items")
def get_cart(ctx: CartContext = Depends(get_cart_context), db: Session = Depends(get_db)):
    return {"success": True, "cart": CartService(db).cart_data(ctx)}


@router.get("/summary", summary="Get cart summary")
def get_summary(ctx: CartContext = Depends(get_cart_context), db: Session = Depends(get_db)):
    return {"success": True, "cart_summary": CartService(db).summary(ctx)}


@router.post("", summary="Add item to cart", status_code=201)
def add_item(
    payload: AddItemIn,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    logger.info(
        "add to cart: product=%s variant=%s qty=%s",
        payload.product_id, payload.variant_id, payload.quantity,
    )
    svc = CartService(db)
    inventory = InventoryService(db)

    # fail fast on requests that could never be fulfilled right now
    product = svc.product_repo.get(payload.product_id)
    if product is None:
        raise NotFound("Product not found", {"product_id": payload.product_id})
    variant = None
    if payload.variant_id is not None:
        variant = svc.product_repo.get_variant(payload.variant_id)
        if variant is None:
            raise NotFound("Variant not found", {"variant_id": payload.variant_id})
    inventory.ensure_available(
        product, variant, payload.quantity, payload.product_id, payload.variant_id
    )

    item = svc.add_item(ctx, payload.product_id, payload.quantity, payload.variant_id)
    return {
        "success": True,
        "message": "Item added to cart successfully",
        "data": svc.item_to_dict(item),
        "cart_summary": svc.summary(ctx),
    }


@router.put("/{item_id}", summary="Update cart item quantity")
def update_item(
    item_id: int,
    payload: UpdateItemIn,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    item = svc.get_item_for(ctx, item_id)
    if payload.quantity > 0:
        product = svc.product_repo.get(item.product_id)
        variant = svc.product_repo.get_variant(item.variant_id) if item.variant_id is not None else None
        InventoryService(db).ensure_available(
            product, variant, payload.quantity, item.product_id, item.variant_id
        )
    svc.update_quantity(ctx, item, payload.quantity)
    return {
        "success": True,
        "message": "Cart updated successfully" if payload.quantity > 0 else "Item removed from cart",
        "cart_summary": svc.summary(ctx),
    }


@router.delete("/{item_id}", summary="Remove item")
def remove_item(
    item_id: int,
    ctx: CartContext = Depends(get_cart_context),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    item = svc.get_item_for(ctx, item_id)
    svc.remove_item(ctx, item)
    return {"success": True, "message": "Item removed from cart", "cart_summary": svc.summary(ctx)}


@router.delete("", summary="Clear cart")
def clear_cart(ctx: CartContext = Depends(get_cart_context), db: Session = Depends(get_db)):
    svc = CartService(db)
    svc.clear(ctx)
    return {"success": True, "message": "Cart cleared successfully", "cart_summary": svc.summary(ctx)}


@router.get("/validate", summary="Validate cart items against live stock")
def validate_cart(ctx: CartContext = Depends(get_cart_context), db: Session = Depends(get_db)):
    cart = CartService(db).resolve(ctx)
    errors = CartValidator(db).validate_cart(cart)
    return {"success": True, "validation_errors": errors, "has_errors": bool(errors)}


@router.post("/transfer", summary="Move the guest cart to the signed-in user")
def transfer_cart(request: Request, response: Response, db: Session = Depends(get_db)):
    user_id = user_id_from_header(request)
    session_id = request.cookies.get(settings.CART_SESSION_COOKIE)
    if user_id is None or not session_id:
        raise HTTPException(status_code=400, detail="Both a user and a guest session are required")
    CartTransferService(db).transfer_guest_cart(session_id, user_id)
    response.delete_cookie(settings.CART_SESSION_COOKIE)
    return {"success": True}
