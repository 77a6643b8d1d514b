from typing import Optional

from pydantic import BaseModel, Field

from storefront.schemas.snapshots import AddressSnapshot


class AddItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    variant_id: Optional[int] = None


class UpdateItemIn(BaseModel):
    quantity: int = Field(..., ge=0)


class CheckoutIn(BaseModel):
    billing_address: AddressSnapshot
    shipping_address: AddressSnapshot
    guest_email: Optional[str] = Field(None, max_length=255)
    payment_method: str = "aba_bank"


class CancelOrderIn(BaseModel):
    reason: Optional[str] = None
