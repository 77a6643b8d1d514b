from typing import List, Optional
from pydantic import BaseModel
from pydantic import ConfigDict


class VariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    sku: str
    name: str
    effective_price_cents: int
    stock_quantity: int
    stock_status: str
    is_active: bool


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    sku: str
    slug: str
    name: str
    description: Optional[str] = None
    price_cents: int
    stock_quantity: int
    stock_status: str
    variants: List[VariantOut] = []
