"""
Frozen copies of catalog and customer data stored as JSON blobs.

Each snapshot is versioned so that rows written by an older release can still
be read back through the same models. Store with ``model_dump(mode="json")``
and read with ``Model.model_validate(row.column)``.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.utils.clock import utcnow


class CartItemSnapshot(BaseModel):
    """Display fallback for a cart line when the live product is gone."""

    version: int = 1
    name: str
    slug: str
    sku: str
    image: Optional[str] = None

    @classmethod
    def from_product(cls, product) -> "CartItemSnapshot":
        primary = product.primary_image
        return cls(
            name=product.name,
            slug=product.slug,
            sku=product.sku,
            image=primary.image_path if primary else None,
        )


class BrandRef(BaseModel):
    id: int
    name: str


class VariantRef(BaseModel):
    id: int
    name: str
    sku: str
    price: int


class ImageRef(BaseModel):
    id: int
    image_path: str
    alt_text: Optional[str] = None


class ProductSnapshot(BaseModel):
    """What order history shows forever, independent of later catalog edits."""

    version: int = 1
    id: int
    name: str
    sku: str
    price: int
    description: Optional[str] = None
    brand: Optional[BrandRef]
    variant: Optional[VariantRef]
    images: List[ImageRef]
    captured_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def capture(cls, product, variant=None) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            price=product.price_cents,
            description=product.description,
            brand=BrandRef(id=product.brand.id, name=product.brand.name) if product.brand else None,
            variant=(
                VariantRef(
                    id=variant.id,
                    name=variant.name,
                    sku=variant.sku,
                    price=variant.effective_price_cents,
                )
                if variant
                else None
            ),
            images=[
                ImageRef(id=img.id, image_path=img.image_path, alt_text=img.alt_text)
                for img in product.images
            ],
        )


class AddressSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = 1
    full_name: str = Field(..., min_length=1)
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = Field(..., min_length=2)
    phone: Optional[str] = None
    email: Optional[str] = None
