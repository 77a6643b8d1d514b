from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint, text
from sqlalchemy.orm import relationship

from storefront.db import Base
from storefront.utils.clock import utcnow


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_items_cart_product_variant"),
        # NULL variant_id rows are distinct under the constraint above
        Index(
            "uq_cart_items_cart_product_no_variant",
            "cart_id",
            "product_id",
            unique=True,
            sqlite_where=text("variant_id IS NULL"),
            postgresql_where=text("variant_id IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    price_cents = Column(
        Integer, nullable=False, default=0
    )  # unit price at time of add, in cents
    product_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def total_price_cents(self) -> int:
        return self.price_cents * self.quantity

    @property
    def display_name(self) -> str:
        name = None
        if self.product is not None:
            name = self.product.name
        elif self.product_snapshot:
            name = self.product_snapshot.get("name")
        name = name or "Unknown Product"
        if self.variant is not None and self.variant.name:
            name = f"{name} - {self.variant.name}"
        return name
