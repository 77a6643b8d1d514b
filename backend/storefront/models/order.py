from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from storefront.db import Base
from storefront.utils.clock import utcnow

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
CANCELLABLE_STATUSES = ("pending", "processing")
PAYMENT_STATUSES = ("pending", "paid", "failed", "cancelled", "refunded")


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(128), nullable=True)
    guest_email = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="pending")
    payment_status = Column(String(32), nullable=False, default="pending")
    payment_method = Column(String(64), nullable=False)
    payment_reference = Column(String(128), nullable=True)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    shipping_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    billing_address = Column(JSON, nullable=False)
    shipping_address = Column(JSON, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )

    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # catalog rows may be deleted later; the snapshot keeps the history
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    product_name = Column(String(256), nullable=False)
    product_sku = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    total_price_cents = Column(Integer, nullable=False)
    product_snapshot = Column(JSON, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def brand_name(self):
        brand = (self.product_snapshot or {}).get("brand")
        if brand and brand.get("name"):
            return brand["name"]
        if self.product is not None and self.product.brand is not None:
            return self.product.brand.name
        return None

    @property
    def image_path(self):
        images = (self.product_snapshot or {}).get("images") or []
        if images:
            return images[0]["image_path"]
        if self.product is not None and self.product.primary_image is not None:
            return self.product.primary_image.image_path
        return None
