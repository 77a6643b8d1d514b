from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from storefront.db import Base
from storefront.utils.clock import as_utc, utcnow

CART_ACTIVE = "active"
CART_ABANDONED = "abandoned"
CART_CONVERTED = "converted"


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        Index("ix_carts_user_status", "user_id", "status"),
        Index("ix_carts_session_status", "session_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)  # owned by the external identity provider
    session_id = Column(String(128), nullable=True)  # guest identifier
    status = Column(String(32), nullable=False, default=CART_ACTIVE)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def is_active(self) -> bool:
        return self.status == CART_ACTIVE

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utcnow())

    def owned_by(self, identity) -> bool:
        if identity.user_id is not None:
            return self.user_id == identity.user_id
        return self.user_id is None and self.session_id == identity.session_id

    def __repr__(self):
        owner = f"user={self.user_id}" if self.user_id is not None else f"session={self.session_id}"
        return f"<Cart id={self.id} {owner} status={self.status}>"
