from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from storefront.models.product import PRODUCT_PUBLISHED, Product, ProductVariant
from storefront.utils.locking import lock_row


class ProductRepository:
    """Catalog read model. The cart core only ever writes stock fields through it."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def get_variant(self, variant_id: int) -> Optional[ProductVariant]:
        return self.db.get(ProductVariant, variant_id)

    def get_by_slug(self, slug: str) -> Optional[Product]:
        return (
            self.db.query(Product)
            .options(selectinload(Product.variants))
            .filter(Product.slug == slug, Product.status == PRODUCT_PUBLISHED)
            .first()
        )

    def list(
        self, q: Optional[str] = None, page: int = 1, size: int = 20
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product).filter(Product.status == PRODUCT_PUBLISHED)
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Product.name.ilike(like)) | (Product.description.ilike(like))
            )
        total = query.with_entities(func.count()).scalar() or 0
        items = (
            query.options(selectinload(Product.variants))
            .order_by(Product.name)
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total

    def load_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(Product)
            .options(selectinload(Product.brand), selectinload(Product.images))
            .filter(Product.id.in_(ids))
            .all()
        )
        return {p.id: p for p in rows}

    def load_variants(self, variant_ids: Iterable[int]) -> Dict[int, ProductVariant]:
        ids = {v for v in variant_ids if v is not None}
        if not ids:
            return {}
        rows = self.db.query(ProductVariant).filter(ProductVariant.id.in_(ids)).all()
        return {v.id: v for v in rows}

    def lock_product(self, product_id: int) -> Optional[Product]:
        return lock_row(self.db, Product, product_id)

    def lock_variant(self, variant_id: int) -> Optional[ProductVariant]:
        return lock_row(self.db, ProductVariant, variant_id)
