from typing import Optional

from sqlalchemy.orm import Session, selectinload

from storefront.models.order import Order, OrderItem


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def number_exists(self, order_number: str) -> bool:
        return (
            self.db.query(Order.id).filter(Order.order_number == order_number).first()
            is not None
        )

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_with_items(self, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.variant))
            .filter(Order.id == order_id)
            .first()
        )

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.order_number == order_number)
            .first()
        )
