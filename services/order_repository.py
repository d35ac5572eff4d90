from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import case, func, or_, update
from sqlalchemy.orm import Session, selectinload
import structlog

from core.db import get_db
from models.address import Address
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.promo_code import PromoCode

logger = structlog.get_logger(__name__)


class OrderRepository:
    """Persistence for orders, their address snapshot and line items.

    Writes are flushed, never committed, except where noted: the caller owns
    the transaction so that address, order and items land together.
    Payment transitions are compare-and-swap updates that report whether
    this call performed the transition.
    """

    def __init__(self, db: Session):
        self.db = db

    # Lookups

    def _query(self):
        return self.db.query(Order).options(selectinload(Order.items), selectinload(Order.shipping_address))

    def get(self, order_id: int) -> Optional[Order]:
        return self._query().filter(Order.id == order_id).one_or_none()

    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return self._query().filter(Order.order_number == order_number).one_or_none()

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.idempotency_key == idempotency_key).one_or_none()

    def get_by_reference(self, reference: str) -> Optional[Order]:
        """Resolve a gateway reference: Paystack ref, Stripe id or our order number."""
        return (
            self._query()
            .filter(
                or_(
                    Order.paystack_reference == reference,
                    Order.stripe_payment_intent_id == reference,
                    Order.order_number == reference,
                )
            )
            .first()
        )

    def list_for_user(self, user_id: int, limit: int = 50, offset: int = 0) -> Tuple[List[Order], int]:
        base = self.db.query(Order).filter(Order.user_id == user_id)
        total = base.count()
        orders = (
            self._query()
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return orders, total

    def stats(self, user_id: Optional[int] = None) -> dict:
        query = self.db.query(Order.status, func.count(Order.id))
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        counts = dict(query.group_by(Order.status).all())

        revenue_query = self.db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(
            Order.payment_status == PaymentStatus.COMPLETED.value
        )
        if user_id is not None:
            revenue_query = revenue_query.filter(Order.user_id == user_id)

        return {
            "total": sum(counts.values()),
            "pending": counts.get(OrderStatus.PENDING.value, 0),
            "processing": counts.get(OrderStatus.PROCESSING.value, 0),
            "completed": counts.get(OrderStatus.DELIVERED.value, 0),
            "cancelled": counts.get(OrderStatus.CANCELLED.value, 0),
            "revenue": Decimal(str(revenue_query.scalar() or 0)),
        }

    # Writes

    def add_address(self, address: Address) -> Address:
        self.db.add(address)
        self.db.flush()
        return address

    def add_order(self, order: Order, items: Iterable[OrderItem]) -> Order:
        order.items = list(items)
        self.db.add(order)
        self.db.flush()
        return order

    def delete(self, order: Order) -> None:
        self.db.delete(order)
        self.db.flush()

    def set_gateway_reference(self, order: Order, gateway: str, reference: str) -> None:
        if gateway == "stripe":
            order.stripe_payment_intent_id = reference
        else:
            order.paystack_reference = reference
        self.db.flush()

    def mark_payment_completed(self, order_id: int) -> bool:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(
                payment_status=PaymentStatus.COMPLETED.value,
                # Only a still-pending order advances; cancelled or shipped orders keep their status
                status=case(
                    (Order.status == OrderStatus.PENDING.value, OrderStatus.PROCESSING.value),
                    else_=Order.status,
                ),
                webhook_processed=True,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def mark_payment_failed(self, order_id: int) -> bool:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(payment_status=PaymentStatus.FAILED.value, webhook_processed=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def increment_promo_usage(self, code: str) -> bool:
        result = self.db.execute(
            update(PromoCode)
            .where(PromoCode.code == code.strip().upper())
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


def get_order_repository(db: Session = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db)
