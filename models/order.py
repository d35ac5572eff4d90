import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="GHS")

    # Lifecycle
    status: Mapped[str] = mapped_column(String(30), default=OrderStatus.PENDING.value, index=True)
    payment_status: Mapped[str] = mapped_column(String(30), default=PaymentStatus.PENDING.value, index=True)
    payment_method: Mapped[str] = mapped_column(String(30), default="card")
    delivery_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    webhook_processed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Money, always server computed
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    promo_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Gateway correlation
    paystack_reference: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True, index=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)

    mobile_money_provider: Mapped[str | None] = mapped_column(String(30), nullable=True)
    mobile_money_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    shipping_address_id: Mapped[int] = mapped_column(ForeignKey("addresses.id", ondelete="RESTRICT"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    shipping_address = relationship("Address")
    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED.value
