"""
Order, order item and status history tables.

The rows mirror the in-memory order aggregate one-to-one. Items keep a
snapshot of the variant's display fields and price so order history survives
catalog changes; ``variant_id`` is a plain reference with no foreign key for
the same reason.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, BaseModel
from src.services.orders.enums import OrderStatus, PaymentStatus


class Order(BaseModel):
    """
    Order aggregate root row.

    Attributes:
        id: Order identifier (UUID)
        user_id: Owning user (opaque identity, no foreign key)
        status: Current lifecycle status
        payment_status: Payment tracking status
        transaction_id: External payment reference
        total_amount: Sum of item subtotals
        shipping_address: Free-form shipping address
        payment_method: Free-form payment method label
        cancellation_reason: Reason recorded when the order was cancelled
    """

    __tablename__ = "orders"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Owning user identifier",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    shipping_address: Mapped[str] = mapped_column(String(500), nullable=False)

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(
        String(500), nullable=True
    )

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Incremented on every save; used to reject stale writes",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.sequence",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        {"comment": "Customer orders"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status={self.status.value}, "
            f"total_amount={self.total_amount})>"
        )


class OrderItem(Base):
    """
    Single order line.

    Attributes:
        id: Item identifier (UUID)
        order_id: Parent order
        position: Insertion order within the parent
        variant_id: Referenced variant (no foreign key)
        quantity: Reserved units, at least one
        unit_price: Price snapshot taken at reservation time
    """

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    variant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )

    sku: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "unit_price >= 0", name="ck_order_items_unit_price_non_negative"
        ),
        {"comment": "Individual items in an order"},
    )


class OrderStatusHistory(Base):
    """
    Status change audit trail entry.

    Attributes:
        id: Entry identifier
        order_id: Parent order
        sequence: Position in the order's history
        from_status: Previous status
        to_status: New status
        changed_by: User who made the change, None for system changes
        reason: Free-form reason, e.g. a cancellation reason
        changed_at: When the change happened
    """

    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    from_status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status"),
        nullable=False,
    )

    to_status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status"),
        nullable=False,
    )

    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    __table_args__ = (
        Index("ix_order_status_history_order_sequence", "order_id", "sequence"),
        {"comment": "Order status change history for audit trail"},
    )

    def __repr__(self) -> str:
        return (
            f"<OrderStatusHistory(order_id={self.order_id}, "
            f"from_status={self.from_status.value}, to_status={self.to_status.value})>"
        )
