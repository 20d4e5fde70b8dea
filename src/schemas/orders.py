"""
Order management Pydantic schemas for API request/response validation.

This module defines the request bodies accepted by the order endpoints and the
read-only order projections returned by them. Responses are built from the
order aggregate through ``from_order`` so the API never exposes the aggregate
itself.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from src.services.orders.aggregate import Order, OrderItem, StatusChange
from src.services.orders.enums import OrderStatus, PaymentStatus


class OrderItemRequest(BaseModel):
    """Order line requested at creation or added later."""

    model_config = ConfigDict(validate_assignment=True)

    variant_id: UUID = Field(
        ...,
        description="Product variant ID",
    )
    quantity: int = Field(
        default=1,
        ge=1,
        le=1000,
        description="Quantity",
    )


class OrderCreateRequest(BaseModel):
    """Request schema for creating a new order."""

    model_config = ConfigDict(validate_assignment=True)

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Order items",
    )
    shipping_address: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Shipping address",
    )
    payment_method: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Payment method",
    )

    @field_validator("shipping_address", "payment_method")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only values."""
        v = v.strip()
        if not v:
            raise ValueError("Value must not be blank")
        return v


class OrderItemQuantityUpdate(BaseModel):
    """Request schema for changing a line's quantity; zero removes the line."""

    quantity: int = Field(
        ...,
        ge=0,
        le=1000,
        description="New quantity",
    )


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(
        None,
        max_length=500,
        description="Cancellation reason",
    )


class MarkPaidRequest(BaseModel):
    transaction_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Payment gateway transaction ID",
    )


class OrderStatusUpdate(BaseModel):
    """Request schema for an administrative status change."""

    model_config = ConfigDict(validate_assignment=True)

    status: OrderStatus = Field(
        ...,
        description="Target order status",
    )
    reason: Optional[str] = Field(
        None,
        max_length=500,
        description="Status change notes, used as the cancellation reason",
    )
    transaction_id: Optional[str] = Field(
        None,
        max_length=255,
        description="Transaction ID, required when moving to PAID",
    )

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        """Accept statuses in any letter case."""
        if isinstance(v, str):
            return OrderStatus.from_string(v)
        return v


class OrderItemResponse(BaseModel):
    """Order item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    variant_id: UUID
    sku: Optional[str] = None
    product_name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            id=item.id,
            variant_id=item.variant_id,
            sku=item.sku,
            product_name=item.product_name,
            color=item.color,
            size=item.size,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
        )


class StatusChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: OrderStatus
    to_status: OrderStatus
    changed_at: datetime
    changed_by: Optional[UUID] = None
    reason: Optional[str] = None


class OrderResponse(BaseModel):
    """Complete order response schema."""

    id: UUID
    user_id: UUID
    items: list[OrderItemResponse]
    item_count: int
    total_amount: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    shipping_address: str
    payment_method: str
    cancellation_reason: Optional[str] = None
    status_history: list[StatusChangeResponse] = Field(default_factory=list)
    confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            user_id=order.user_id,
            items=[OrderItemResponse.from_item(i) for i in order.items.values()],
            item_count=order.item_count,
            total_amount=order.total_amount,
            status=order.status,
            payment_status=order.payment_status,
            transaction_id=order.transaction_id,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            cancellation_reason=order.cancellation_reason,
            status_history=[_history(c) for c in order.status_history],
            confirmed_at=order.confirmed_at,
            paid_at=order.paid_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


def _history(change: StatusChange) -> StatusChangeResponse:
    return StatusChangeResponse.model_validate(change)


class OrderSummary(BaseModel):
    """Order list entry."""

    id: UUID
    user_id: UUID
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    item_count: int
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderSummary":
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            payment_status=order.payment_status,
            total_amount=order.total_amount,
            item_count=order.item_count,
            created_at=order.created_at,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderSummary]
    limit: int
    offset: int


class OrderTotalResponse(BaseModel):
    order_id: UUID
    total_amount: Decimal


class StockCheckResponse(BaseModel):
    """Advisory stock answer; only a reservation is authoritative."""

    variant_id: UUID
    quantity: int
    in_stock: bool
    available: bool
