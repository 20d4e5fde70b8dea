"""Order aggregate: the order root, its line items and its status history.

The aggregate owns its items and keeps ``total_amount`` equal to the sum of
item subtotals after every mutation. It never touches stock; the coordinator
pairs every item change with the matching ledger call.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from src.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    OrderNotModifiableError,
)
from src.services.inventory.catalog import VariantRecord
from src.services.orders.enums import OrderStatus, PaymentStatus

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrderItem:
    """Order line with a price and display snapshot of its variant."""

    order_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    sku: Optional[str] = None
    product_name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class StatusChange:
    from_status: OrderStatus
    to_status: OrderStatus
    changed_at: datetime = field(default_factory=utcnow)
    changed_by: Optional[uuid.UUID] = None
    reason: Optional[str] = None


@dataclass
class Order:
    """
    Order aggregate root.

    ``items`` is keyed by item id and keeps insertion order. Mutators refuse
    to run once the order is shipped, delivered or cancelled. ``version``
    counts successful saves; repositories refuse a save made from a stale
    copy.
    """

    user_id: uuid.UUID
    shipping_address: str
    payment_method: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    items: dict[uuid.UUID, OrderItem] = field(default_factory=dict)
    total_amount: Decimal = ZERO
    status_history: list[StatusChange] = field(default_factory=list)
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items.values())

    def is_modifiable(self) -> bool:
        return self.status.is_modifiable()

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def get_item(self, item_id: uuid.UUID) -> OrderItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError("Order item", item_id, order_id=str(self.id))
        return item

    def find_item_by_variant(self, variant_id: uuid.UUID) -> Optional[OrderItem]:
        for item in self.items.values():
            if item.variant_id == variant_id:
                return item
        return None

    def add_item(
        self,
        variant: VariantRecord,
        quantity: int,
        unit_price: Optional[Decimal] = None,
    ) -> OrderItem:
        """Append a line for ``variant``, snapshotting its price and display fields.

        Raises:
            OrderNotModifiableError: If the order is past the modifiable stage
            InvalidArgumentError: For a bad quantity or price, or a variant
                that already has a line on this order
        """
        self._ensure_modifiable("add_item")
        _check_quantity(quantity)
        price = variant.price if unit_price is None else unit_price
        if price < 0:
            raise InvalidArgumentError(
                "unit_price must not be negative", field="unit_price", value=str(price)
            )
        if self.find_item_by_variant(variant.variant_id) is not None:
            raise InvalidArgumentError(
                f"Order {self.id} already has a line for variant {variant.variant_id}",
                order_id=str(self.id),
                variant_id=str(variant.variant_id),
            )

        item = OrderItem(
            order_id=self.id,
            variant_id=variant.variant_id,
            quantity=quantity,
            unit_price=price,
            sku=variant.sku,
            product_name=variant.product_name,
            color=variant.color,
            size=variant.size,
        )
        self.items[item.id] = item
        self._changed()
        return item

    def remove_item(self, item_id: uuid.UUID) -> OrderItem:
        self._ensure_modifiable("remove_item")
        item = self.get_item(item_id)
        del self.items[item_id]
        self._changed()
        return item

    def update_item_quantity(self, item_id: uuid.UUID, quantity: int) -> int:
        """Set a line's quantity and return the previous one."""
        self._ensure_modifiable("update_item_quantity")
        _check_quantity(quantity)
        item = self.get_item(item_id)
        old_quantity = item.quantity
        item.quantity = quantity
        self._changed()
        return old_quantity

    def clear_items(self) -> list[OrderItem]:
        self._ensure_modifiable("clear_items")
        removed = list(self.items.values())
        self.items.clear()
        self._changed()
        return removed

    def recalculate_total(self) -> Decimal:
        self.total_amount = sum(
            (item.subtotal for item in self.items.values()), ZERO
        )
        return self.total_amount

    def touch(self) -> None:
        self.updated_at = utcnow()

    def _changed(self) -> None:
        self.recalculate_total()
        self.touch()

    def _ensure_modifiable(self, operation: str) -> None:
        if not self.is_modifiable():
            raise OrderNotModifiableError(self.id, self.status, operation)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidArgumentError(
            "quantity must be a positive integer", field="quantity", value=repr(quantity)
        )
