"""Order status enums and the order state transition table.

This module defines the order status and payment status enums together with
the directed transition table that every status change is validated against.
"""

from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> CREATED, CANCELLED
    - CREATED -> PAID, CANCELLED
    - PAID -> SHIPPED, CANCELLED
    - SHIPPED -> DELIVERED
    - DELIVERED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    PENDING = "PENDING"
    CREATED = "CREATED"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status, case-insensitive

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            ) from None

    def is_terminal(self) -> bool:
        """Check if status is a terminal state (DELIVERED, CANCELLED)."""
        return not ORDER_STATUS_TRANSITIONS[self]

    def is_modifiable(self) -> bool:
        """Check if the order's items may still change in this status."""
        return self not in _UNMODIFIABLE_STATUSES

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in ORDER_STATUS_TRANSITIONS[self]


class PaymentStatus(str, Enum):
    """Payment tracking status, correlated with but distinct from OrderStatus."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CREATED, OrderStatus.CANCELLED}),
    OrderStatus.CREATED: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

_UNMODIFIABLE_STATUSES = frozenset(
    {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)


def validate_order_status_transition(
    current: OrderStatus,
    target: OrderStatus,
) -> bool:
    """Check whether ``current -> target`` is an edge of the transition table.

    There are no implicit self-loops: ``current == target`` is invalid.
    """
    return target in ORDER_STATUS_TRANSITIONS.get(current, frozenset())


def get_allowed_order_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    """Get the statuses reachable in one step from ``current``."""
    return ORDER_STATUS_TRANSITIONS.get(current, frozenset())
