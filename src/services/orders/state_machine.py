"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class that moves an order
aggregate along the edges of the transition table, running guards before and
side effects after each status change and recording every change in the
order's status history.
"""

from typing import Callable, Dict, FrozenSet, Optional
from uuid import UUID

from src.core.exceptions import EmptyOrderError, InvalidTransitionError
from src.core.logging import get_logger
from src.services.orders.aggregate import Order, StatusChange, utcnow
from src.services.orders.enums import (
    OrderStatus,
    PaymentStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    Holds no state of its own; a single instance can be shared by every
    workflow.
    """

    def __init__(self) -> None:
        self._transition_guards: Dict[
            tuple[OrderStatus, OrderStatus], Callable[[Order], bool]
        ] = self._initialize_guards()
        self._side_effects: Dict[
            OrderStatus, Callable[[Order, Optional[str]], None]
        ] = self._initialize_side_effects()

    def _initialize_guards(
        self,
    ) -> Dict[tuple[OrderStatus, OrderStatus], Callable[[Order], bool]]:
        """Guards keyed by transition; a False result blocks the transition."""
        return {
            (OrderStatus.PENDING, OrderStatus.CREATED): self._guard_has_items,
            (OrderStatus.CREATED, OrderStatus.PAID): self._guard_has_items,
        }

    def _initialize_side_effects(
        self,
    ) -> Dict[OrderStatus, Callable[[Order, Optional[str]], None]]:
        """Side effects keyed by target status."""
        return {
            OrderStatus.CREATED: self._effect_confirmed,
            OrderStatus.PAID: self._effect_paid,
            OrderStatus.SHIPPED: self._effect_shipped,
            OrderStatus.DELIVERED: self._effect_delivered,
            OrderStatus.CANCELLED: self._effect_cancelled,
        }

    def validate_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        operation: Optional[str] = None,
    ) -> None:
        """Validate that ``order`` may move to ``target_status`` now.

        Raises:
            InvalidTransitionError: If the table has no such edge
            EmptyOrderError: If the order has no items and the target
                requires some
        """
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            raise InvalidTransitionError(
                order.id,
                current_status,
                target_status,
                operation=operation,
                allowed=get_allowed_order_transitions(current_status),
            )

        guard = self._transition_guards.get((current_status, target_status))
        if guard is not None and not guard(order):
            raise EmptyOrderError(
                order.id,
                current_status,
                operation or f"move to {target_status.value.lower()}",
            )

    def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        changed_by: Optional[UUID] = None,
        reason: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> StatusChange:
        """Move ``order`` to ``target_status`` and record the change.

        Only the in-memory aggregate is changed; the caller persists it.

        Returns:
            The status history entry that was appended
        """
        self.validate_transition(order, target_status, operation)

        change = StatusChange(
            from_status=order.status,
            to_status=target_status,
            changed_at=utcnow(),
            changed_by=changed_by,
            reason=reason,
        )
        order.status = target_status
        order.updated_at = change.changed_at
        order.status_history.append(change)

        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            side_effect(order, reason)

        logger.debug(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{change.from_status.value}->{target_status.value}",
            changed_by=str(changed_by) if changed_by else None,
        )
        return change

    def get_allowed_transitions(self, order: Order) -> FrozenSet[OrderStatus]:
        return get_allowed_order_transitions(order.status)

    def can_transition(self, order: Order, target_status: OrderStatus) -> bool:
        return order.status.can_transition_to(target_status)

    def can_cancel(self, order: Order) -> bool:
        return self.can_transition(order, OrderStatus.CANCELLED)

    # Transition Guards

    def _guard_has_items(self, order: Order) -> bool:
        return order.item_count > 0

    # Side Effects

    def _effect_confirmed(self, order: Order, reason: Optional[str]) -> None:
        order.confirmed_at = order.updated_at

    def _effect_paid(self, order: Order, reason: Optional[str]) -> None:
        order.payment_status = PaymentStatus.PAID
        order.paid_at = order.updated_at

    def _effect_shipped(self, order: Order, reason: Optional[str]) -> None:
        order.shipped_at = order.updated_at

    def _effect_delivered(self, order: Order, reason: Optional[str]) -> None:
        order.delivered_at = order.updated_at

    def _effect_cancelled(self, order: Order, reason: Optional[str]) -> None:
        order.cancelled_at = order.updated_at
        order.cancellation_reason = reason


def create_state_machine() -> OrderStateMachine:
    """Factory function to create state machine instance."""
    return OrderStateMachine()
