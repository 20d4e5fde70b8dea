"""
Order coordinator orchestrating the order aggregate and the inventory ledger.

This module implements the OrderCoordinator, the only component that calls
both the ledger and the order repository. Every workflow runs under the
order's lock, reserves stock before committing an order change and releases
it again if the commit fails, and saves the order before releasing stock on
decreases so a crash can leak units but never oversell them. The in-process
lock serialises workflows within one process; the repositories' version
check refuses a save made from a snapshot another process has already
changed, and the refused workflow rolls back its reservations.
"""

import uuid
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from src.core.exceptions import (
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotModifiableError,
    OwnershipMismatchError,
    VariantUnavailableError,
)
from src.core.locks import KeyedLock
from src.core.logging import get_logger, log_performance, order_context
from src.services.inventory.ledger import InventoryLedger
from src.services.orders.aggregate import Order
from src.services.orders.enums import OrderStatus, PaymentStatus
from src.services.orders.repository import OrderRepository
from src.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    """Identity on whose behalf a workflow runs."""

    user_id: Optional[uuid.UUID]
    is_admin: bool = False

    @classmethod
    def system(cls) -> "Caller":
        """Privileged caller used by internal adapters such as payment events."""
        return cls(user_id=None, is_admin=True)


@dataclass(frozen=True)
class OrderLine:
    variant_id: uuid.UUID
    quantity: int


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{field} must not be blank", field=field)
    return value.strip()


class OrderCoordinator:
    """
    Coordinator for order workflows.

    Lock order is always one order, then one variant at a time: the order
    lock is held here and the ledger's repository takes each variant lock
    for a single stock step.
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        orders: OrderRepository,
        state_machine: Optional[OrderStateMachine] = None,
        cancel_on_payment_failure: bool = False,
    ):
        """
        Initialize order coordinator.

        Args:
            ledger: Inventory ledger owning variant stock
            orders: Order repository
            state_machine: Transition validator, a fresh one by default
            cancel_on_payment_failure: Cancel awaiting orders when the
                gateway reports a failed payment
        """
        self.ledger = ledger
        self.orders = orders
        self.state_machine = state_machine or OrderStateMachine()
        self.cancel_on_payment_failure = cancel_on_payment_failure
        self._order_locks = KeyedLock()

    # Creation

    async def create_order(
        self,
        caller: Caller,
        lines: Iterable[OrderLine],
        shipping_address: str,
        payment_method: str,
    ) -> Order:
        """
        Create a PENDING order, reserving stock for every line.

        Lines for the same variant are merged. If any line fails, every
        reservation already made is released before the error propagates.

        Raises:
            InvalidArgumentError: For a missing owner, blank address or
                payment method, or a bad quantity
            NotFoundError: If a variant does not exist
            VariantUnavailableError: If a variant is inactive
            OutOfStockError: If a variant lacks stock
        """
        if caller.user_id is None:
            raise InvalidArgumentError(
                "Orders must be created on behalf of a user", operation="create_order"
            )
        shipping_address = _require_text(shipping_address, "shipping_address")
        payment_method = _require_text(payment_method, "payment_method")

        merged: dict[uuid.UUID, int] = {}
        for line in lines:
            if (
                isinstance(line.quantity, bool)
                or not isinstance(line.quantity, int)
                or line.quantity < 1
            ):
                raise InvalidArgumentError(
                    "quantity must be a positive integer",
                    field="quantity",
                    variant_id=str(line.variant_id),
                    value=repr(line.quantity),
                )
            merged[line.variant_id] = merged.get(line.variant_id, 0) + line.quantity

        order = Order(
            user_id=caller.user_id,
            shipping_address=shipping_address,
            payment_method=payment_method,
        )

        with log_performance(
            logger, "create_order", order_id=str(order.id), line_count=len(merged)
        ):
            reserved: list[tuple[uuid.UUID, int]] = []
            try:
                for variant_id, quantity in merged.items():
                    await self.ledger.validate_stock(variant_id, quantity)
                    record = await self.ledger.reserve_stock(variant_id, quantity)
                    reserved.append((variant_id, quantity))
                    order.add_item(record, quantity, record.price)
                await self.orders.add(order)
            except BaseException:
                await self._rollback_reservations(reserved, order.id, "create_order")
                raise

        logger.info(
            "Order created",
            order_id=str(order.id),
            user_id=str(order.user_id),
            item_count=order.item_count,
            total_amount=str(order.total_amount),
        )
        return order

    # Item changes

    async def add_item(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        variant_id: uuid.UUID,
        quantity: int,
    ) -> Order:
        """
        Add units of a variant to a modifiable order.

        A variant already on the order has its line quantity increased and
        keeps its original price snapshot.
        """
        async with self._locked_order(order_id, caller, "add_item") as order:
            self._ensure_modifiable(order, "add_item")
            with log_performance(
                logger, "add_item", order_id=str(order_id), variant_id=str(variant_id)
            ):
                await self.ledger.validate_stock(variant_id, quantity)
                record = await self.ledger.reserve_stock(variant_id, quantity)

                try:
                    existing = order.find_item_by_variant(variant_id)
                    if existing is not None:
                        order.update_item_quantity(
                            existing.id, existing.quantity + quantity
                        )
                    else:
                        order.add_item(record, quantity, record.price)
                    await self.orders.save(order)
                except BaseException:
                    await self._rollback_reservations(
                        [(variant_id, quantity)], order_id, "add_item"
                    )
                    raise

        logger.info(
            "Order item added",
            order_id=str(order_id),
            variant_id=str(variant_id),
            quantity=quantity,
            total_amount=str(order.total_amount),
        )
        return order

    async def update_item_quantity(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        quantity: int,
    ) -> Order:
        """
        Set a line's quantity, reserving or releasing the difference.

        A quantity of zero removes the line.
        """
        if quantity == 0:
            return await self.remove_item(caller, order_id, item_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidArgumentError(
                "quantity must be a non-negative integer",
                field="quantity",
                value=repr(quantity),
                operation="update_item_quantity",
            )

        async with self._locked_order(order_id, caller, "update_item_quantity") as order:
            self._ensure_modifiable(order, "update_item_quantity")
            item = order.get_item(item_id)
            old_quantity = item.quantity
            delta = quantity - old_quantity

            with log_performance(
                logger,
                "update_item_quantity",
                order_id=str(order_id),
                item_id=str(item_id),
                delta=delta,
            ):
                if delta > 0:
                    await self.ledger.adjust_stock(item.variant_id, old_quantity, quantity)
                    try:
                        order.update_item_quantity(item_id, quantity)
                        await self.orders.save(order)
                    except BaseException:
                        await self._rollback_reservations(
                            [(item.variant_id, delta)], order_id, "update_item_quantity"
                        )
                        raise
                elif delta < 0:
                    order.update_item_quantity(item_id, quantity)
                    await self.orders.save(order)
                    await self._release_lines([(item.variant_id, -delta)], order_id)

        logger.info(
            "Order item quantity updated",
            order_id=str(order_id),
            item_id=str(item_id),
            old_quantity=old_quantity,
            new_quantity=quantity,
        )
        return order

    async def remove_item(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
    ) -> Order:
        async with self._locked_order(order_id, caller, "remove_item") as order:
            self._ensure_modifiable(order, "remove_item")
            item = order.remove_item(item_id)
            await self.orders.save(order)
            await self._release_lines([(item.variant_id, item.quantity)], order_id)

        logger.info(
            "Order item removed",
            order_id=str(order_id),
            item_id=str(item_id),
            variant_id=str(item.variant_id),
            quantity=item.quantity,
        )
        return order

    async def clear_items(self, caller: Caller, order_id: uuid.UUID) -> Order:
        async with self._locked_order(order_id, caller, "clear_items") as order:
            self._ensure_modifiable(order, "clear_items")
            removed = order.clear_items()
            await self.orders.save(order)
            await self._release_lines(
                [(item.variant_id, item.quantity) for item in removed], order_id
            )

        logger.info("Order items cleared", order_id=str(order_id), removed=len(removed))
        return order

    # Status workflows

    async def confirm_order(self, caller: Caller, order_id: uuid.UUID) -> Order:
        """
        Move a PENDING order to CREATED.

        Raises:
            InvalidTransitionError: If the order is not PENDING
            EmptyOrderError: If the order has no items
            VariantUnavailableError: If a line's variant is gone or inactive
        """
        async with self._locked_order(order_id, caller, "confirm_order") as order:
            self.state_machine.validate_transition(
                order, OrderStatus.CREATED, "confirm_order"
            )
            for item in order.items.values():
                try:
                    variant = await self.ledger.get_variant(item.variant_id)
                except NotFoundError:
                    raise VariantUnavailableError(
                        item.variant_id, sku=item.sku, order_id=str(order_id)
                    ) from None
                if not variant.active:
                    raise VariantUnavailableError(
                        item.variant_id, sku=variant.sku, order_id=str(order_id)
                    )

            self.state_machine.apply_transition(
                order, OrderStatus.CREATED, caller.user_id, operation="confirm_order"
            )
            await self.orders.save(order)

        logger.info("Order confirmed", order_id=str(order_id))
        return order

    async def cancel_order(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order and return its stock.

        Items stay on the cancelled order as the record of what was ordered.

        Raises:
            InvalidTransitionError: If the order is SHIPPED, DELIVERED or
                already CANCELLED
        """
        async with self._locked_order(order_id, caller, "cancel_order") as order:
            self._cancel(order, caller, reason, "cancel_order")
            await self.orders.save(order)
            await self._release_lines(
                [(item.variant_id, item.quantity) for item in order.items.values()],
                order_id,
            )

        logger.info("Order cancelled", order_id=str(order_id), reason=reason)
        return order

    async def mark_as_paid(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        transaction_id: str,
    ) -> Order:
        """
        Record a successful payment.

        A PENDING order is confirmed on the way, so both transitions appear
        in its history.

        Raises:
            InvalidArgumentError: If the transaction id is blank
            InvalidTransitionError: If the order is not PENDING or CREATED
            EmptyOrderError: If the order has no items
        """
        transaction_id = _require_text(transaction_id, "transaction_id")

        async with self._locked_order(order_id, caller, "mark_as_paid") as order:
            await self._pay(order, caller, transaction_id, "mark_as_paid")
        return order

    async def record_payment(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        transaction_id: str,
    ) -> tuple[Order, bool]:
        """
        Apply a gateway payment at most once per transaction.

        A repeated delivery for an order already paid with the same
        transaction leaves the order untouched. The check runs under the
        order lock, so concurrent deliveries of one event apply it once.

        Returns:
            The order and whether this call changed it
        """
        transaction_id = _require_text(transaction_id, "transaction_id")

        async with self._locked_order(order_id, caller, "record_payment") as order:
            if (
                order.payment_status == PaymentStatus.PAID
                and order.transaction_id == transaction_id
            ):
                logger.info(
                    "Duplicate payment ignored",
                    order_id=str(order_id),
                    transaction_id=transaction_id,
                )
                return order, False
            await self._pay(order, caller, transaction_id, "record_payment")
        return order, True

    async def mark_payment_failed(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Record a failed payment for an order awaiting payment.

        Callbacks for orders in any other status are logged and ignored.
        """
        async with self._locked_order(order_id, caller, "mark_payment_failed") as order:
            if order.status not in (OrderStatus.PENDING, OrderStatus.CREATED):
                logger.warning(
                    "Ignoring payment failure for order not awaiting payment",
                    order_id=str(order_id),
                    status=order.status.value,
                )
                return order

            order.payment_status = PaymentStatus.FAILED
            order.touch()
            cancelled = False
            if self.cancel_on_payment_failure:
                self._cancel(
                    order, caller, reason or "payment failed", "mark_payment_failed"
                )
                cancelled = True
            await self.orders.save(order)
            if cancelled:
                await self._release_lines(
                    [(item.variant_id, item.quantity) for item in order.items.values()],
                    order_id,
                )

        logger.info(
            "Order payment failed",
            order_id=str(order_id),
            reason=reason,
            cancelled=cancelled,
        )
        return order

    async def mark_as_shipped(self, caller: Caller, order_id: uuid.UUID) -> Order:
        return await self._simple_transition(
            caller, order_id, OrderStatus.SHIPPED, "mark_as_shipped"
        )

    async def mark_as_delivered(self, caller: Caller, order_id: uuid.UUID) -> Order:
        return await self._simple_transition(
            caller, order_id, OrderStatus.DELIVERED, "mark_as_delivered"
        )

    async def update_status(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        target_status: OrderStatus,
        reason: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> Order:
        """
        Administrative status change routed through the matching workflow.

        Raises:
            OwnershipMismatchError: If the caller is not an administrator
            InvalidTransitionError: If the target is not reachable
        """
        self._require_admin(caller, "update_status")

        if target_status == OrderStatus.CREATED:
            return await self.confirm_order(caller, order_id)
        if target_status == OrderStatus.PAID:
            return await self.mark_as_paid(caller, order_id, transaction_id)
        if target_status == OrderStatus.SHIPPED:
            return await self.mark_as_shipped(caller, order_id)
        if target_status == OrderStatus.DELIVERED:
            return await self.mark_as_delivered(caller, order_id)
        if target_status == OrderStatus.CANCELLED:
            return await self.cancel_order(caller, order_id, reason)

        # Nothing transitions into PENDING.
        order = await self.get_order(caller, order_id)
        raise InvalidTransitionError(
            order.id,
            order.status,
            target_status,
            operation="update_status",
            allowed=self.state_machine.get_allowed_transitions(order),
        )

    async def delete_order(self, caller: Caller, order_id: uuid.UUID) -> None:
        """
        Delete a non-terminal order and return its stock.

        Raises:
            OrderNotModifiableError: If the order is DELIVERED or CANCELLED
        """
        async with self._locked_order(order_id, caller, "delete_order") as order:
            if order.is_terminal():
                raise OrderNotModifiableError(order.id, order.status, "delete_order")
            await self.orders.delete(order_id, expected_version=order.version)
            await self._release_lines(
                [(item.variant_id, item.quantity) for item in order.items.values()],
                order_id,
            )

        logger.info("Order deleted", order_id=str(order_id))

    # Queries

    async def get_order(self, caller: Caller, order_id: uuid.UUID) -> Order:
        return await self._load(order_id, caller, "get_order")

    async def list_orders_for_user(
        self, caller: Caller, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        if caller.user_id is None:
            return []
        return await self.orders.list_for_user(caller.user_id, limit, offset)

    async def list_all_orders(
        self,
        caller: Caller,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        self._require_admin(caller, "list_all_orders")
        return await self.orders.list_all(status, limit, offset)

    async def recalculate_total(self, caller: Caller, order_id: uuid.UUID) -> Decimal:
        async with self._locked_order(order_id, caller, "recalculate_total") as order:
            previous = order.total_amount
            total = order.recalculate_total()
            if total != previous:
                logger.warning(
                    "Order total corrected",
                    order_id=str(order_id),
                    previous=str(previous),
                    total=str(total),
                )
                order.touch()
                await self.orders.save(order)
        return total

    async def check_stock(self, variant_id: uuid.UUID, quantity: int) -> bool:
        return await self.ledger.has_stock(variant_id, quantity)

    async def is_variant_available(self, variant_id: uuid.UUID) -> bool:
        return await self.ledger.is_variant_available(variant_id)

    # Internals

    @asynccontextmanager
    async def _locked_order(
        self, order_id: uuid.UUID, caller: Caller, operation: str
    ) -> AsyncIterator[Order]:
        async with self._order_locks.hold(order_id):
            with order_context(order_id, operation):
                yield await self._load(order_id, caller, operation)

    async def _load(self, order_id: uuid.UUID, caller: Caller, operation: str) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order", order_id, operation=operation)
        if not caller.is_admin and order.user_id != caller.user_id:
            logger.warning(
                "Order access denied",
                order_id=str(order_id),
                user_id=str(caller.user_id) if caller.user_id else None,
                operation=operation,
            )
            raise OwnershipMismatchError(order_id, caller.user_id, operation)
        return order

    async def _simple_transition(
        self,
        caller: Caller,
        order_id: uuid.UUID,
        target_status: OrderStatus,
        operation: str,
    ) -> Order:
        async with self._locked_order(order_id, caller, operation) as order:
            self.state_machine.apply_transition(
                order, target_status, caller.user_id, operation=operation
            )
            await self.orders.save(order)

        logger.info(
            "Order status updated",
            order_id=str(order_id),
            status=target_status.value,
            operation=operation,
        )
        return order

    def _cancel(
        self,
        order: Order,
        caller: Caller,
        reason: Optional[str],
        operation: str,
    ) -> None:
        self.state_machine.apply_transition(
            order, OrderStatus.CANCELLED, caller.user_id, reason=reason, operation=operation
        )

    async def _pay(
        self, order: Order, caller: Caller, transaction_id: str, operation: str
    ) -> None:
        if order.status == OrderStatus.PENDING:
            self.state_machine.apply_transition(
                order,
                OrderStatus.CREATED,
                caller.user_id,
                reason="confirmed by payment",
                operation=operation,
            )
        self.state_machine.apply_transition(
            order, OrderStatus.PAID, caller.user_id, operation=operation
        )
        order.transaction_id = transaction_id
        await self.orders.save(order)

        logger.info(
            "Order marked as paid",
            order_id=str(order.id),
            transaction_id=transaction_id,
        )

    @staticmethod
    def _ensure_modifiable(order: Order, operation: str) -> None:
        if not order.is_modifiable():
            raise OrderNotModifiableError(order.id, order.status, operation)

    @staticmethod
    def _require_admin(caller: Caller, operation: str) -> None:
        if not caller.is_admin:
            raise OwnershipMismatchError(None, caller.user_id, operation)

    async def _release_lines(
        self, lines: list[tuple[uuid.UUID, int]], order_id: uuid.UUID
    ) -> None:
        """Return stock for lines already removed from storage."""
        for variant_id, quantity in lines:
            try:
                await self.ledger.release_stock(variant_id, quantity)
            except NotFoundError:
                logger.warning(
                    "Variant missing while releasing stock",
                    order_id=str(order_id),
                    variant_id=str(variant_id),
                    quantity=quantity,
                )

    async def _rollback_reservations(
        self,
        reserved: list[tuple[uuid.UUID, int]],
        order_id: uuid.UUID,
        operation: str,
    ) -> None:
        """Undo reservations made by a failed workflow.

        Release failures are logged so the original error is the one raised.
        """
        for variant_id, quantity in reserved:
            try:
                await self.ledger.release_stock(variant_id, quantity)
            except Exception as e:
                logger.error(
                    "Failed to roll back stock reservation",
                    order_id=str(order_id),
                    variant_id=str(variant_id),
                    quantity=quantity,
                    operation=operation,
                    error=str(e),
                    exc_info=True,
                )
        if reserved:
            logger.info(
                "Stock reservations rolled back",
                order_id=str(order_id),
                operation=operation,
                lines=len(reserved),
            )
