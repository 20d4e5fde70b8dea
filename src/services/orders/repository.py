"""
Order data access repositories.

Both implementations hand out independent copies of the aggregate: a workflow
mutates its copy and only ``save`` makes the change visible, so a workflow
that fails before saving leaves no trace in storage. Saves and deletes are
checked against the copy's ``version``; the SQL repository makes that check
while holding the order row lock, so writers in different processes cannot
both commit changes derived from the same snapshot.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import ConcurrentModificationError, NotFoundError
from src.core.logging import get_logger
from src.database.models.order import Order as OrderModel
from src.database.models.order import OrderItem as OrderItemModel
from src.database.models.order import OrderStatusHistory
from src.services.orders.aggregate import Order, OrderItem, StatusChange
from src.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepository(ABC):
    """Storage contract for order aggregates."""

    @abstractmethod
    async def get(self, order_id: uuid.UUID) -> Optional[Order]:
        """Return a private copy of the order, or None."""

    @abstractmethod
    async def add(self, order: Order) -> Order:
        """Persist a new order."""

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """Persist changes to an existing order and bump its version.

        Raises:
            NotFoundError: If the order no longer exists
            ConcurrentModificationError: If the stored version moved on
        """

    @abstractmethod
    async def delete(
        self, order_id: uuid.UUID, expected_version: Optional[int] = None
    ) -> bool:
        """Remove an order; returns False if it did not exist.

        Raises:
            ConcurrentModificationError: If ``expected_version`` is given and
                the stored order has moved past it
        """

    @abstractmethod
    async def list_for_user(
        self, user_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        """Orders owned by ``user_id``, newest first."""

    @abstractmethod
    async def list_all(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        """Every order, optionally filtered by status, newest first."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored orders."""


class InMemoryOrderRepository(OrderRepository):
    """Dictionary-backed repository storing deep copies of aggregates."""

    def __init__(self) -> None:
        self._orders: dict[uuid.UUID, Order] = {}

    async def get(self, order_id: uuid.UUID) -> Optional[Order]:
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order is not None else None

    async def add(self, order: Order) -> Order:
        self._orders[order.id] = copy.deepcopy(order)
        return order

    async def save(self, order: Order) -> Order:
        stored = self._orders.get(order.id)
        if stored is None:
            raise NotFoundError("Order", order.id)
        _check_version(order.id, order.version, stored.version)
        order.version += 1
        self._orders[order.id] = copy.deepcopy(order)
        return order

    async def delete(
        self, order_id: uuid.UUID, expected_version: Optional[int] = None
    ) -> bool:
        stored = self._orders.get(order_id)
        if stored is None:
            return False
        if expected_version is not None:
            _check_version(order_id, expected_version, stored.version)
        del self._orders[order_id]
        return True

    async def list_for_user(
        self, user_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        orders = [o for o in self._orders.values() if o.user_id == user_id]
        return self._page(orders, limit, offset)

    async def list_all(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        orders = [
            o for o in self._orders.values() if status is None or o.status == status
        ]
        return self._page(orders, limit, offset)

    async def count(self) -> int:
        return len(self._orders)

    @staticmethod
    def _page(orders: list[Order], limit: int, offset: int) -> list[Order]:
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in orders[offset : offset + limit]]


class SqlOrderRepository(OrderRepository):
    """
    Repository for order persistence with SQLAlchemy.

    Every call runs in its own transaction. The ORM rows are mapped to fresh
    aggregates on the way out and synchronised from the aggregate on the way
    in, matching items by id.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize order repository.

        Args:
            session_factory: Factory producing async database sessions
        """
        self._session_factory = session_factory

    async def get(self, order_id: uuid.UUID) -> Optional[Order]:
        async with self._session_factory() as session:
            row = await session.get(OrderModel, order_id)
            return _to_domain(row) if row is not None else None

    async def add(self, order: Order) -> Order:
        async with self._session_factory.begin() as session:
            row = OrderModel(
                id=order.id,
                user_id=order.user_id,
                created_at=order.created_at,
                version=order.version,
                items=[],
                status_history=[],
            )
            _apply_to_row(order, row)
            session.add(row)

        logger.debug("Order row inserted", order_id=str(order.id))
        return order

    async def save(self, order: Order) -> Order:
        async with self._session_factory.begin() as session:
            row = await _lock_row(session, order.id)
            if row is None:
                raise NotFoundError("Order", order.id)
            _check_version(order.id, order.version, row.version)
            _apply_to_row(order, row)
            row.version = order.version + 1
        order.version += 1

        logger.debug(
            "Order row updated",
            order_id=str(order.id),
            status=order.status.value,
            item_count=order.item_count,
            version=order.version,
        )
        return order

    async def delete(
        self, order_id: uuid.UUID, expected_version: Optional[int] = None
    ) -> bool:
        async with self._session_factory.begin() as session:
            row = await _lock_row(session, order_id)
            if row is None:
                return False
            if expected_version is not None:
                _check_version(order_id, expected_version, row.version)
            await session.delete(row)

        logger.debug("Order row deleted", order_id=str(order_id))
        return True

    async def list_for_user(
        self, user_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        stmt = select(OrderModel).where(OrderModel.user_id == user_id)
        return await self._list(stmt, limit, offset)

    async def list_all(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        stmt = select(OrderModel)
        if status is not None:
            stmt = stmt.where(OrderModel.status == status)
        return await self._list(stmt, limit, offset)

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(OrderModel.id)))
            return result.scalar_one()

    async def _list(self, stmt, limit: int, offset: int) -> list[Order]:
        stmt = stmt.order_by(OrderModel.created_at.desc()).limit(limit).offset(offset)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]


async def _lock_row(session: AsyncSession, order_id: uuid.UUID) -> Optional[OrderModel]:
    # FOR UPDATE holds the row until commit on PostgreSQL; SQLite omits it
    result = await session.execute(
        select(OrderModel).where(OrderModel.id == order_id).with_for_update()
    )
    return result.scalar_one_or_none()


def _check_version(order_id: uuid.UUID, expected: int, stored: int) -> None:
    if expected != stored:
        logger.warning(
            "Stale order write refused",
            order_id=str(order_id),
            expected_version=expected,
            stored_version=stored,
        )
        raise ConcurrentModificationError(order_id, expected, stored)


def _to_domain(row: OrderModel) -> Order:
    order = Order(
        id=row.id,
        user_id=row.user_id,
        shipping_address=row.shipping_address,
        payment_method=row.payment_method,
        status=row.status,
        payment_status=row.payment_status,
        transaction_id=row.transaction_id,
        total_amount=Decimal(row.total_amount),
        cancellation_reason=row.cancellation_reason,
        confirmed_at=row.confirmed_at,
        paid_at=row.paid_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        cancelled_at=row.cancelled_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )
    for item_row in row.items:
        order.items[item_row.id] = OrderItem(
            id=item_row.id,
            order_id=row.id,
            variant_id=item_row.variant_id,
            quantity=item_row.quantity,
            unit_price=Decimal(item_row.unit_price),
            sku=item_row.sku,
            product_name=item_row.product_name,
            color=item_row.color,
            size=item_row.size,
        )
    order.status_history = [
        StatusChange(
            from_status=entry.from_status,
            to_status=entry.to_status,
            changed_at=entry.changed_at,
            changed_by=entry.changed_by,
            reason=entry.reason,
        )
        for entry in row.status_history
    ]
    return order


def _apply_to_row(order: Order, row: OrderModel) -> None:
    row.status = order.status
    row.payment_status = order.payment_status
    row.transaction_id = order.transaction_id
    row.total_amount = order.total_amount
    row.shipping_address = order.shipping_address
    row.payment_method = order.payment_method
    row.cancellation_reason = order.cancellation_reason
    row.confirmed_at = order.confirmed_at
    row.paid_at = order.paid_at
    row.shipped_at = order.shipped_at
    row.delivered_at = order.delivered_at
    row.cancelled_at = order.cancelled_at
    row.updated_at = order.updated_at

    # Lines missing from the aggregate become orphans and are deleted.
    existing = {item.id: item for item in row.items}
    items = []
    for position, item in enumerate(order.items.values()):
        item_row = existing.get(item.id) or OrderItemModel(id=item.id)
        item_row.position = position
        item_row.variant_id = item.variant_id
        item_row.quantity = item.quantity
        item_row.unit_price = item.unit_price
        item_row.sku = item.sku
        item_row.product_name = item.product_name
        item_row.color = item.color
        item_row.size = item.size
        items.append(item_row)
    row.items = items

    # History is append-only.
    recorded = len(row.status_history)
    for sequence, change in enumerate(order.status_history[recorded:], start=recorded):
        row.status_history.append(
            OrderStatusHistory(
                sequence=sequence,
                from_status=change.from_status,
                to_status=change.to_status,
                changed_at=change.changed_at,
                changed_by=change.changed_by,
                reason=change.reason,
            )
        )
