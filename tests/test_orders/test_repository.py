"""
Tests for the order repositories.

The SQL repository runs against SQLite through the ``session_factory``
fixture; the coordinator is exercised on top of it to cover the full
persistence path.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from src.core.exceptions import ConcurrentModificationError, NotFoundError
from src.services.inventory.catalog import SqlVariantRepository
from src.services.inventory.ledger import InventoryLedger
from src.services.orders.aggregate import Order, StatusChange
from src.services.orders.coordinator import OrderCoordinator, OrderLine
from src.services.orders.enums import OrderStatus, PaymentStatus
from src.services.orders.repository import InMemoryOrderRepository, SqlOrderRepository


def new_order(user_id=None) -> Order:
    return Order(
        user_id=user_id or uuid.uuid4(),
        shipping_address="1 Harbour Road, Leith",
        payment_method="card",
    )


@pytest.fixture
def sql_orders(session_factory) -> SqlOrderRepository:
    return SqlOrderRepository(session_factory)


@pytest.fixture
def sql_coordinator(session_factory, sql_orders) -> OrderCoordinator:
    return OrderCoordinator(
        InventoryLedger(SqlVariantRepository(session_factory)), sql_orders
    )


class TestInMemoryOrderRepository:
    """Test copy semantics of the in-memory repository."""

    async def test_get_returns_independent_copy(self, variant_factory):
        repository = InMemoryOrderRepository()
        order = new_order()
        order.add_item(variant_factory(), 1)
        await repository.add(order)

        copy = await repository.get(order.id)
        copy.clear_items()

        stored = await repository.get(order.id)
        assert stored.item_count == 1

    async def test_save_unknown_order(self):
        with pytest.raises(NotFoundError):
            await InMemoryOrderRepository().save(new_order())

    async def test_delete(self):
        repository = InMemoryOrderRepository()
        order = new_order()
        await repository.add(order)

        assert await repository.delete(order.id) is True
        assert await repository.delete(order.id) is False

    async def test_list_newest_first(self):
        repository = InMemoryOrderRepository()
        owner = uuid.uuid4()
        older, newer = new_order(owner), new_order(owner)
        newer.created_at = older.created_at + timedelta(seconds=1)
        await repository.add(older)
        await repository.add(newer)
        await repository.add(new_order())

        listed = await repository.list_for_user(owner)

        assert [o.id for o in listed] == [newer.id, older.id]
        assert await repository.count() == 3

    async def test_stale_copy_refused(self):
        repository = InMemoryOrderRepository()
        order = new_order()
        await repository.add(order)
        first = await repository.get(order.id)
        second = await repository.get(order.id)

        await repository.save(first)

        assert first.version == 1
        with pytest.raises(ConcurrentModificationError):
            await repository.save(second)
        with pytest.raises(ConcurrentModificationError):
            await repository.delete(order.id, expected_version=0)
        assert await repository.delete(order.id, expected_version=1) is True


class TestSqlOrderRepository:
    """Test mapping between the aggregate and the order tables."""

    async def test_add_and_get_roundtrip(self, sql_orders, variant_factory):
        order = new_order()
        first = order.add_item(variant_factory(price="10.00"), 2)
        second = order.add_item(variant_factory(price="5.00"), 1)

        await sql_orders.add(order)
        loaded = await sql_orders.get(order.id)

        assert loaded is not None
        assert loaded.user_id == order.user_id
        assert loaded.status == OrderStatus.PENDING
        assert loaded.payment_status == PaymentStatus.PENDING
        assert loaded.total_amount == Decimal("25.00")
        assert list(loaded.items) == [first.id, second.id]
        assert loaded.items[first.id].unit_price == Decimal("10.00")
        assert loaded.items[first.id].sku == first.sku

    async def test_get_unknown(self, sql_orders):
        assert await sql_orders.get(uuid.uuid4()) is None

    async def test_save_syncs_items(self, sql_orders, variant_factory):
        order = new_order()
        kept = order.add_item(variant_factory(price="10.00"), 1)
        dropped = order.add_item(variant_factory(price="5.00"), 1)
        await sql_orders.add(order)

        order.remove_item(dropped.id)
        order.update_item_quantity(kept.id, 3)
        added = order.add_item(variant_factory(price="1.00"), 4)
        await sql_orders.save(order)

        loaded = await sql_orders.get(order.id)
        assert list(loaded.items) == [kept.id, added.id]
        assert loaded.items[kept.id].quantity == 3
        assert loaded.total_amount == Decimal("34.00")

    async def test_save_appends_history(self, sql_orders, variant_factory):
        order = new_order()
        order.add_item(variant_factory(), 1)
        await sql_orders.add(order)

        order.status = OrderStatus.CREATED
        order.status_history.append(
            StatusChange(OrderStatus.PENDING, OrderStatus.CREATED, reason="ok")
        )
        await sql_orders.save(order)
        order.status = OrderStatus.CANCELLED
        order.status_history.append(
            StatusChange(OrderStatus.CREATED, OrderStatus.CANCELLED)
        )
        await sql_orders.save(order)

        loaded = await sql_orders.get(order.id)
        assert loaded.status == OrderStatus.CANCELLED
        assert [c.to_status for c in loaded.status_history] == [
            OrderStatus.CREATED,
            OrderStatus.CANCELLED,
        ]
        assert loaded.status_history[0].reason == "ok"

    async def test_save_unknown_order(self, sql_orders):
        with pytest.raises(NotFoundError):
            await sql_orders.save(new_order())

    async def test_version_checked_on_save_and_delete(self, sql_orders, variant_factory):
        order = new_order()
        order.add_item(variant_factory(), 1)
        await sql_orders.add(order)
        first = await sql_orders.get(order.id)
        second = await sql_orders.get(order.id)

        first.clear_items()
        await sql_orders.save(first)

        assert (await sql_orders.get(order.id)).version == 1
        second.shipping_address = "2 Quay Street, Leith"
        with pytest.raises(ConcurrentModificationError):
            await sql_orders.save(second)
        with pytest.raises(ConcurrentModificationError):
            await sql_orders.delete(order.id, expected_version=0)
        stored = await sql_orders.get(order.id)
        assert stored.item_count == 0
        assert stored.shipping_address == "1 Harbour Road, Leith"

    async def test_delete(self, sql_orders, variant_factory):
        order = new_order()
        order.add_item(variant_factory(), 1)
        await sql_orders.add(order)

        assert await sql_orders.delete(order.id) is True
        assert await sql_orders.get(order.id) is None
        assert await sql_orders.delete(order.id) is False

    async def test_list_and_count(self, sql_orders):
        owner = uuid.uuid4()
        await sql_orders.add(new_order(owner))
        await sql_orders.add(new_order(owner))
        await sql_orders.add(new_order())

        assert len(await sql_orders.list_for_user(owner)) == 2
        assert len(await sql_orders.list_for_user(owner, limit=1)) == 1
        assert len(await sql_orders.list_all()) == 3
        assert await sql_orders.list_all(OrderStatus.PAID) == []
        assert await sql_orders.count() == 3


class TestSqlBackedCoordinator:
    """Test the coordinator end to end on the database backends."""

    async def test_order_lifecycle(
        self, sql_coordinator, variant_factory, customer, admin
    ):
        ledger = sql_coordinator.ledger
        shirt = await ledger.upsert_variant(variant_factory(stock=10, price="10.00"))
        socks = await ledger.upsert_variant(variant_factory(stock=1, price="5.00"))

        order = await sql_coordinator.create_order(
            customer,
            [OrderLine(shirt.variant_id, 2), OrderLine(socks.variant_id, 1)],
            "1 Harbour Road, Leith",
            "card",
        )
        assert order.total_amount == Decimal("25.00")
        assert await ledger.get_stock(socks.variant_id) == 0

        await sql_coordinator.mark_as_paid(admin, order.id, "txn_42")
        order = await sql_coordinator.cancel_order(customer, order.id, "changed mind")

        assert order.status == OrderStatus.CANCELLED
        assert await ledger.get_stock(shirt.variant_id) == 10
        assert await ledger.get_stock(socks.variant_id) == 1

        loaded = await sql_coordinator.get_order(customer, order.id)
        assert len(loaded.status_history) == 3
        assert loaded.transaction_id == "txn_42"
