"""
Pytest configuration and shared test fixtures.

This module provides the in-memory ledger, repositories and coordinator used
by most tests, a SQLite-backed session factory for the SQL repositories, and
HTTP clients wired to the FastAPI application.
"""

import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Generator, Optional

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_STORAGE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.connection import create_engine, create_session_factory, create_tables
from src.main import app
from src.services.inventory.catalog import InMemoryVariantRepository, VariantRecord
from src.services.inventory.ledger import InventoryLedger
from src.services.orders.coordinator import Caller, OrderCoordinator
from src.services.orders.repository import InMemoryOrderRepository
from src.services.payments.service import PaymentEventService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_variant(
    stock: int = 10,
    price: str = "10.00",
    active: bool = True,
    sku: Optional[str] = None,
    variant_id: Optional[uuid.UUID] = None,
) -> VariantRecord:
    """Build a variant record with sensible defaults."""
    variant_id = variant_id or uuid.uuid4()
    return VariantRecord(
        variant_id=variant_id,
        sku=sku or f"SKU-{variant_id.hex[:8].upper()}",
        product_name="Linen Shirt",
        price=Decimal(price),
        stock=stock,
        active=active,
        color="Navy",
        size="M",
    )


@pytest.fixture
def variant_repository() -> InMemoryVariantRepository:
    return InMemoryVariantRepository()


@pytest.fixture
def ledger(variant_repository: InMemoryVariantRepository) -> InventoryLedger:
    return InventoryLedger(variant_repository)


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def coordinator(
    ledger: InventoryLedger, order_repository: InMemoryOrderRepository
) -> OrderCoordinator:
    return OrderCoordinator(ledger, order_repository)


@pytest.fixture
def add_variant(variant_repository: InMemoryVariantRepository):
    """
    Store a variant in the in-memory catalog.

    Example:
        async def test_reserve(add_variant, ledger):
            variant = await add_variant(stock=5)
            await ledger.reserve_stock(variant.variant_id, 2)
    """

    async def _add(**kwargs) -> VariantRecord:
        return await variant_repository.upsert(make_variant(**kwargs))

    return _add


@pytest.fixture
def customer() -> Caller:
    return Caller(user_id=uuid.uuid4())


@pytest.fixture
def other_customer() -> Caller:
    return Caller(user_id=uuid.uuid4())


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id=uuid.uuid4(), is_admin=True)


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    SQLite in-memory database with every table created.

    A StaticPool keeps the single connection, and so the database, alive
    for the duration of the test.
    """
    engine = create_engine(TEST_DATABASE_URL)
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def wired_app(coordinator: OrderCoordinator):
    """Attach the test coordinator and payment service to the application."""
    app.state.order_coordinator = coordinator
    app.state.payment_service = PaymentEventService(coordinator)
    yield app
    del app.state.order_coordinator
    del app.state.payment_service


@pytest.fixture
async def async_client(wired_app) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    Example:
        async def test_health_endpoint_async(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=wired_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Synchronous client that runs the application lifespan.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def variant_factory():
    return make_variant


@pytest.fixture
def headers_for():
    """Identity headers the upstream gateway would forward for a caller."""

    def _headers(caller: Caller) -> dict[str, str]:
        return {
            "X-User-Id": str(caller.user_id),
            "X-User-Role": "admin" if caller.is_admin else "customer",
        }

    return _headers
