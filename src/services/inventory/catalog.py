"""
Variant storage for the inventory ledger.

Defines the ``VariantRecord`` snapshot handed to callers and two repository
implementations: an in-memory one that serialises each variant behind its own
asyncio lock, and a SQLAlchemy one that performs the stock check and the
decrement in a single conditional UPDATE.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.locks import KeyedLock
from src.core.logging import get_logger
from src.database.models.catalog import ProductVariant

logger = get_logger(__name__)


@dataclass(frozen=True)
class VariantRecord:
    """Point-in-time view of a catalog variant."""

    variant_id: uuid.UUID
    sku: str
    price: Decimal
    stock: int
    active: bool = True
    product_name: str = ""
    color: Optional[str] = None
    size: Optional[str] = None


class VariantRepository(ABC):
    """Storage contract for variant records.

    ``decrement_if_available`` must check ``active`` and ``stock >= quantity``
    and apply the decrement as one indivisible step per variant.
    """

    @abstractmethod
    async def get(self, variant_id: uuid.UUID) -> Optional[VariantRecord]:
        """Return the current record, or None if the variant is unknown."""

    @abstractmethod
    async def upsert(self, record: VariantRecord) -> VariantRecord:
        """Insert or replace a variant pushed from the catalog."""

    @abstractmethod
    async def decrement_if_available(
        self, variant_id: uuid.UUID, quantity: int
    ) -> Optional[VariantRecord]:
        """Take ``quantity`` units if the variant is active and has them.

        Returns:
            The post-decrement record, or None if nothing was taken
        """

    @abstractmethod
    async def increment(self, variant_id: uuid.UUID, quantity: int) -> Optional[int]:
        """Return ``quantity`` units; returns the new level or None if unknown."""


class InMemoryVariantRepository(VariantRepository):
    """Process-local variant store guarded by per-variant locks."""

    def __init__(self, records: Optional[list[VariantRecord]] = None):
        self._records: dict[uuid.UUID, VariantRecord] = {}
        self._locks = KeyedLock()
        for record in records or []:
            self._records[record.variant_id] = record

    async def get(self, variant_id: uuid.UUID) -> Optional[VariantRecord]:
        return self._records.get(variant_id)

    async def upsert(self, record: VariantRecord) -> VariantRecord:
        async with self._locks.hold(record.variant_id):
            self._records[record.variant_id] = record
        return record

    async def decrement_if_available(
        self, variant_id: uuid.UUID, quantity: int
    ) -> Optional[VariantRecord]:
        async with self._locks.hold(variant_id):
            record = self._records.get(variant_id)
            if record is None or not record.active or record.stock < quantity:
                return None
            updated = replace(record, stock=record.stock - quantity)
            self._records[variant_id] = updated
            return updated

    async def increment(self, variant_id: uuid.UUID, quantity: int) -> Optional[int]:
        async with self._locks.hold(variant_id):
            record = self._records.get(variant_id)
            if record is None:
                return None
            updated = replace(record, stock=record.stock + quantity)
            self._records[variant_id] = updated
            return updated.stock


_VARIANT_COLUMNS = (
    ProductVariant.id,
    ProductVariant.sku,
    ProductVariant.product_name,
    ProductVariant.price,
    ProductVariant.stock,
    ProductVariant.active,
    ProductVariant.color,
    ProductVariant.size,
)


def _record_from_row(row) -> VariantRecord:
    return VariantRecord(
        variant_id=row.id,
        sku=row.sku,
        product_name=row.product_name,
        price=Decimal(row.price),
        stock=row.stock,
        active=row.active,
        color=row.color,
        size=row.size,
    )


class SqlVariantRepository(VariantRepository):
    """
    Variant store backed by the ``product_variants`` table.

    Each call runs in its own short transaction. Stock changes are single
    ``UPDATE ... RETURNING`` statements, so the database row lock is what
    makes the check and the decrement atomic.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, variant_id: uuid.UUID) -> Optional[VariantRecord]:
        stmt = select(*_VARIANT_COLUMNS).where(ProductVariant.id == variant_id)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).one_or_none()
        return _record_from_row(row) if row is not None else None

    async def upsert(self, record: VariantRecord) -> VariantRecord:
        async with self._session_factory.begin() as session:
            variant = await session.get(ProductVariant, record.variant_id)
            if variant is None:
                variant = ProductVariant(id=record.variant_id)
                session.add(variant)
            variant.sku = record.sku
            variant.product_name = record.product_name
            variant.price = record.price
            variant.stock = record.stock
            variant.active = record.active
            variant.color = record.color
            variant.size = record.size

        logger.info(
            "Variant upserted",
            variant_id=str(record.variant_id),
            sku=record.sku,
            stock=record.stock,
            active=record.active,
        )
        return record

    async def decrement_if_available(
        self, variant_id: uuid.UUID, quantity: int
    ) -> Optional[VariantRecord]:
        stmt = (
            update(ProductVariant)
            .where(
                ProductVariant.id == variant_id,
                ProductVariant.active.is_(True),
                ProductVariant.stock >= quantity,
            )
            .values(stock=ProductVariant.stock - quantity)
            .returning(*_VARIANT_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory.begin() as session:
            row = (await session.execute(stmt)).one_or_none()
        return _record_from_row(row) if row is not None else None

    async def increment(self, variant_id: uuid.UUID, quantity: int) -> Optional[int]:
        stmt = (
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=ProductVariant.stock + quantity)
            .returning(ProductVariant.stock)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory.begin() as session:
            new_stock = (await session.execute(stmt)).scalar_one_or_none()
        return new_stock
