"""
Inventory ledger for product variants.

This module implements the InventoryLedger, the only component allowed to
change variant stock. Reservations are immediate decrements of the variant's
free stock; releases put units back. The ledger knows nothing about orders:
the order coordinator decides when to reserve and when to release.
"""

import uuid
from typing import Optional

from src.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    OutOfStockError,
    VariantUnavailableError,
)
from src.core.logging import get_logger
from src.services.inventory.catalog import VariantRecord, VariantRepository

logger = get_logger(__name__)


def _require_positive(quantity: int, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError(
            f"{field} must be an integer", field=field, value=repr(quantity)
        )
    if quantity < 1:
        raise InvalidArgumentError(
            f"{field} must be at least 1", field=field, value=quantity
        )


class InventoryLedger:
    """
    Stock authority for every product variant.

    All stock mutations go through the variant repository's atomic
    primitives, so two reservations racing for the last units of a variant
    can never both succeed.
    """

    def __init__(self, repository: VariantRepository):
        """
        Initialize inventory ledger.

        Args:
            repository: Variant storage backend
        """
        self._repository = repository

    @property
    def repository(self) -> VariantRepository:
        return self._repository

    async def get_variant(self, variant_id: uuid.UUID) -> VariantRecord:
        """
        Get a snapshot of a variant.

        Raises:
            NotFoundError: If the variant does not exist
        """
        record = await self._repository.get(variant_id)
        if record is None:
            raise NotFoundError("Product variant", variant_id)
        return record

    async def get_stock(self, variant_id: uuid.UUID) -> int:
        record = await self.get_variant(variant_id)
        return record.stock

    async def has_stock(self, variant_id: uuid.UUID, quantity: int) -> bool:
        """
        Check whether ``quantity`` units are free right now.

        Unknown variants report False. The answer may be stale by the time
        the caller acts on it; only ``reserve_stock`` is authoritative.

        Raises:
            InvalidArgumentError: If quantity is less than 1
        """
        _require_positive(quantity)
        record = await self._repository.get(variant_id)
        return record is not None and record.stock >= quantity

    async def is_variant_available(self, variant_id: uuid.UUID) -> bool:
        """Check that the variant exists, is active and has stock."""
        record = await self._repository.get(variant_id)
        return record is not None and record.active and record.stock > 0

    async def validate_stock(self, variant_id: uuid.UUID, quantity: int) -> VariantRecord:
        """
        Validate that a reservation of ``quantity`` units would succeed now.

        Args:
            variant_id: Variant to check
            quantity: Units wanted, at least 1

        Returns:
            Current variant snapshot

        Raises:
            InvalidArgumentError: If quantity is less than 1
            NotFoundError: If the variant does not exist
            VariantUnavailableError: If the variant is inactive
            OutOfStockError: If fewer than ``quantity`` units are free
        """
        _require_positive(quantity)
        record = await self.get_variant(variant_id)
        self._check_record(record, quantity)
        return record

    async def reserve_stock(self, variant_id: uuid.UUID, quantity: int) -> VariantRecord:
        """
        Atomically take ``quantity`` units from a variant's free stock.

        Returns:
            The variant snapshot after the decrement, used for price snapshots

        Raises:
            InvalidArgumentError: If quantity is less than 1
            NotFoundError: If the variant does not exist
            VariantUnavailableError: If the variant is inactive
            OutOfStockError: If fewer than ``quantity`` units are free
        """
        _require_positive(quantity)

        record = await self._repository.decrement_if_available(variant_id, quantity)
        if record is None:
            # Classify the refusal from a fresh read.
            current = await self.get_variant(variant_id)
            self._check_record(current, quantity)
            raise OutOfStockError(
                variant_id, quantity, current.stock, sku=current.sku
            )

        logger.info(
            "Stock reserved",
            variant_id=str(variant_id),
            sku=record.sku,
            quantity=quantity,
            remaining=record.stock,
        )
        return record

    async def release_stock(self, variant_id: uuid.UUID, quantity: int) -> int:
        """
        Return ``quantity`` units to a variant's free stock.

        Inactive variants still accept releases.

        Returns:
            New stock level

        Raises:
            InvalidArgumentError: If quantity is less than 1
            NotFoundError: If the variant does not exist
        """
        _require_positive(quantity)

        new_stock = await self._repository.increment(variant_id, quantity)
        if new_stock is None:
            raise NotFoundError("Product variant", variant_id)

        logger.info(
            "Stock released",
            variant_id=str(variant_id),
            quantity=quantity,
            new_stock=new_stock,
        )
        return new_stock

    async def adjust_stock(
        self,
        variant_id: uuid.UUID,
        old_quantity: int,
        new_quantity: int,
    ) -> Optional[VariantRecord]:
        """
        Move stock by the difference between two line quantities.

        A positive delta validates and reserves the delta, a negative delta
        releases it, and no change is a no-op.

        Returns:
            The post-reservation snapshot when stock was reserved, else None
        """
        delta = new_quantity - old_quantity
        if delta > 0:
            await self.validate_stock(variant_id, delta)
            return await self.reserve_stock(variant_id, delta)
        if delta < 0:
            await self.release_stock(variant_id, -delta)
        return None

    async def upsert_variant(self, record: VariantRecord) -> VariantRecord:
        """Store a variant pushed from the catalog."""
        if record.stock < 0:
            raise InvalidArgumentError(
                "stock must not be negative", field="stock", value=record.stock
            )
        if record.price < 0:
            raise InvalidArgumentError(
                "price must not be negative", field="price", value=str(record.price)
            )
        return await self._repository.upsert(record)

    @staticmethod
    def _check_record(record: VariantRecord, quantity: int) -> None:
        if not record.active:
            raise VariantUnavailableError(record.variant_id, sku=record.sku)
        if record.stock < quantity:
            raise OutOfStockError(
                record.variant_id, quantity, record.stock, sku=record.sku
            )
