"""
Test suite for the inventory ledger.

Tests cover stock checks, validation order, atomic reservation under
concurrency, releases, stock adjustment and catalog pushes.
"""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    OutOfStockError,
    VariantUnavailableError,
)
from src.services.inventory.catalog import InMemoryVariantRepository
from src.services.inventory.ledger import InventoryLedger


# ============================================================================
# Stock queries
# ============================================================================


class TestStockQueries:
    """Test read-only stock checks."""

    async def test_has_stock_true_when_enough(self, ledger, add_variant):
        variant = await add_variant(stock=5)

        assert await ledger.has_stock(variant.variant_id, 5) is True
        assert await ledger.has_stock(variant.variant_id, 6) is False

    async def test_has_stock_false_for_unknown_variant(self, ledger):
        assert await ledger.has_stock(uuid.uuid4(), 1) is False

    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_has_stock_rejects_non_positive_quantity(
        self, ledger, add_variant, quantity
    ):
        variant = await add_variant(stock=5)

        with pytest.raises(InvalidArgumentError):
            await ledger.has_stock(variant.variant_id, quantity)

    async def test_get_variant_unknown_raises_not_found(self, ledger):
        with pytest.raises(NotFoundError) as exc_info:
            await ledger.get_variant(uuid.uuid4())

        assert exc_info.value.code == "NOT_FOUND"

    async def test_get_stock(self, ledger, add_variant):
        variant = await add_variant(stock=7)

        assert await ledger.get_stock(variant.variant_id) == 7

    async def test_is_variant_available(self, ledger, add_variant):
        in_stock = await add_variant(stock=1)
        sold_out = await add_variant(stock=0)
        inactive = await add_variant(stock=3, active=False)

        assert await ledger.is_variant_available(in_stock.variant_id) is True
        assert await ledger.is_variant_available(sold_out.variant_id) is False
        assert await ledger.is_variant_available(inactive.variant_id) is False
        assert await ledger.is_variant_available(uuid.uuid4()) is False


# ============================================================================
# Validation
# ============================================================================


class TestValidateStock:
    """Test validate_stock error classification."""

    async def test_validate_stock_returns_snapshot(self, ledger, add_variant):
        variant = await add_variant(stock=3, price="4.50")

        record = await ledger.validate_stock(variant.variant_id, 3)

        assert record.price == Decimal("4.50")
        assert record.stock == 3

    async def test_validate_unknown_variant(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.validate_stock(uuid.uuid4(), 1)

    async def test_inactive_reported_before_stock(self, ledger, add_variant):
        variant = await add_variant(stock=0, active=False)

        with pytest.raises(VariantUnavailableError):
            await ledger.validate_stock(variant.variant_id, 1)

    async def test_validate_insufficient_stock(self, ledger, add_variant):
        variant = await add_variant(stock=2)

        with pytest.raises(OutOfStockError) as exc_info:
            await ledger.validate_stock(variant.variant_id, 3)

        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert exc_info.value.context["variant_id"] == str(variant.variant_id)


# ============================================================================
# Reservation and release
# ============================================================================


class TestReserveStock:
    """Test atomic reservations."""

    async def test_reserve_decrements_stock(self, ledger, add_variant):
        variant = await add_variant(stock=10)

        record = await ledger.reserve_stock(variant.variant_id, 4)

        assert record.stock == 6
        assert await ledger.get_stock(variant.variant_id) == 6

    async def test_reserve_exact_stock_reaches_zero(self, ledger, add_variant):
        variant = await add_variant(stock=3)

        await ledger.reserve_stock(variant.variant_id, 3)

        assert await ledger.get_stock(variant.variant_id) == 0

    async def test_reserve_insufficient_leaves_stock_untouched(
        self, ledger, add_variant
    ):
        variant = await add_variant(stock=2)

        with pytest.raises(OutOfStockError):
            await ledger.reserve_stock(variant.variant_id, 3)

        assert await ledger.get_stock(variant.variant_id) == 2

    async def test_reserve_inactive_variant(self, ledger, add_variant):
        variant = await add_variant(stock=5, active=False)

        with pytest.raises(VariantUnavailableError):
            await ledger.reserve_stock(variant.variant_id, 1)

        assert await ledger.get_stock(variant.variant_id) == 5

    async def test_reserve_unknown_variant(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.reserve_stock(uuid.uuid4(), 1)

    async def test_reserve_rejects_zero_quantity(self, ledger, add_variant):
        variant = await add_variant(stock=5)

        with pytest.raises(InvalidArgumentError):
            await ledger.reserve_stock(variant.variant_id, 0)

    async def test_concurrent_reservations_never_oversell(self, ledger, add_variant):
        """Two reservations of 3 against stock 5: exactly one wins."""
        variant = await add_variant(stock=5)

        results = await asyncio.gather(
            ledger.reserve_stock(variant.variant_id, 3),
            ledger.reserve_stock(variant.variant_id, 3),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], OutOfStockError)
        assert await ledger.get_stock(variant.variant_id) == 2

    async def test_many_concurrent_single_unit_reservations(
        self, ledger, add_variant
    ):
        variant = await add_variant(stock=10)

        results = await asyncio.gather(
            *(ledger.reserve_stock(variant.variant_id, 1) for _ in range(25)),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 10
        assert await ledger.get_stock(variant.variant_id) == 0


class TestReleaseStock:
    """Test releases."""

    async def test_release_returns_new_level(self, ledger, add_variant):
        variant = await add_variant(stock=2)

        assert await ledger.release_stock(variant.variant_id, 3) == 5

    async def test_release_on_inactive_variant_is_allowed(self, ledger, add_variant):
        variant = await add_variant(stock=0, active=False)

        assert await ledger.release_stock(variant.variant_id, 2) == 2

    async def test_release_unknown_variant(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.release_stock(uuid.uuid4(), 1)

    async def test_reserve_then_release_restores_stock(self, ledger, add_variant):
        variant = await add_variant(stock=8)

        await ledger.reserve_stock(variant.variant_id, 5)
        await ledger.release_stock(variant.variant_id, 5)

        assert await ledger.get_stock(variant.variant_id) == 8


class TestAdjustStock:
    """Test delta-based adjustment."""

    async def test_increase_reserves_delta(self, ledger, add_variant):
        variant = await add_variant(stock=10)

        record = await ledger.adjust_stock(variant.variant_id, 2, 5)

        assert record is not None
        assert await ledger.get_stock(variant.variant_id) == 7

    async def test_decrease_releases_delta(self, ledger, add_variant):
        variant = await add_variant(stock=10)

        result = await ledger.adjust_stock(variant.variant_id, 5, 2)

        assert result is None
        assert await ledger.get_stock(variant.variant_id) == 13

    async def test_no_change_does_not_touch_repository(self):
        repository = AsyncMock(spec=InMemoryVariantRepository)
        ledger = InventoryLedger(repository)

        assert await ledger.adjust_stock(uuid.uuid4(), 3, 3) is None
        repository.decrement_if_available.assert_not_called()
        repository.increment.assert_not_called()

    async def test_increase_beyond_stock_fails(self, ledger, add_variant):
        variant = await add_variant(stock=1)

        with pytest.raises(OutOfStockError):
            await ledger.adjust_stock(variant.variant_id, 1, 3)

        assert await ledger.get_stock(variant.variant_id) == 1


class TestUpsertVariant:
    """Test catalog pushes."""

    async def test_upsert_replaces_record(self, ledger, add_variant, variant_factory):
        variant = await add_variant(stock=1, price="2.00")
        updated = variant_factory(
            stock=9, price="3.00", variant_id=variant.variant_id, sku=variant.sku
        )

        await ledger.upsert_variant(updated)

        record = await ledger.get_variant(variant.variant_id)
        assert record.stock == 9
        assert record.price == Decimal("3.00")

    async def test_upsert_rejects_negative_stock(self, ledger, variant_factory):
        with pytest.raises(InvalidArgumentError):
            await ledger.upsert_variant(variant_factory(stock=-1))
