"""
Product variant model backing the inventory ledger.

Variant rows are owned by catalog management; the engine only ever writes
the ``stock`` column, and only through conditional updates that keep it
non-negative.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel


class ProductVariant(BaseModel):
    """
    Purchasable SKU-level catalog entry with its own price and stock.

    Attributes:
        id: Variant identifier (UUID)
        sku: Unique stock keeping unit
        product_name: Name of the parent product, kept for order snapshots
        color: Display color
        size: Display size
        price: Current catalog unit price
        stock: Units free to sell, never negative
        active: Whether new reservations are accepted
    """

    __tablename__ = "product_variants"

    sku: Mapped[str] = mapped_column(
        String(60),
        nullable=False,
        unique=True,
        comment="Stock keeping unit",
    )

    product_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        comment="Parent product name",
    )

    color: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    size: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Current catalog unit price",
    )

    stock: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units free to sell",
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the variant accepts new reservations",
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_product_variants_price_non_negative"),
        {"comment": "Catalog variants and their free stock"},
    )

    def __repr__(self) -> str:
        return (
            f"<ProductVariant(id={self.id}, sku={self.sku!r}, "
            f"stock={self.stock}, active={self.active})>"
        )
