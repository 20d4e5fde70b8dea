"""
SQLAlchemy declarative base and the mixins shared by the engine's tables.

Column types are the dialect-neutral ones so the same models run on
PostgreSQL in production and on SQLite in the test-suite.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base with async attribute loading."""

    __abstract__ = True

    def __repr__(self) -> str:
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name, None)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"


class TimestampMixin:
    """
    Adds created_at and updated_at columns.

    The repositories copy both values from the order aggregate, so the
    server defaults only cover rows written by other means, such as catalog
    pushes and manual fixes.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            comment="Timestamp when record was last updated",
        )


class UUIDMixin:
    """UUID primary key; the domain layer normally supplies the value."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            comment="Unique identifier for the record",
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base for tables keyed by a UUID and carrying timestamps.

    Example:
        class ProductVariant(BaseModel):
            __tablename__ = "product_variants"

            sku: Mapped[str] = mapped_column(String(60), unique=True)
    """

    __abstract__ = True
