"""
Database models package initialization.

Models are imported here to ensure they are registered with the Base metadata
for table creation and Alembic migrations.
"""

from src.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from src.database.models.catalog import ProductVariant
from src.database.models.order import Order, OrderItem, OrderStatusHistory

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "ProductVariant",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
]
