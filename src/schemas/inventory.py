"""
Inventory schemas for catalog pushes and variant lookups.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.services.inventory.catalog import VariantRecord


class VariantUpsertRequest(BaseModel):
    """Variant record pushed by the catalog."""

    model_config = ConfigDict(validate_assignment=True)

    sku: str = Field(
        ...,
        min_length=1,
        max_length=60,
        description="Stock keeping unit",
    )
    product_name: str = Field(
        default="",
        max_length=200,
        description="Parent product name",
    )
    price: Decimal = Field(
        ...,
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Unit price",
    )
    stock: int = Field(
        ...,
        ge=0,
        description="Units free to sell",
    )
    active: bool = Field(
        default=True,
        description="Whether the variant accepts new reservations",
    )
    color: Optional[str] = Field(None, max_length=30)
    size: Optional[str] = Field(None, max_length=10)

    @field_validator("sku")
    @classmethod
    def normalize_sku(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("SKU must not be blank")
        return v

    def to_record(self, variant_id: UUID) -> VariantRecord:
        return VariantRecord(
            variant_id=variant_id,
            sku=self.sku,
            product_name=self.product_name,
            price=self.price,
            stock=self.stock,
            active=self.active,
            color=self.color,
            size=self.size,
        )


class VariantResponse(BaseModel):
    variant_id: UUID
    sku: str
    product_name: str
    price: Decimal
    stock: int
    active: bool
    color: Optional[str] = None
    size: Optional[str] = None

    @classmethod
    def from_record(cls, record: VariantRecord) -> "VariantResponse":
        return cls(
            variant_id=record.variant_id,
            sku=record.sku,
            product_name=record.product_name,
            price=record.price,
            stock=record.stock,
            active=record.active,
            color=record.color,
            size=record.size,
        )
