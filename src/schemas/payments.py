"""
Payment gateway callback schemas.

This module defines Pydantic schemas for the asynchronous payment events the
gateway posts to the webhook endpoint and the result returned to it.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"


class PaymentEvent(BaseModel):
    """Payment gateway callback event."""

    id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Gateway event ID",
    )
    type: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Event type (e.g., 'payment.succeeded')",
    )
    order_id: UUID = Field(
        ...,
        description="Order the payment belongs to",
    )
    transaction_id: Optional[str] = Field(
        None,
        max_length=255,
        description="Gateway transaction reference",
    )
    reason: Optional[str] = Field(
        None,
        max_length=500,
        description="Failure reason reported by the gateway",
    )
    created: Optional[int] = Field(
        None,
        gt=0,
        description="Unix timestamp of event creation",
    )

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def validate_transaction_reference(self) -> "PaymentEvent":
        """Successful payments must name the gateway transaction."""
        if self.type == PAYMENT_SUCCEEDED and not (
            self.transaction_id and self.transaction_id.strip()
        ):
            raise ValueError("transaction_id is required for payment.succeeded events")
        return self


class PaymentEventResult(BaseModel):
    """Outcome of processing a payment event."""

    event_id: str
    event_type: str
    processed: bool
    result: dict[str, Any] = Field(default_factory=dict)
