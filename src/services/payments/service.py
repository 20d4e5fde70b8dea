"""
Payment event service translating gateway callbacks into order workflows.

This module implements the PaymentEventService, the adapter between the
payment gateway's asynchronous notifications and the order coordinator. It
never talks to the gateway itself; it only reacts to "payment succeeded" and
"payment failed" events on behalf of the system caller.
"""

from typing import Any, Optional
from uuid import UUID

from src.core.logging import get_logger
from src.schemas.payments import (
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    PaymentEvent,
    PaymentEventResult,
)
from src.services.orders.coordinator import Caller, OrderCoordinator

logger = get_logger(__name__)


class PaymentEventService:
    """
    Service for handling payment gateway events.

    Repeated "payment succeeded" events for an order already paid with the
    same transaction are acknowledged without changing the order; the
    coordinator makes that check under the order lock.
    """

    def __init__(self, coordinator: OrderCoordinator):
        """
        Initialize payment event service.

        Args:
            coordinator: Order coordinator used to apply payment outcomes
        """
        self.coordinator = coordinator
        self._caller = Caller.system()

    async def handle_event(self, event: PaymentEvent) -> PaymentEventResult:
        """
        Dispatch a payment event to its handler.

        Args:
            event: Validated gateway event

        Returns:
            Processing result; unknown event types are reported unprocessed

        Raises:
            OrderEngineError: Whatever the order workflow raised
        """
        logger.info(
            "Processing payment event",
            event_id=event.id,
            event_type=event.type,
            order_id=str(event.order_id),
        )

        if event.type == PAYMENT_SUCCEEDED:
            result = await self.handle_payment_succeeded(
                event.order_id, event.transaction_id
            )
        elif event.type == PAYMENT_FAILED:
            result = await self.handle_payment_failed(event.order_id, event.reason)
        else:
            logger.info(
                "Unhandled payment event type",
                event_type=event.type,
                event_id=event.id,
            )
            return PaymentEventResult(
                event_id=event.id,
                event_type=event.type,
                processed=False,
                result={"handled": False},
            )

        logger.info(
            "Payment event processed",
            event_id=event.id,
            event_type=event.type,
            order_id=str(event.order_id),
        )
        return PaymentEventResult(
            event_id=event.id,
            event_type=event.type,
            processed=True,
            result=result,
        )

    async def handle_payment_succeeded(
        self,
        order_id: UUID,
        transaction_id: str,
    ) -> dict[str, Any]:
        """Mark the order as paid unless this transaction was already applied."""
        order, applied = await self.coordinator.record_payment(
            self._caller, order_id, transaction_id
        )
        if not applied:
            return {
                "order_id": str(order_id),
                "status": order.status.value,
                "duplicate": True,
            }
        return {
            "order_id": str(order.id),
            "status": order.status.value,
            "payment_status": order.payment_status.value,
        }

    async def handle_payment_failed(
        self,
        order_id: UUID,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        order = await self.coordinator.mark_payment_failed(
            self._caller, order_id, reason
        )
        return {
            "order_id": str(order.id),
            "status": order.status.value,
            "payment_status": order.payment_status.value,
        }
