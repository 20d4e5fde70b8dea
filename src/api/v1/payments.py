"""
Payment gateway webhook endpoint.

The gateway reports payment outcomes asynchronously; each event is applied
to its order through the payment event service.
"""

from fastapi import APIRouter, status

from src.api.deps import PaymentEvents
from src.core.logging import get_logger
from src.schemas.payments import PaymentEvent, PaymentEventResult

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/webhook",
    response_model=PaymentEventResult,
    status_code=status.HTTP_200_OK,
    summary="Handle payment gateway webhook",
)
async def handle_webhook(
    event: PaymentEvent,
    payment_service: PaymentEvents,
) -> PaymentEventResult:
    logger.info(
        "Payment webhook received",
        event_id=event.id,
        event_type=event.type,
    )
    return await payment_service.handle_event(event)
