"""
Administrative order endpoints.

Status changes made here go through the same coordinator workflows as every
other caller, so stock is released on cancellation no matter who cancels.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import Coordinator, CurrentAdmin
from src.core.logging import get_logger
from src.schemas.orders import (
    MarkPaidRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderSummary,
)
from src.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
)
async def list_all_orders(
    admin: CurrentAdmin,
    coordinator: Coordinator,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> OrderListResponse:
    orders = await coordinator.list_all_orders(admin, status_filter, limit, offset)
    return OrderListResponse(
        orders=[OrderSummary.from_order(o) for o in orders],
        limit=limit,
        offset=offset,
    )


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Move an order to a new status through the matching workflow",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdate,
    admin: CurrentAdmin,
    coordinator: Coordinator,
) -> OrderResponse:
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        target_status=request.status.value,
        admin_id=str(admin.user_id),
    )
    order = await coordinator.update_status(
        admin,
        order_id,
        request.status,
        reason=request.reason,
        transaction_id=request.transaction_id,
    )
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/pay",
    response_model=OrderResponse,
    summary="Mark order as paid",
)
async def mark_as_paid(
    order_id: UUID,
    request: MarkPaidRequest,
    admin: CurrentAdmin,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.mark_as_paid(admin, order_id, request.transaction_id)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/ship",
    response_model=OrderResponse,
    summary="Mark order as shipped",
)
async def mark_as_shipped(
    order_id: UUID,
    admin: CurrentAdmin,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.mark_as_shipped(admin, order_id)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/deliver",
    response_model=OrderResponse,
    summary="Mark order as delivered",
)
async def mark_as_delivered(
    order_id: UUID,
    admin: CurrentAdmin,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.mark_as_delivered(admin, order_id)
    return OrderResponse.from_order(order)
