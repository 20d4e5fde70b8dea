"""
Order management API endpoints.

This module implements the FastAPI router for the customer-facing order
lifecycle: placing orders, changing their items, confirming, cancelling and
deleting them, and reading them back. Expected failures raised by the order
coordinator are rendered by the application's exception handlers.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import Coordinator, CurrentCaller
from src.core.logging import get_logger
from src.schemas.orders import (
    OrderCancelRequest,
    OrderCreateRequest,
    OrderItemQuantityUpdate,
    OrderItemRequest,
    OrderListResponse,
    OrderResponse,
    OrderSummary,
    OrderTotalResponse,
    StockCheckResponse,
)
from src.services.orders.coordinator import OrderLine

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="Create a PENDING order, reserving stock for every line",
)
async def create_order(
    request: OrderCreateRequest,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    logger.info(
        "Creating order",
        user_id=str(caller.user_id),
        item_count=len(request.items),
    )
    order = await coordinator.create_order(
        caller,
        [OrderLine(item.variant_id, item.quantity) for item in request.items],
        request.shipping_address,
        request.payment_method,
    )
    return OrderResponse.from_order(order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
)
async def list_my_orders(
    caller: CurrentCaller,
    coordinator: Coordinator,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> OrderListResponse:
    orders = await coordinator.list_orders_for_user(caller, limit, offset)
    return OrderListResponse(
        orders=[OrderSummary.from_order(o) for o in orders],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/check-stock",
    response_model=StockCheckResponse,
    summary="Check variant stock",
    description="Advisory check; a later reservation may still fail",
)
async def check_stock(
    caller: CurrentCaller,
    coordinator: Coordinator,
    variant_id: UUID = Query(...),
    quantity: int = Query(1, ge=1),
) -> StockCheckResponse:
    return StockCheckResponse(
        variant_id=variant_id,
        quantity=quantity,
        in_stock=await coordinator.check_stock(variant_id, quantity),
        available=await coordinator.is_variant_available(variant_id),
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.get_order(caller, order_id)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/items",
    response_model=OrderResponse,
    summary="Add item to order",
)
async def add_item(
    order_id: UUID,
    request: OrderItemRequest,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.add_item(
        caller, order_id, request.variant_id, request.quantity
    )
    return OrderResponse.from_order(order)


@router.patch(
    "/{order_id}/items/{item_id}",
    response_model=OrderResponse,
    summary="Change item quantity",
    description="A quantity of zero removes the item",
)
async def update_item_quantity(
    order_id: UUID,
    item_id: UUID,
    request: OrderItemQuantityUpdate,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.update_item_quantity(
        caller, order_id, item_id, request.quantity
    )
    return OrderResponse.from_order(order)


@router.delete(
    "/{order_id}/items/{item_id}",
    response_model=OrderResponse,
    summary="Remove item from order",
)
async def remove_item(
    order_id: UUID,
    item_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.remove_item(caller, order_id, item_id)
    return OrderResponse.from_order(order)


@router.delete(
    "/{order_id}/items",
    response_model=OrderResponse,
    summary="Remove every item from order",
)
async def clear_items(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.clear_items(caller, order_id)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/confirm",
    response_model=OrderResponse,
    summary="Confirm order",
)
async def confirm_order(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderResponse:
    order = await coordinator.confirm_order(caller, order_id)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancel the order and return its stock",
)
async def cancel_order(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
    request: Optional[OrderCancelRequest] = None,
) -> OrderResponse:
    reason = request.reason if request is not None else None
    logger.info(
        "Cancelling order",
        order_id=str(order_id),
        user_id=str(caller.user_id),
        reason=reason,
    )
    order = await coordinator.cancel_order(caller, order_id, reason)
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/recalculate",
    response_model=OrderTotalResponse,
    summary="Recalculate order total",
)
async def recalculate_total(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> OrderTotalResponse:
    total = await coordinator.recalculate_total(caller, order_id)
    return OrderTotalResponse(order_id=order_id, total_amount=total)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete order",
    description="Delete a non-terminal order and return its stock",
)
async def delete_order(
    order_id: UUID,
    caller: CurrentCaller,
    coordinator: Coordinator,
) -> None:
    await coordinator.delete_order(caller, order_id)
