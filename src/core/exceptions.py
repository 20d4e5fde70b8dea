"""
Typed failures raised by the inventory ledger and the order workflows.

Every error carries a stable ``code`` and a ``context`` dictionary with the
identifiers and statuses involved, so callers can render a precise message
without re-reading state. None of these are fatal; persistence failures are
left to propagate as whatever the storage layer raised.
"""

from typing import Any, Iterable, Optional


def _status_value(status: Any) -> Optional[str]:
    return getattr(status, "value", status)


class OrderEngineError(Exception):
    """Base exception for expected order and inventory failures."""

    code = "ORDER_ENGINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.context = context


class NotFoundError(OrderEngineError):
    """Raised when an order, order item or variant does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any, **context: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            resource=resource,
            resource_id=str(resource_id),
            **context,
        )
        self.resource = resource
        self.resource_id = resource_id


class OutOfStockError(OrderEngineError):
    """Raised when a variant has fewer free units than requested."""

    code = "OUT_OF_STOCK"

    def __init__(
        self,
        variant_id: Any,
        requested: int,
        available: int,
        sku: Optional[str] = None,
    ):
        label = sku or str(variant_id)
        super().__init__(
            f"Insufficient stock for '{label}'. "
            f"Available: {available}, Requested: {requested}",
            variant_id=str(variant_id),
            sku=sku,
            requested=requested,
            available=available,
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class VariantUnavailableError(OrderEngineError):
    """Raised when a variant is inactive or gone from the catalog."""

    code = "VARIANT_UNAVAILABLE"

    def __init__(self, variant_id: Any, sku: Optional[str] = None, **context: Any):
        label = sku or str(variant_id)
        super().__init__(
            f"Product variant '{label}' is not available for purchase",
            variant_id=str(variant_id),
            sku=sku,
            **context,
        )
        self.variant_id = variant_id


class InvalidArgumentError(OrderEngineError):
    """Raised for bad quantities, blank addresses and similar input."""

    code = "INVALID_ARGUMENT"


class OrderNotModifiableError(OrderEngineError):
    """Raised when an order's status no longer allows changes."""

    code = "ORDER_NOT_MODIFIABLE"

    def __init__(self, order_id: Any, current_status: Any, operation: str):
        super().__init__(
            f"Cannot {operation.replace('_', ' ')} on order {order_id} "
            f"in status {_status_value(current_status)}",
            order_id=str(order_id),
            current_status=_status_value(current_status),
            operation=operation,
        )
        self.order_id = order_id
        self.current_status = current_status
        self.operation = operation


class InvalidTransitionError(OrderEngineError):
    """Raised when a status change is not an edge of the transition table."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        order_id: Any,
        current_status: Any,
        target_status: Any,
        operation: Optional[str] = None,
        allowed: Iterable[Any] = (),
    ):
        super().__init__(
            f"Invalid status transition from {_status_value(current_status)} "
            f"to {_status_value(target_status)} for order {order_id}",
            order_id=str(order_id),
            current_status=_status_value(current_status),
            target_status=_status_value(target_status),
            operation=operation,
            allowed_transitions=sorted(_status_value(s) for s in allowed),
        )
        self.order_id = order_id
        self.current_status = current_status
        self.target_status = target_status
        self.operation = operation


class EmptyOrderError(OrderEngineError):
    """Raised when an order without items is confirmed or paid."""

    code = "EMPTY_ORDER"

    def __init__(self, order_id: Any, current_status: Any, operation: str):
        super().__init__(
            f"Cannot {operation.replace('_', ' ')} order {order_id} with no items",
            order_id=str(order_id),
            current_status=_status_value(current_status),
            operation=operation,
        )
        self.order_id = order_id
        self.current_status = current_status
        self.operation = operation


class OwnershipMismatchError(OrderEngineError):
    """Raised when a non-admin caller touches someone else's order.

    Also raised without an order id for admin-only operations.
    """

    code = "OWNERSHIP_MISMATCH"

    def __init__(self, order_id: Any, user_id: Any, operation: str):
        if order_id is None:
            message = f"Operation {operation} requires an administrator"
        else:
            message = f"Order {order_id} does not belong to this user"
        super().__init__(
            message,
            order_id=str(order_id) if order_id is not None else None,
            user_id=str(user_id) if user_id is not None else None,
            operation=operation,
        )
        self.order_id = order_id
        self.user_id = user_id


class ConcurrentModificationError(OrderEngineError):
    """Raised when an order changed in storage after it was loaded."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, order_id: Any, expected_version: int, stored_version: int):
        super().__init__(
            f"Order {order_id} was modified concurrently; retry the request",
            order_id=str(order_id),
            expected_version=expected_version,
            stored_version=stored_version,
        )
        self.order_id = order_id
        self.expected_version = expected_version
        self.stored_version = stored_version
