"""
FastAPI dependencies for caller identity and service access.

Authentication happens upstream: the gateway in front of this service
forwards the authenticated user as ``X-User-Id`` and their role as
``X-User-Role``. This module turns those headers into a ``Caller`` and hands
out the services wired on ``app.state`` during startup.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from src.core.logging import get_logger, set_user_id
from src.services.inventory.ledger import InventoryLedger
from src.services.orders.coordinator import Caller, OrderCoordinator
from src.services.payments.service import PaymentEventService

logger = get_logger(__name__)

ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"
_KNOWN_ROLES = frozenset({ADMIN_ROLE, CUSTOMER_ROLE})


async def get_caller(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Caller:
    """
    Build the caller from the forwarded identity headers.

    Raises:
        HTTPException: 401 if the identity is missing or malformed
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate caller identity",
    )

    if not x_user_id:
        logger.warning("Authentication failed: No user identity forwarded")
        raise credentials_exception

    try:
        user_id = UUID(x_user_id)
    except ValueError:
        logger.warning(
            "Authentication failed: Invalid user ID format",
            user_id=x_user_id,
        )
        raise credentials_exception from None

    role = (x_user_role or CUSTOMER_ROLE).strip().lower()
    if role not in _KNOWN_ROLES:
        logger.warning(
            "Authentication failed: Unknown role",
            user_id=x_user_id,
            role=role,
        )
        raise credentials_exception

    set_user_id(str(user_id))
    return Caller(user_id=user_id, is_admin=role == ADMIN_ROLE)


async def get_current_admin(
    caller: Annotated[Caller, Depends(get_caller)],
) -> Caller:
    """
    Dependency for endpoints requiring admin access.

    Raises:
        HTTPException: 403 if the caller is not an administrator
    """
    if not caller.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=str(caller.user_id),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return caller


def get_order_coordinator(request: Request) -> OrderCoordinator:
    return request.app.state.order_coordinator


def get_inventory_ledger(request: Request) -> InventoryLedger:
    return request.app.state.order_coordinator.ledger


def get_payment_service(request: Request) -> PaymentEventService:
    return request.app.state.payment_service


CurrentCaller = Annotated[Caller, Depends(get_caller)]
CurrentAdmin = Annotated[Caller, Depends(get_current_admin)]
Coordinator = Annotated[OrderCoordinator, Depends(get_order_coordinator)]
Ledger = Annotated[InventoryLedger, Depends(get_inventory_ledger)]
PaymentEvents = Annotated[PaymentEventService, Depends(get_payment_service)]
