"""
API v1 package initialization.

This module collects the v1 routers of the order reservation engine.
"""

from fastapi import APIRouter

from src.api.v1.admin import router as admin_router
from src.api.v1.inventory import router as inventory_router
from src.api.v1.orders import router as orders_router
from src.api.v1.payments import router as payments_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(admin_router)
api_router.include_router(inventory_router)
api_router.include_router(payments_router)

__all__ = [
    "api_router",
    "admin_router",
    "inventory_router",
    "orders_router",
    "payments_router",
]
