"""
ASGI entry point for the order engine.

``create_app`` assembles the FastAPI application: the lifespan builds the
inventory ledger, order coordinator and payment event service for the
configured storage backend and parks them on ``app.state``; engine errors are
rendered as JSON with a status code chosen by error class; every request gets
an ``X-Request-ID`` that is bound to its log lines.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.v1 import api_router
from src.core.config import Settings, get_settings
from src.core.exceptions import (
    ConcurrentModificationError,
    EmptyOrderError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    OrderEngineError,
    OrderNotModifiableError,
    OutOfStockError,
    OwnershipMismatchError,
    VariantUnavailableError,
)
from src.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from src.database.connection import (
    check_database,
    create_tables,
    dispose_engine,
    get_engine,
    get_session_factory,
)
from src.services.inventory.catalog import (
    InMemoryVariantRepository,
    SqlVariantRepository,
)
from src.services.inventory.ledger import InventoryLedger
from src.services.orders.coordinator import OrderCoordinator
from src.services.orders.repository import (
    InMemoryOrderRepository,
    SqlOrderRepository,
)
from src.services.payments.service import PaymentEventService

configure_logging()
logger = get_logger(__name__)

# Looked up along the exception's MRO, so subclasses inherit their parent's code
ERROR_STATUS_CODES: dict[type[OrderEngineError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    OutOfStockError: status.HTTP_409_CONFLICT,
    VariantUnavailableError: status.HTTP_409_CONFLICT,
    OrderNotModifiableError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    EmptyOrderError: status.HTTP_400_BAD_REQUEST,
    OwnershipMismatchError: status.HTTP_403_FORBIDDEN,
    ConcurrentModificationError: status.HTTP_409_CONFLICT,
}


def status_code_for(exc: OrderEngineError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return status.HTTP_400_BAD_REQUEST


def build_services(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> tuple[OrderCoordinator, PaymentEventService]:
    """
    Wire the ledger, coordinator and payment service for a storage backend.

    Raises:
        ValueError: If database storage is configured without a session factory
    """
    if settings.uses_database:
        if session_factory is None:
            raise ValueError("Database storage requires a session factory")
        variants = SqlVariantRepository(session_factory)
        orders = SqlOrderRepository(session_factory)
    else:
        variants = InMemoryVariantRepository()
        orders = InMemoryOrderRepository()

    coordinator = OrderCoordinator(
        InventoryLedger(variants),
        orders,
        cancel_on_payment_failure=settings.cancel_on_payment_failure,
    )
    return coordinator, PaymentEventService(coordinator)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info(
        "Order engine starting",
        environment=settings.environment,
        version=settings.app_version,
        storage_backend=settings.storage_backend,
    )

    with log_performance(logger, "application_startup"):
        session_factory = None
        if settings.uses_database:
            if settings.db_create_tables:
                await create_tables(get_engine())
            session_factory = get_session_factory()
        app.state.order_coordinator, app.state.payment_service = build_services(
            settings, session_factory
        )

    try:
        yield
    finally:
        if settings.uses_database:
            await dispose_engine()
        logger.info("Order engine stopped")


def _error_response(
    status_code: int, error: str, message: str, details: Any = None
) -> JSONResponse:
    body = {"error": error, "message": message}
    if details is not None:
        body["details"] = details
    body["request_id"] = get_request_id()
    return JSONResponse(status_code=status_code, content=body)


async def handle_engine_error(request: Request, exc: OrderEngineError) -> JSONResponse:
    """Render an expected order or inventory failure with its code and context."""
    status_code = status_code_for(exc)
    logger.warning(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
        error=str(exc),
    )
    return _error_response(status_code, exc.code, str(exc), exc.context)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        errors,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure in full and hide its details from the caller."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


async def request_logging_middleware(request: Request, call_next):
    """Bind a request id to the request's log lines and echo it back."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    try:
        with log_performance(
            logger, "request_processing", method=request.method, path=request.url.path
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error_type=type(e).__name__,
        )
        raise
    finally:
        # Cleared last so the closing log lines keep the request id
        clear_context()


def _register_health_routes(app: FastAPI, settings: Settings) -> None:
    identity = {"service": settings.app_name, "version": settings.app_version}

    @app.get("/health", tags=["Health"], summary="Health check endpoint")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", **identity, "environment": settings.environment}

    @app.get("/live", tags=["Health"], summary="Liveness check endpoint")
    async def liveness_check() -> dict[str, str]:
        return {"status": "alive", **identity}

    @app.get("/ready", tags=["Health"], summary="Readiness check endpoint")
    async def readiness_check(request: Request):
        """
        Ready once the services are wired and, for database storage, the
        database answers a trivial query.
        """
        services_ready = (
            getattr(request.app.state, "order_coordinator", None) is not None
        )
        database = "not_configured"
        if settings.uses_database:
            try:
                await check_database()
                database = "healthy"
            except Exception as e:
                logger.warning(
                    "Database connectivity check failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                database = "unhealthy"

        if not services_ready or database == "unhealthy":
            logger.warning(
                "Readiness check failed",
                services_ready=services_ready,
                database=database,
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "not_ready",
                    "service": settings.app_name,
                    "dependencies_ready": False,
                    "database": database,
                },
            )

        return {
            "status": "ready",
            **identity,
            "environment": settings.environment,
            "dependencies_ready": True,
            "database": database,
        }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order lifecycle and inventory reservation API",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.middleware("http")(request_logging_middleware)

    app.add_exception_handler(OrderEngineError, handle_engine_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    _register_health_routes(app, settings)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
