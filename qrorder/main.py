"""
FastAPI Application Entry Point

QR Table Ordering - Multi-tenant Ordering Core
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - POST /orders: Place an order from a table (or takeaway)
    - GET /orders: List orders of a session or organization
    - GET /orders/{id}: Order detail with table and organization
    - PATCH /orders/{id}: Move an order through the kitchen workflow
    - POST /table-calls: Call a waiter to a table
    - GET /table-calls: List table calls of an organization
    - POST /ai-chat: Menu assistant
    - POST /webhooks/{config_id}/test: Send a signed test event
    - GET /dashboard/summary: Staff dashboard counters
    - GET /health: System health check

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import dataclasses
import sys
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Body, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import redis

# Windows-specific event loop policy (psycopg async)
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from qrorder.core.config import WebhookBackend, get_settings, setup_logging
from qrorder.core.exceptions import NotFound, QROrderError, StoreError, ValidationError
from qrorder.database import get_db, init_db, engine
from qrorder.schemas import (
    AIChatResponse,
    DashboardSummary,
    ErrorResponse,
    HealthResponse,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderGetResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdateResponse,
    OrderWithTableResponse,
    TableCallCreateResponse,
    TableCallListResponse,
    TableCallResponse,
    WebhookTestResponse,
)
from qrorder.services.ai import (
    BaseCompletionService,
    ChatOrchestrator,
    get_completion_service,
)
from qrorder.services.orders import OrderService
from qrorder.services.table_calls import TableCallService
from qrorder.services.validation import (
    validate_chat_message,
    validate_order_request,
    validate_payload,
    validate_table_call,
)
from qrorder.services.webhooks import WebhookDispatcher, build_delivery, get_webhook_dispatcher
from qrorder.store import BaseStore, get_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_dispatcher() -> WebhookDispatcher:
    return get_webhook_dispatcher()


def get_ai_service() -> BaseCompletionService:
    return get_completion_service()


async def get_order_service(
    store: BaseStore = Depends(get_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> OrderService:
    return OrderService(store, dispatcher, settings=settings)


async def get_table_call_service(
    store: BaseStore = Depends(get_store),
) -> TableCallService:
    return TableCallService(store)


async def get_chat_orchestrator(
    store: BaseStore = Depends(get_store),
    completion_service: BaseCompletionService = Depends(get_ai_service),
) -> ChatOrchestrator:
    return ChatOrchestrator(store, completion_service, settings=settings)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    dispatcher = get_webhook_dispatcher()
    await dispatcher.start()
    logger.info(f"✅ Webhook Dispatcher: {dispatcher.backend.value}")

    completion_service = get_completion_service()
    logger.info(f"✅ AI Service: {completion_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await dispatcher.stop()
    await completion_service.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant QR table ordering: order lifecycle, table occupancy, "
        "menu assistant and signed tenant webhooks."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    completion_service: BaseCompletionService = Depends(get_ai_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis (broker for the Celery webhook backend)
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check AI service
    ai_status = "healthy" if await completion_service.health_check() else "unhealthy"

    # Check webhook dispatcher
    webhook_status = (
        f"{dispatcher.backend.value} (running)" if dispatcher.is_running
        else f"{dispatcher.backend.value} (stopped)"
    )

    required = [db_status, ai_status]
    if dispatcher.backend == WebhookBackend.CELERY:
        required.append(redis_status)

    overall = "operational" if all(s == "healthy" for s in required) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        ai_service=ai_status,
        webhook_backend=webhook_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    body: Any = Body(None),
    service: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """
    Place an order.

    Send ``table_id`` for orders placed through a table's QR code, or
    ``organization_id`` alone for orders without a table. The total is
    computed server-side from item prices and quantities.
    """
    request = validate_order_request(body)
    order = await service.create_order(request)

    return OrderCreateResponse(
        order=OrderResponse.model_validate(order),
        message="Order created successfully",
    )


@app.get(
    "/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    session_id: Optional[str] = Query(None),
    organization_id: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Orders of a customer session or an organization, newest first."""
    orders = await service.list_orders(session_id=session_id, organization_id=organization_id)
    return OrderListResponse(
        orders=[OrderWithTableResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/orders/{order_id}",
    response_model=OrderGetResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderGetResponse:
    """Get a specific order with its table and organization."""
    order = await service.get_order(order_id)
    return OrderGetResponse(order=OrderDetailResponse.model_validate(order))


@app.patch(
    "/orders/{order_id}",
    response_model=OrderUpdateResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    body: Any = Body(None),
    service: OrderService = Depends(get_order_service),
) -> OrderUpdateResponse:
    """
    Move an order along pending → preparing → ready → served, or cancel it
    before it is served. Sending the current status again is a no-op.
    """
    request = validate_payload(OrderStatusUpdate, body)
    result = await service.update_status(order_id, request.status)

    return OrderUpdateResponse(
        order=OrderResponse.model_validate(result.order),
        message=(
            "Order status updated successfully" if result.changed
            else "Order status unchanged"
        ),
    )


# =============================================================================
# TABLE CALL ENDPOINTS
# =============================================================================

@app.post(
    "/table-calls",
    status_code=201,
    response_model=TableCallCreateResponse,
    responses=ERROR_RESPONSES,
    tags=["Table Calls"],
)
async def create_table_call(
    body: Any = Body(None),
    service: TableCallService = Depends(get_table_call_service),
) -> TableCallCreateResponse:
    """Request staff attention at a table."""
    request = validate_table_call(body)
    call = await service.create_call(request)

    return TableCallCreateResponse(
        call=TableCallResponse.model_validate(call),
        message="Table call request created successfully",
    )


@app.get(
    "/table-calls",
    response_model=TableCallListResponse,
    responses=ERROR_RESPONSES,
    tags=["Table Calls"],
)
async def list_table_calls(
    organization_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    service: TableCallService = Depends(get_table_call_service),
) -> TableCallListResponse:
    calls = await service.list_calls(organization_id, status=status)
    return TableCallListResponse(
        calls=[TableCallResponse.model_validate(call) for call in calls],
    )


# =============================================================================
# AI ASSISTANT
# =============================================================================

@app.post(
    "/ai-chat",
    response_model=AIChatResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
    tags=["AI Assistant"],
    summary="Menu Assistant",
)
async def ai_chat(
    body: Any = Body(None),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> AIChatResponse:
    """
    Answer a guest's question about the menu.

    The conversation is kept per ``session_id``; a provider failure returns
    502 and leaves the history unchanged.
    """
    request = validate_chat_message(body)
    reply = await orchestrator.respond(request)
    return AIChatResponse(response=reply, session_id=request.session_id)


# =============================================================================
# WEBHOOK & DASHBOARD ENDPOINTS
# =============================================================================

@app.post(
    "/webhooks/{config_id}/test",
    response_model=WebhookTestResponse,
    responses=ERROR_RESPONSES,
    tags=["Webhooks"],
    summary="Send Test Webhook",
)
async def test_webhook(
    config_id: str,
    store: BaseStore = Depends(get_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> WebhookTestResponse:
    """
    Send a signed ``test`` event to a configuration and wait for the result.

    A single attempt is made, whatever the configuration's retry policy.
    """
    config = await store.get_webhook_config(config_id)
    if config is None:
        raise NotFound("Webhook configuration", config_id)

    payload = {
        "event": "test",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": {
            "message": f"This is a test webhook from {settings.app_name}",
            "restaurant_id": config.organization_id,
        },
    }
    delivery = build_delivery(config, "test", payload, settings.webhook_user_agent)
    result = await dispatcher.sender.deliver(dataclasses.replace(delivery, retry_enabled=False))

    return WebhookTestResponse(
        success=result.success,
        config_id=config.id,
        status_code=result.status_code,
        attempts=result.attempts,
        error=result.error_message,
    )


@app.get(
    "/dashboard/summary",
    response_model=DashboardSummary,
    responses=ERROR_RESPONSES,
    tags=["Dashboard"],
)
async def dashboard_summary(
    organization_id: str = Query(...),
    service: OrderService = Depends(get_order_service),
) -> DashboardSummary:
    """Get aggregated order and table counters for the staff dashboard."""
    summary = await service.summary(organization_id)
    return DashboardSummary(**summary)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(QROrderError)
async def domain_exception_handler(request: Request, exc: QROrderError) -> JSONResponse:
    """Translate domain errors to the standard error body."""
    detail: Any = exc.message
    if isinstance(exc, ValidationError) and exc.errors:
        detail = exc.errors
    elif isinstance(exc, StoreError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        detail = str(exc) if settings.debug else "A database error occurred"
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=detail).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies and missing query parameters are client errors (400)."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())) or "body",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid request data", detail=errors).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
