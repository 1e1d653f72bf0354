"""
FastAPI Application Entry Point

Order Manager - transactional order creation and lifecycle tracking.

Endpoints:
    - POST /api/orders: Create an order
    - GET /api/orders: List orders
    - GET /api/orders/{uuid}: Get one order with foods and places
    - GET /api/orders/{uuid}/status: Get the order's status label
    - POST /api/orders/{uuid}/execute: Dispatch the order to the executor
    - PATCH /api/orders/{uuid}/status: Executor status update
    - WS /ws/executor: Executor subscription and status reports
    - GET /health: System health check
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketDisconnect, WebSocketState

from order_manager.core.config import get_settings, setup_logging
from order_manager.core.errors import OrderManagerError
from order_manager.database import engine, get_db, init_db, seed_catalog
from order_manager.models import OrderStatus
from order_manager.schemas import (
    ErrorResponse,
    ExecutorStatusMessage,
    HealthResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderExecuteResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
)
from order_manager.services.channel import BaseExecutionChannel, get_execution_channel
from order_manager.services.lifecycle import LifecycleManager
from order_manager.services.orders import create_order, get_order, list_orders

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.env_mode.value})")

    await init_db()
    if settings.is_development and settings.seed_catalog:
        await seed_catalog()

    channel = get_execution_channel()
    logger.info(f"Execution Channel: {channel.provider_name}")
    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await channel.close()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order management backend: validates and stores orders of foods and "
        "delivery places atomically and dispatches them to an executor."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_requester_id(
    x_user_id: Optional[int] = Header(None, alias="x-user-id"),
) -> int:
    """Authenticated user id, stamped on the request by the auth gateway."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing authenticated user")
    return x_user_id


async def verify_executor_token(
    x_executor_token: Optional[str] = Header(None, alias="x-executor-token"),
) -> None:
    """Status updates are reserved for the order executor."""
    if x_executor_token != settings.executor_token:
        raise HTTPException(status_code=403, detail="Executor token required")


def get_lifecycle_manager(
    channel: BaseExecutionChannel = Depends(get_execution_channel),
) -> LifecycleManager:
    return LifecycleManager(channel)


# =============================================================================
# HEALTH ENDPOINT
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    channel: BaseExecutionChannel = Depends(get_execution_channel),
) -> HealthResponse:
    """Verify database and execution channel are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = "unhealthy"
        logger.error(f"Database health check failed: {e}")

    channel_status = "healthy" if await channel.health_check() else "unhealthy"

    overall = "operational" if db_status == channel_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        execution_channel=channel_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Create Order",
)
async def create_order_endpoint(
    order_data: OrderCreate,
    requester_id: int = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> OrderCreateResponse:
    """
    Create an order from food and place names.

    The total quantity of foods must equal the total quantity to deliver.
    Nothing is stored unless every name resolves and the totals balance.
    """
    logger.info(
        f"Creating order for user #{requester_id}: "
        f"{len(order_data.foods)} foods, {len(order_data.places)} places"
    )

    order = await create_order(db, requester_id, order_data.foods, order_data.places)

    return OrderCreateResponse(
        success=True,
        message="Order created",
        order_uuid=order.uuid,
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders_endpoint(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Retrieve paginated list of orders with their foods and places."""

    status_enum = None
    if status:
        try:
            status_enum = OrderStatus(status.lower())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    total, orders = await list_orders(db, skip=skip, limit=limit, status=status_enum)

    return OrderListResponse(
        total=total,
        orders=[OrderResponse.from_order(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_uuid}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order_endpoint(
    order_uuid: UUID,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get a specific order by UUID."""
    order = await get_order(db, order_uuid)
    return OrderResponse.from_order(order)


@app.get(
    "/api/orders/{order_uuid}/status",
    response_model=OrderStatusResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order_status_endpoint(
    order_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
) -> OrderStatusResponse:
    """Get the display status of an order."""
    return OrderStatusResponse(status=await lifecycle.get_status(db, order_uuid))


@app.post(
    "/api/orders/{order_uuid}/execute",
    response_model=OrderExecuteResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    tags=["Orders"],
)
async def execute_order_endpoint(
    order_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
) -> OrderExecuteResponse:
    """Dispatch a created order to the connected executor."""
    await lifecycle.execute(db, order_uuid)
    return OrderExecuteResponse(success=True, message="Order started successfully")


@app.patch(
    "/api/orders/{order_uuid}/status",
    status_code=204,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    dependencies=[Depends(verify_executor_token)],
    tags=["Executor"],
)
async def update_order_status_endpoint(
    order_uuid: UUID,
    update: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
) -> Response:
    """Apply a status reported by the order executor."""
    await lifecycle.update_status(db, order_uuid, update.status)
    return Response(status_code=204)


# =============================================================================
# EXECUTOR WEBSOCKET
# =============================================================================

@app.websocket("/ws/executor")
async def executor_socket(
    websocket: WebSocket,
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
) -> None:
    """
    Connection point of the order executor.

    Execute messages published on the channel are forwarded as JSON.
    The executor reports progress with
    {"type": "order_status", "order_uuid": "...", "status": "running"}
    and receives an acknowledgement for each report.
    """
    if websocket.headers.get("x-executor-token") != settings.executor_token:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    async with lifecycle.channel.subscribe() as subscription:
        await websocket.send_json({"type": "connected", "channel": lifecycle.channel.provider_name})

        async def forward_messages() -> None:
            async for message in subscription:
                await websocket.send_text(message.model_dump_json())

        async def receive_reports() -> None:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))

                data = frame.get("text")
                if data is None:
                    await websocket.send_json({
                        "success": False,
                        "error": "invalid_message",
                        "detail": "Status reports must be sent as text frames",
                    })
                    continue

                try:
                    report = ExecutorStatusMessage.model_validate_json(data)
                except ValidationError as e:
                    await websocket.send_json({"success": False, "error": "invalid_message", "detail": str(e)})
                    continue

                try:
                    await lifecycle.update_status(db, report.order_uuid, report.status)
                except OrderManagerError as e:
                    await websocket.send_json({
                        "success": False,
                        "order_uuid": str(report.order_uuid),
                        "error": e.error,
                        "detail": e.message,
                    })
                    continue
                except Exception:
                    logger.exception(f"Status report for order {report.order_uuid} failed")
                    await websocket.send_json({
                        "success": False,
                        "order_uuid": str(report.order_uuid),
                        "error": "internal_error",
                        "detail": "Status could not be applied",
                    })
                    continue

                await websocket.send_json({
                    "success": True,
                    "order_uuid": str(report.order_uuid),
                    "status": report.status.label,
                })

        tasks = [
            asyncio.create_task(forward_messages()),
            asyncio.create_task(receive_reports()),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in done:
                task.result()
        except WebSocketDisconnect:
            logger.info("Executor disconnected")
        except Exception:
            logger.exception("Executor connection failed")
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close(code=1011)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderManagerError)
async def order_manager_error_handler(request: Request, exc: OrderManagerError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=exc.message).model_dump(),
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
