"""
Pydantic Schemas for Request/Response Validation

Covers the order HTTP API and the messages exchanged with the
order executor over the execution channel.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from order_manager.models import Order, OrderStatus


# =============================================================================
# ENUMS
# =============================================================================

class MessageType(str, Enum):
    """Kinds of messages travelling over the execution channel."""
    EXECUTE_ORDER = "execute_order"
    ORDER_STATUS = "order_status"


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

# Largest value an INTEGER column holds
MAX_INTEGER = 2**31 - 1


class FoodItemCreate(BaseModel):
    """Single food withdrawn by an order."""
    name: str = Field(..., min_length=1, max_length=100, examples=["bread"])
    quantity: int = Field(..., ge=1, le=MAX_INTEGER, examples=[2])
    withdrawal_order: int = Field(default=0, ge=0, le=MAX_INTEGER, examples=[1])


class PlaceItemCreate(BaseModel):
    """Single delivery destination of an order."""
    name: str = Field(..., min_length=1, max_length=100, examples=["table1"])
    quantity_to_deliver: int = Field(..., ge=1, le=MAX_INTEGER, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    foods: List[FoodItemCreate] = Field(default_factory=list)
    places: List[PlaceItemCreate] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    """Status reported by the order executor."""
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower()
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderFoodResponse(BaseModel):
    id: int
    name: str
    quantity: int
    withdrawal_order: int


class OrderPlaceResponse(BaseModel):
    id: int
    name: str
    quantity_to_deliver: int


class OrderResponse(BaseModel):
    """Response schema for a single order with resolved foods and places."""
    uuid: UUID
    user_id: int
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    foods: List[OrderFoodResponse]
    places: List[OrderPlaceResponse]

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        """Build the response from an order whose line items are loaded."""
        return cls(
            uuid=order.uuid,
            user_id=order.user_id,
            status=order.status.label,
            created_at=order.created_at,
            updated_at=order.updated_at,
            foods=[
                OrderFoodResponse(
                    id=detail.food.id,
                    name=detail.food.name,
                    quantity=detail.quantity,
                    withdrawal_order=detail.withdrawal_order,
                )
                for detail in order.details
            ],
            places=[
                OrderPlaceResponse(
                    id=line.place.id,
                    name=line.place.name,
                    quantity_to_deliver=line.quantity_to_deliver,
                )
                for line in order.places
            ],
        )


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""
    success: bool
    message: str
    order_uuid: UUID


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderStatusResponse(BaseModel):
    status: str


class OrderExecuteResponse(BaseModel):
    success: bool
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    execution_channel: str
    timestamp: datetime


# =============================================================================
# EXECUTION CHANNEL MESSAGES
# =============================================================================

class ExecutionMessage(BaseModel):
    """Event published to the executor when an order should run."""
    type: MessageType = MessageType.EXECUTE_ORDER
    order_uuid: UUID
    payload: dict[str, Any] = Field(default_factory=dict)


class ExecutorStatusMessage(BaseModel):
    """Status report sent back by the executor over its WebSocket."""
    type: MessageType = MessageType.ORDER_STATUS
    order_uuid: UUID
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower()
        return v
