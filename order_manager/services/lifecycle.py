"""
Order Lifecycle Manager

Reports order status, dispatches orders to the external executor and
applies the status updates the executor sends back.

    CREATED ──execute──▶ (executor) ──▶ RUNNING ──▶ COMPLETED
                                               └──▶ FAILED

execute() only publishes; the executor advances the status through
update_status(), which refuses to move an order backward.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from order_manager.core.errors import (
    AlreadyStartedError,
    ChannelUnavailableError,
    InvalidTransitionError,
    NotFoundError,
)
from order_manager.models import STATUS_TRANSITIONS, Order, OrderStatus
from order_manager.schemas import ExecutionMessage, MessageType, OrderResponse
from order_manager.services.channel import BaseExecutionChannel
from order_manager.services.orders import get_order, unit_of_work

logger = logging.getLogger(__name__)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Check whether ``new`` is a legal next status after ``current``."""
    return new in STATUS_TRANSITIONS[current]


class LifecycleManager:
    """
    Drives orders through their lifecycle.

    Attributes:
        channel: Broadcast point the executor subscribes to
    """

    def __init__(self, channel: BaseExecutionChannel):
        self.channel = channel

    async def get_status(self, session: AsyncSession, order_uuid: UUID) -> str:
        """Return the display label of the order's status."""
        order = await session.get(Order, order_uuid)
        if order is None:
            raise NotFoundError(f"Order {order_uuid} not found")
        return order.status.label

    async def execute(self, session: AsyncSession, order_uuid: UUID) -> ExecutionMessage:
        """
        Ask the executor to run a freshly created order.

        Publishes exactly one EXECUTE_ORDER message carrying the order
        with its resolved foods and places. The order's status is left
        untouched.

        Raises:
            NotFoundError: Order does not exist
            AlreadyStartedError: Order is no longer CREATED
            ChannelUnavailableError: No executor received the message
        """
        order = await get_order(session, order_uuid)

        if order.status != OrderStatus.CREATED:
            logger.warning(f"Execute refused for order {order_uuid}: status is {order.status.value}")
            raise AlreadyStartedError(f"Order {order_uuid} is already {order.status.label.lower()}")

        if not await self.channel.has_subscribers():
            logger.warning(f"Execute refused for order {order_uuid}: no executor connected")
            raise ChannelUnavailableError()

        message = ExecutionMessage(
            type=MessageType.EXECUTE_ORDER,
            order_uuid=order.uuid,
            payload=OrderResponse.from_order(order).model_dump(mode="json"),
        )
        receivers = await self.channel.publish(message)

        # Executor went away between the check and the publish
        if receivers == 0:
            logger.warning(f"Execute message for order {order_uuid} reached no executor")
            raise ChannelUnavailableError()

        logger.info(f"Order {order_uuid} dispatched to {receivers} executor(s)")
        return message

    async def update_status(
        self,
        session: AsyncSession,
        order_uuid: UUID,
        new_status: OrderStatus,
    ) -> None:
        """
        Apply a status reported by the executor.

        Re-sending the current status is a no-op.

        Raises:
            NotFoundError: Order does not exist
            InvalidTransitionError: Move is backward, skips a state or
                leaves a terminal state
        """
        async with unit_of_work(session):
            order = await session.get(Order, order_uuid, with_for_update=True, populate_existing=True)
            if order is None:
                raise NotFoundError(f"Order {order_uuid} not found")

            if order.status == new_status:
                return

            if not can_transition(order.status, new_status):
                logger.warning(
                    f"Rejected transition for order {order_uuid}: "
                    f"{order.status.value} -> {new_status.value}"
                )
                raise InvalidTransitionError(
                    f"Cannot move order from {order.status.label} to {new_status.label}"
                )

            previous = order.status
            order.status = new_status

        logger.info(f"Order {order_uuid} status: {previous.value} -> {new_status.value}")
