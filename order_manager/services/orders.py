"""
Order Service

Builds orders transactionally and serves read-only order queries.

Creation workflow:
    1. Open a unit of work on the caller's session
    2. Stage the Order shell in status CREATED
    3. Resolve every food, stage an OrderDetail, accumulate withdrawals
    4. Resolve every place, stage an OrderPlace, accumulate deliveries
    5. Check that withdrawals and deliveries balance
    6. Commit; any error on the way rolls back every staged row

Rows are flushed as they are built, but they stay inside the
transaction and are invisible to other sessions until the commit.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from order_manager.core.errors import (
    InternalError,
    InvalidParameterError,
    NotFoundError,
    OrderManagerError,
    QuantityMismatchError,
)
from order_manager.models import Order, OrderDetail, OrderPlace, OrderStatus, User
from order_manager.schemas import FoodItemCreate, PlaceItemCreate
from order_manager.services.catalog import CatalogKind, resolve

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSACTIONAL COMMITTER
# =============================================================================

@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Scope an atomic unit of work on ``session``.

    Commits when the block exits cleanly and rolls back on any
    exception. Domain errors are re-raised unchanged; storage errors
    are logged and surfaced as InternalError without their details.

    The session must not already be inside a transaction.
    """
    try:
        async with session.begin():
            yield session
    except OrderManagerError:
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Storage failure, unit of work rolled back: {e}")
        raise InternalError("Order could not be stored") from e


# =============================================================================
# BALANCE VALIDATOR
# =============================================================================

def validate_balance(withdrawal_sum: int, delivery_sum: int) -> None:
    """Raise QuantityMismatchError unless both sums are equal."""
    if withdrawal_sum != delivery_sum:
        raise QuantityMismatchError(withdrawal_sum, delivery_sum)


# =============================================================================
# ORDER AGGREGATE BUILDER
# =============================================================================

async def create_order(
    session: AsyncSession,
    requester_id: int,
    foods: Sequence[FoodItemCreate],
    places: Sequence[PlaceItemCreate],
) -> Order:
    """
    Create an order with all of its line items, or nothing at all.

    Args:
        session: Fresh session; the whole build runs in one transaction
        requester_id: Authenticated user placing the order
        foods: Foods to withdraw, each with a positive quantity
        places: Destinations, each with a positive quantity to deliver

    Returns:
        Order: The committed order in status CREATED

    Raises:
        InvalidParameterError: A food or place name does not resolve
        QuantityMismatchError: Withdrawn and delivered totals differ
        InternalError: Requester missing or storage failure
    """
    async with unit_of_work(session):
        user = await session.get(User, requester_id)
        if user is None:
            # Authentication already vouched for this id
            logger.error(f"Authenticated requester #{requester_id} has no user row")
            raise InternalError("Requester could not be loaded")

        order = Order(user_id=user.id, status=OrderStatus.CREATED)
        session.add(order)
        await session.flush()

        withdrawal_sum = 0
        for item in foods:
            try:
                food_id = await resolve(session, CatalogKind.FOOD, item.name)
            except NotFoundError as e:
                raise InvalidParameterError(e.message) from e

            session.add(OrderDetail(
                order_uuid=order.uuid,
                food_id=food_id,
                quantity=item.quantity,
                withdrawal_order=item.withdrawal_order,
            ))
            await session.flush()
            withdrawal_sum += item.quantity

        delivery_sum = 0
        for item in places:
            try:
                place_id = await resolve(session, CatalogKind.PLACE, item.name)
            except NotFoundError as e:
                raise InvalidParameterError(e.message) from e

            session.add(OrderPlace(
                order_uuid=order.uuid,
                place_id=place_id,
                quantity_to_deliver=item.quantity_to_deliver,
            ))
            await session.flush()
            delivery_sum += item.quantity_to_deliver

        validate_balance(withdrawal_sum, delivery_sum)

    logger.info(
        f"Order {order.uuid} created for user #{requester_id}: "
        f"{len(foods)} foods, {len(places)} places, {withdrawal_sum} units"
    )
    return order


# =============================================================================
# QUERIES
# =============================================================================

def _with_line_items(query):
    """Eager-load foods and places so responses need no lazy loads."""
    return query.options(
        selectinload(Order.details).selectinload(OrderDetail.food),
        selectinload(Order.places).selectinload(OrderPlace.place),
    )


async def get_order(session: AsyncSession, order_uuid: UUID) -> Order:
    """Fetch one order with resolved foods and places or raise NotFoundError."""
    result = await session.execute(
        _with_line_items(select(Order).where(Order.uuid == order_uuid))
    )
    order = result.scalar_one_or_none()

    if order is None:
        raise NotFoundError(f"Order {order_uuid} not found")

    return order


async def list_orders(
    session: AsyncSession,
    skip: int = 0,
    limit: int = 10,
    status: Optional[OrderStatus] = None,
) -> tuple[int, list[Order]]:
    """Return the total count and one page of orders, newest first."""
    query = select(Order).order_by(Order.created_at.desc(), Order.uuid)
    count_query = select(func.count(Order.uuid))

    if status is not None:
        query = query.where(Order.status == status)
        count_query = count_query.where(Order.status == status)

    total = await session.scalar(count_query) or 0

    result = await session.execute(_with_line_items(query.offset(skip).limit(limit)))
    return total, list(result.scalars().all())
