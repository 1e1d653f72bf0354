"""
SQLAlchemy Database Models

Orders and their line items:
- Order: owned by a user, carries the lifecycle status
- OrderDetail: food withdrawn for an order
- OrderPlace: destination and quantity delivered for an order
- Food / Place / User: read-only reference rows
"""

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from order_manager.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow: CREATED -> RUNNING -> COMPLETED | FAILED."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Display label shown to API clients."""
        return self.value.capitalize()


# Forward-only transitions; terminal states have none
STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.RUNNING}),
    OrderStatus.RUNNING: frozenset({OrderStatus.COMPLETED, OrderStatus.FAILED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class User(Base):
    """Requester identity. Populated by the authentication side."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User #{self.id} - {self.username}>"


class Food(Base):
    __tablename__ = "foods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)

    def __repr__(self):
        return f"<Food #{self.id} - {self.name}>"


class Place(Base):
    __tablename__ = "places"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)

    def __repr__(self):
        return f"<Place #{self.id} - {self.name}>"


class Order(Base):
    """
    Main Order table.

    Created once together with all of its line items and afterwards
    changed only through status transitions.
    """
    __tablename__ = "orders"
    __mapper_args__ = {"eager_defaults": True}

    uuid = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.CREATED,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User")
    details = relationship(
        "OrderDetail",
        back_populates="order",
        order_by="OrderDetail.withdrawal_order",
    )
    places = relationship(
        "OrderPlace",
        back_populates="order",
        order_by="OrderPlace.id",
    )

    def __repr__(self):
        return f"<Order {self.uuid} - {self.status.value}>"


class OrderDetail(Base):
    """Food line item: what is withdrawn and in which sequence."""
    __tablename__ = "order_details"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_details_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_uuid = Column(Uuid, ForeignKey("orders.uuid"), nullable=False, index=True)
    food_id = Column(Integer, ForeignKey("foods.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    withdrawal_order = Column(Integer, nullable=False, default=0)

    order = relationship("Order", back_populates="details")
    food = relationship("Food")


class OrderPlace(Base):
    """Delivery line item: destination and quantity to deliver there."""
    __tablename__ = "order_places"
    __table_args__ = (
        CheckConstraint("quantity_to_deliver > 0", name="ck_order_places_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_uuid = Column(Uuid, ForeignKey("orders.uuid"), nullable=False, index=True)
    place_id = Column(Integer, ForeignKey("places.id"), nullable=False)
    quantity_to_deliver = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="places")
    place = relationship("Place")
