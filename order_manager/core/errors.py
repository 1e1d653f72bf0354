"""
Domain Errors

Every failure the order workflow can surface to a caller. Services raise
these; the HTTP layer maps them to responses in a single exception handler.
"""

from typing import Optional


class OrderManagerError(Exception):
    """Base class for errors that map to a client-visible response."""

    status_code: int = 500
    error: str = "internal_error"
    message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class NotFoundError(OrderManagerError):
    """Catalog item, order or requester is absent."""
    status_code = 404
    error = "not_found"
    message = "Resource not found"


class InvalidParameterError(OrderManagerError):
    """A creation request names a food or place that does not exist."""
    status_code = 400
    error = "invalid_parameter"
    message = "Request parameters are not valid"


class QuantityMismatchError(OrderManagerError):
    """Withdrawn and delivered quantities differ."""
    status_code = 422
    error = "quantity_mismatch"

    def __init__(self, withdrawal: int, delivery: int):
        self.withdrawal = withdrawal
        self.delivery = delivery
        super().__init__(
            f"Quantities do not match: {withdrawal} withdrawn, {delivery} to deliver"
        )


class AlreadyStartedError(OrderManagerError):
    """Execute was requested for an order that has left CREATED."""
    status_code = 409
    error = "order_already_started"
    message = "Order has already been started"


class InvalidTransitionError(OrderManagerError):
    """A status update would move the order backward or skip a state."""
    status_code = 409
    error = "invalid_status_transition"


class ChannelUnavailableError(OrderManagerError):
    """No executor is subscribed to the execution channel."""
    status_code = 503
    error = "channel_unavailable"
    message = "No order executor is connected"


class InternalError(OrderManagerError):
    """Storage failure or broken internal consistency."""
    status_code = 500
    error = "internal_error"


__all__ = [
    "OrderManagerError",
    "NotFoundError",
    "InvalidParameterError",
    "QuantityMismatchError",
    "AlreadyStartedError",
    "InvalidTransitionError",
    "ChannelUnavailableError",
    "InternalError",
]
