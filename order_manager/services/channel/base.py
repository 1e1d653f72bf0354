"""
Execution Channel Abstract Base Class

Defines the broadcast point between the API and the order executor.
Both InMemoryExecutionChannel and RedisExecutionChannel must implement
these methods.

A publish that reaches nobody would silently lose the order, so callers
check has_subscribers() first and publish() reports how many
subscribers received the message.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import AsyncIterator, Optional

from order_manager.schemas import ExecutionMessage


class ExecutionSubscription(ABC):
    """A live subscription; iterate it to receive messages in order."""

    @abstractmethod
    async def get(self, timeout: Optional[float] = None) -> Optional[ExecutionMessage]:
        """
        Wait for the next message.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            The next message, or None if the timeout expired
        """
        pass

    async def __aiter__(self) -> AsyncIterator[ExecutionMessage]:
        while True:
            message = await self.get()
            if message is not None:
                yield message


class BaseExecutionChannel(ABC):
    """Abstract base class for execution channels."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., "memory", "redis")."""
        pass

    @abstractmethod
    async def has_subscribers(self) -> bool:
        """Check whether at least one executor is listening."""
        pass

    @abstractmethod
    async def publish(self, message: ExecutionMessage) -> int:
        """
        Broadcast a message to every current subscriber.

        Returns:
            int: Number of subscribers that received it
        """
        pass

    @abstractmethod
    def subscribe(self) -> AbstractAsyncContextManager[ExecutionSubscription]:
        """Attach a subscriber for the duration of the ``async with`` block."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check channel connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the channel."""
        return None
