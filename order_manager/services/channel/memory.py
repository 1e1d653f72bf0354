"""
In-Memory Execution Channel

Broadcasts execution messages to subscribers living in the same
process. Used in development mode and in tests; a single API
instance is enough for the executor to connect to.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from order_manager.schemas import ExecutionMessage
from order_manager.services.channel.base import (
    BaseExecutionChannel,
    ExecutionSubscription,
)

logger = logging.getLogger(__name__)


class QueueSubscription(ExecutionSubscription):
    """Subscription backed by its own asyncio queue."""

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue

    async def get(self, timeout: Optional[float] = None) -> Optional[ExecutionMessage]:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class InMemoryExecutionChannel(BaseExecutionChannel):
    """
    Process-local broadcast channel.

    Every subscriber gets its own queue; publish() copies the message
    into each of them.
    """

    def __init__(self):
        self._queues: set[asyncio.Queue] = set()
        logger.info("InMemoryExecutionChannel initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    async def has_subscribers(self) -> bool:
        return bool(self._queues)

    async def publish(self, message: ExecutionMessage) -> int:
        queues = list(self._queues)
        for queue in queues:
            queue.put_nowait(message)

        logger.debug(f"Published {message.type.value} for {message.order_uuid} to {len(queues)} subscriber(s)")
        return len(queues)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[ExecutionSubscription]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        logger.info(f"Executor subscribed ({self.subscriber_count} active)")
        try:
            yield QueueSubscription(queue)
        finally:
            self._queues.discard(queue)
            logger.info(f"Executor unsubscribed ({self.subscriber_count} active)")

    async def health_check(self) -> bool:
        """In-process channel is always healthy."""
        return True
