"""
Redis Execution Channel

Production implementation on Redis pub/sub, so every API instance
can publish to an executor connected to any other instance.

Subscriber presence is answered by PUBSUB NUMSUB on the channel.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from order_manager.core.config import get_settings
from order_manager.core.errors import ChannelUnavailableError
from order_manager.schemas import ExecutionMessage
from order_manager.services.channel.base import (
    BaseExecutionChannel,
    ExecutionSubscription,
)

logger = logging.getLogger(__name__)


class RedisSubscription(ExecutionSubscription):
    """Subscription reading from a Redis PubSub connection."""

    def __init__(self, pubsub: PubSub):
        self.pubsub = pubsub

    async def get(self, timeout: Optional[float] = None) -> Optional[ExecutionMessage]:
        message = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if message is None:
            return None

        try:
            return ExecutionMessage.model_validate_json(message["data"])
        except ValidationError as e:
            logger.warning(f"Dropping malformed message on {message.get('channel')}: {e}")
            return None


class RedisExecutionChannel(BaseExecutionChannel):
    """Execution channel on Redis pub/sub."""

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None):
        settings = get_settings()
        self.channel = channel or settings.execution_channel
        self.client = aioredis.from_url(redis_url or settings.redis_url, decode_responses=True)
        logger.info(f"RedisExecutionChannel initialized (channel={self.channel})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def has_subscribers(self) -> bool:
        try:
            counts = await self.client.pubsub_numsub(self.channel)
        except RedisError as e:
            logger.error(f"Redis error checking subscribers: {e}")
            raise ChannelUnavailableError("Execution channel is unreachable") from e

        return any(count > 0 for _, count in counts)

    async def publish(self, message: ExecutionMessage) -> int:
        try:
            receivers = await self.client.publish(self.channel, message.model_dump_json())
        except RedisError as e:
            logger.error(f"Redis error publishing {message.type.value} for {message.order_uuid}: {e}")
            raise ChannelUnavailableError("Execution channel is unreachable") from e

        logger.debug(f"Published {message.type.value} for {message.order_uuid} to {receivers} subscriber(s)")
        return receivers

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[ExecutionSubscription]:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(self.channel)
        logger.info(f"Executor subscribed to {self.channel}")
        try:
            yield RedisSubscription(pubsub)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
            logger.info(f"Executor unsubscribed from {self.channel}")

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
