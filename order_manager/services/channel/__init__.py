"""
Execution Channel Factory

Returns the in-memory or Redis execution channel based on ENV_MODE.
"""

import logging
from functools import lru_cache

from order_manager.core.config import get_settings
from order_manager.services.channel.base import (
    BaseExecutionChannel,
    ExecutionSubscription,
)
from order_manager.services.channel.memory import InMemoryExecutionChannel
from order_manager.services.channel.redis import RedisExecutionChannel

logger = logging.getLogger(__name__)


@lru_cache()
def get_execution_channel() -> BaseExecutionChannel:
    """Get the configured execution channel."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Execution Channel: Using RedisExecutionChannel ({settings.env_mode.value} mode)")
        return RedisExecutionChannel()
    else:
        logger.info("Execution Channel: Using InMemoryExecutionChannel (development mode)")
        return InMemoryExecutionChannel()


def reset_execution_channel() -> None:
    """Clear the cached channel instance."""
    get_execution_channel.cache_clear()


__all__ = [
    "get_execution_channel",
    "reset_execution_channel",
    "BaseExecutionChannel",
    "ExecutionSubscription",
    "InMemoryExecutionChannel",
    "RedisExecutionChannel",
]
