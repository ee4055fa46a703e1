"""
Redis client singleton for pub/sub messaging and rate limiting.

This module provides a singleton Redis client configured for production reliability
with connection pooling, retry logic, and health checks.

Used by:
- Notification dispatcher: publishes booking lifecycle events (fire-and-forget)
- Rate limiting middleware: per-IP counters for unauthenticated endpoints
"""

import json
import logging
from functools import lru_cache
from typing import Any

import redis.asyncio as redis
from redis import ConnectionError as RedisConnectionError

from shared.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> "redis.Redis[str]":
    """
    Get cached Redis client instance with production-ready configuration.

    Redis Key Patterns:
        - Rate limiting: rate_limit:public:{client_ip}:{window}
        - Pub/sub channel: settings.NOTIFICATIONS_CHANNEL

    Returns:
        Redis async client configured with connection pool and retry logic

    Note:
        Uses @lru_cache to ensure only one Redis connection pool is created.
        redis.from_url() connects lazily, so a missing Redis only surfaces
        on first command.
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        logger.info(
            f"Redis client initialized: {settings.REDIS_URL} "
            f"(max_connections=20, retry_on_timeout=True, health_check_interval=30s)"
        )
        return client

    except RedisConnectionError as e:
        logger.error(f"Redis connection failed: {e}", exc_info=True)
        raise


async def publish_to_channel(channel: str, message: dict[str, Any]) -> int:
    """
    Publish a message to a Redis pub/sub channel.

    Args:
        channel: Channel name
        message: Message dict to publish (will be JSON-serialized)

    Returns:
        Number of subscribers that received the message

    Raises:
        RedisConnectionError: If Redis is unreachable
    """
    client = get_redis_client()

    json_message = json.dumps(message, default=str)
    receivers = await client.publish(channel, json_message)

    logger.debug(f"Message published to channel '{channel}': {json_message[:100]}")
    return receivers
