"""Redis client configuration."""

import redis

from fcm_dispatch.config import Settings, get_settings


def create_redis_client(settings: Settings | None = None) -> redis.Redis:
    """
    Create a Redis client from settings.

    Args:
        settings: Optional settings, defaults to the cached settings

    Returns:
        Redis client instance
    """
    settings = settings or get_settings()

    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        username=settings.redis_username,
        password=settings.redis_password or None,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )
