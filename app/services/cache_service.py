from typing import Optional

import redis.asyncio as redis_async

from app.config import settings
from app.logging_config import get_logger

logger = get_logger("cache_service")

_redis_client: Optional[redis_async.Redis] = None


def get_redis_client() -> Optional[redis_async.Redis]:
    """Shared async redis client, or None when no REDIS_URL is configured."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    if not settings.redis_url:
        return None
    try:
        _redis_client = redis_async.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )
    except Exception as exc:
        logger.warning(
            "Redis client unavailable",
            extra={"context": {"error": str(exc)}},
        )
        _redis_client = None
    return _redis_client


async def ping_redis(client: Optional[redis_async.Redis]) -> str:
    if client is None:
        return "disabled"
    try:
        await client.ping()
        return "up"
    except Exception as exc:
        logger.warning("Redis ping failed", extra={"context": {"error": str(exc)}})
        return "down"


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
    except Exception as exc:
        logger.warning("Redis close failed", extra={"context": {"error": str(exc)}})
    _redis_client = None
