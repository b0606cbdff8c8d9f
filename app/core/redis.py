"""
Process-wide async Redis client for the chat context cache.
Disabled when redis_url is empty; a failed connect also leaves it disabled (the chat keeps
working from the DB). Created on first use, closed by the app lifespan.
"""
import logging
from typing import Any

from app.config import get_settings
from app.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

_redis_client: Any = None


def _configured_url() -> str:
    return (get_settings().redis_url or "").strip()


def _safe_url(url: str) -> str:
    """Drop credentials before logging."""
    return url.rsplit("@", 1)[-1]


async def get_redis_client() -> Any:
    """Connected client, or None when disabled or unreachable."""
    global _redis_client
    if _redis_client is None:
        url = _configured_url()
        if not url:
            return None
        try:
            from redis.asyncio import Redis
            client = Redis.from_url(url, decode_responses=True)
            await client.ping()
        except Exception as e:
            logger.warning("Redis unavailable at %s, chat context cache disabled: %s", _safe_url(url), e)
            return None
        _redis_client = client
        logger.info("Redis chat context cache connected: %s", _safe_url(url))
    return _redis_client


def build_redis_chat_cache(client: Any) -> RedisChatCache:
    return RedisChatCache(client)


async def redis_status() -> dict[str, str]:
    """{"redis": "disabled" | "unavailable" | "ok" | "error"} for the status endpoint."""
    if not _configured_url():
        return {"redis": "disabled"}
    client = await get_redis_client()
    if client is None:
        return {"redis": "unavailable"}
    try:
        await client.ping()
    except Exception as e:
        logger.warning("Redis ping failed: %s", e)
        return {"redis": "error"}
    return {"redis": "ok"}


async def close_redis() -> None:
    global _redis_client
    client, _redis_client = _redis_client, None
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.warning("Redis close failed: %s", e)
