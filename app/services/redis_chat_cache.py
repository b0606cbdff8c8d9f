"""
Follow-up context window per conversation, cached in Redis (Cache-Aside; the DB stays the source of truth).

Key: chat:conversation:{conversation_id}, a LIST of {"role", "content"} JSON entries,
oldest first, trimmed to the last `limit` entries and expiring after `ttl` seconds.
A Redis failure never reaches the caller: reads degrade to a miss, writes to a no-op.
"""
import json
import logging
from typing import Any

from app.config import get_settings

logger = logging.getLogger(__name__)

CHAT_KEY_PREFIX = "chat:conversation:"


def cache_key(conversation_id: str) -> str:
    return f"{CHAT_KEY_PREFIX}{conversation_id}"


def encode_entry(message: dict) -> str:
    return json.dumps({"role": message["role"], "content": message.get("content", "")})


def decode_entry(raw: Any) -> dict | None:
    """None for anything that is not a {"role", ...} object."""
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict) or "role" not in data:
        return None
    return {"role": data["role"], "content": data.get("content", "")}


class RedisChatCache:
    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int | None = None):
        settings = get_settings()
        self._redis = redis_client
        self._ttl = ttl_seconds or settings.chat_cache_ttl_seconds
        self._limit = limit or settings.chat_history_max_messages

    @property
    def limit(self) -> int:
        return self._limit

    def _failed(self, action: str, conversation_id: str, error: Exception) -> None:
        logger.warning("Redis chat cache %s failed for conversation %s: %s", action, conversation_id, error)

    async def get_last_messages(self, conversation_id: str) -> list[dict] | None:
        """Last `limit` entries oldest first, or None on miss or error (caller reads the DB)."""
        if not self._redis:
            return None
        try:
            raw_entries = await self._redis.lrange(cache_key(conversation_id), -self._limit, -1)
        except Exception as e:
            self._failed("read", conversation_id, e)
            return None
        entries = [m for m in map(decode_entry, raw_entries or []) if m]
        return entries or None

    async def append_messages(self, conversation_id: str, messages: list[dict]) -> None:
        """
        Extend a cached window after the DB write. RPUSHX only touches an existing list,
        so an expired window is rebuilt by warm() on the next read instead of half-filled here.
        """
        if not self._redis or not messages:
            return
        key = cache_key(conversation_id)
        try:
            length = await self._redis.rpushx(key, *[encode_entry(m) for m in messages])
            if length:
                await self._redis.ltrim(key, -self._limit, -1)
                await self._redis.expire(key, self._ttl)
        except Exception as e:
            self._failed("append", conversation_id, e)

    async def warm(self, conversation_id: str, messages: list[dict]) -> None:
        """Replace the window with `messages` (from the DB) in one pipeline."""
        if not self._redis or not messages:
            return
        key = cache_key(conversation_id)
        try:
            pipe = self._redis.pipeline()
            pipe.delete(key)
            for m in messages:
                pipe.rpush(key, encode_entry(m))
            pipe.ltrim(key, -self._limit, -1)
            pipe.expire(key, self._ttl)
            await pipe.execute()
        except Exception as e:
            self._failed("warm", conversation_id, e)
