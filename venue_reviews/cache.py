import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis

from .config import REDIS_CACHE_ENABLED, REDIS_URL

# --- Redis Client Initialization ---
redis_client = None
if REDIS_CACHE_ENABLED:
    try:
        # decode_responses=True makes Redis return str instead of bytes
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)
        redis_client.ping()
        logging.info(f"Successfully connected to Redis at {REDIS_URL}")
    except redis.exceptions.RedisError as e:
        logging.error(f"Could not connect to Redis at {REDIS_URL}: {e}. Caching will be disabled.")
        redis_client = None
        REDIS_CACHE_ENABLED = False


def redis_available() -> bool:
    return bool(REDIS_CACHE_ENABLED and redis_client)


# --- Cache Helper Functions ---

def get_from_cache(key: str):
    """
    Retrieves an item from the cache.
    Returns None if the item is not found or if caching is disabled.
    """
    if not redis_available():
        return None
    try:
        cached_value = redis_client.get(key)
        if cached_value:
            logging.debug(f"Cache HIT for key: {key}")
            return json.loads(cached_value)
        logging.debug(f"Cache MISS for key: {key}")
        return None
    except (redis.exceptions.RedisError, json.JSONDecodeError) as e:
        logging.error(f"Error retrieving from cache for key {key}: {e}")
        return None


def set_to_cache(key: str, value: Any, ttl: int = 3600):
    """
    Sets an item in the cache with a time-to-live (TTL).
    Does nothing if caching is disabled.
    """
    if not redis_available():
        return
    try:
        serialized_value = json.dumps(value)
        redis_client.setex(key, ttl, serialized_value)
        logging.debug(f"Cached value for key: {key} with TTL: {ttl}s")
    except (redis.exceptions.RedisError, TypeError) as e:
        logging.error(f"Error setting cache for key {key}: {e}")


# --- In-process tier ---

class TTLCache:
    """Per-process cache with expiry, sitting in front of Redis.

    ``get_or_load`` also de-duplicates concurrent loads: callers asking for a key
    while it is being loaded await the same task. Failed loads are not cached.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        self._purge_expired(now)
        if value is None:
            self._entries.pop(key, None)
            return
        self._entries[key] = (now + self.ttl_seconds, value)

    def _purge_expired(self, now: float) -> None:
        # Keys are free-form queries, so unread entries must not outlive their TTL
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def pending(self, key: str) -> Optional[asyncio.Task]:
        return self._pending.get(key)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        value = self.get(key)
        if value is not None:
            return value

        value = get_from_cache(key)
        if value is not None:
            self.set(key, value)
            return value

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader))
            self._pending[key] = task
        return await asyncio.shield(task)

    async def _load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await loader()
            self.set(key, value)
            if value is not None:
                set_to_cache(key, value, ttl=int(self.ttl_seconds))
            return value
        finally:
            self._pending.pop(key, None)

