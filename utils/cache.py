"""
Key-value cache with per-key expiry

Holds credential health, route session ids, alert throttle keys and the
failure-rate windows. TTLCache is in-process; RedisTTLCache shares the same
state across worker processes when REDIS_URL is set. build_cache picks one.
"""

import logging
import pickle
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from config.settings import SETTINGS

logger = logging.getLogger(__name__)


class TTLCache:
    """Thread-safe dict with optional per-key TTL (seconds)"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def _live_entry(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        """Caller holds the lock"""
        entry = self._data.get(key)
        if entry is not None and self._expired(entry[1]):
            del self._data[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._live_entry(key)
            return default if entry is None else entry[0]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def set_if_absent(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store value only if key is missing or expired; True if this call stored it"""
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            if self._live_entry(key) is not None:
                return False
            self._data[key] = (value, expires_at)
            return True

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until key expires, None if missing or non-expiring"""
        with self._lock:
            entry = self._data.get(key)
            if entry is None or entry[1] is None:
                return None
            remaining = entry[1] - self._clock()
            return remaining if remaining > 0 else None

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None,
               ttl: Optional[float] = None) -> Any:
        """Atomically replace key with fn(current) and return the new value"""
        with self._lock:
            entry = self._live_entry(key)
            new_value = fn(default if entry is None else entry[0])
            expires_at = self._clock() + ttl if ttl is not None else None
            self._data[key] = (new_value, expires_at)
            return new_value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisTTLCache:
    """
    Same interface as TTLCache, stored in Redis under a key prefix.

    Values are pickled, so only point this at a private Redis instance.
    Expiry uses Redis' own clock.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = 'review_auth:'):
        self._client = client
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @staticmethod
    def _px(ttl: Optional[float]) -> Optional[int]:
        return max(1, int(ttl * 1000)) if ttl is not None else None

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._client.get(self._key(key))
        return default if raw is None else pickle.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._client.set(self._key(key), pickle.dumps(value), px=self._px(ttl))

    def set_if_absent(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        return bool(self._client.set(self._key(key), pickle.dumps(value), px=self._px(ttl), nx=True))

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._key(key)))

    def delete(self, key: str) -> None:
        self._client.delete(self._key(key))

    def ttl(self, key: str) -> Optional[float]:
        remaining_ms = self._client.pttl(self._key(key))
        # -2 missing, -1 no expiry
        if remaining_ms is None or remaining_ms < 0:
            return None
        return remaining_ms / 1000.0

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None,
               ttl: Optional[float] = None) -> Any:
        """Read-modify-write under WATCH; retried by redis-py if another writer wins"""
        full_key = self._key(key)

        def apply(pipe):
            raw = pipe.get(full_key)
            new_value = fn(default if raw is None else pickle.loads(raw))
            pipe.multi()
            pipe.set(full_key, pickle.dumps(new_value), px=self._px(ttl))
            return new_value

        return self._client.transaction(apply, full_key, value_from_callable=True)

    def clear(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
        if keys:
            self._client.delete(*keys)


def build_cache(redis_url: Optional[str] = None, clock: Callable[[], float] = time.time):
    """Redis-backed cache when a URL is configured and reachable, in-process otherwise"""
    redis_url = SETTINGS['redis_url'] if redis_url is None else redis_url
    if not redis_url:
        return TTLCache(clock=clock)
    try:
        client = redis.from_url(redis_url)
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis, using in-process cache: {e}")
        return TTLCache(clock=clock)
    logger.info("Shared state cache using Redis")
    return RedisTTLCache(client)
