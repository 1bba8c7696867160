"""
================================================================================
FedSearch v1.0 - Global Key-Value Store
================================================================================
Small persistence layer for state that outlives one request (search
history). Redis backend when REDIS_URL is configured, in-memory otherwise.

Shared across workers only when Redis is in use.
================================================================================
"""

import os
import json
import time
import logging
import threading
from typing import Any, Optional, Dict
from collections import OrderedDict

import redis

logger = logging.getLogger(__name__)


class RedisBackend:
    """Redis-based storage for shared state."""
    def __init__(self, url: str):
        self.client = redis.from_url(url, decode_responses=True)
        self.url = url

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        try:
            self.client.set(key, value, ex=ttl)
        except redis.RedisError as e:
            logger.error(f"Redis SET failed: {e}")

    def delete(self, key: str):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis DELETE failed: {e}")


class MemoryBackend:
    """In-memory storage (single process)."""
    def __init__(self, max_size: int = 1000):
        self._data: OrderedDict = OrderedDict()
        self._expires: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.max_size = max_size

    def _is_expired(self, key: str) -> bool:
        expiry = self._expires.get(key)
        if expiry and time.time() > expiry:
            return True
        return False

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if key not in self._data:
                return None
            if self._is_expired(key):
                del self._data[key]
                del self._expires[key]
                return None
            self._data.move_to_end(key)
            return self._data[key]

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        with self._lock:
            if len(self._data) >= self.max_size and key not in self._data:
                evicted, _ = self._data.popitem(last=False)
                self._expires.pop(evicted, None)
            self._data[key] = value
            if ttl:
                self._expires[key] = time.time() + ttl
            elif key in self._expires:
                del self._expires[key]

    def delete(self, key: str):
        with self._lock:
            self._data.pop(key, None)
            self._expires.pop(key, None)


class GlobalCache:
    """Unified key-value interface over Redis or memory."""
    def __init__(self, prefix: str = "fedsearch:", redis_url: Optional[str] = None):
        self.prefix = prefix
        if redis_url is None:
            redis_url = os.environ.get('REDIS_URL')

        if redis_url:
            try:
                self.backend = RedisBackend(redis_url)
                # Test connection
                self.backend.client.ping()
                self.is_redis = True
                logger.info(f"🚀 GlobalCache initialized with Redis: {redis_url}")
            except (redis.RedisError, ValueError) as e:
                logger.warning(f"⚠️ Redis connection failed, falling back to memory: {e}")
                self.backend = MemoryBackend()
                self.is_redis = False
        else:
            self.backend = MemoryBackend()
            self.is_redis = False
            logger.info("ℹ️ GlobalCache initialized with MemoryBackend")

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get_raw(self, key: str) -> Optional[str]:
        return self.backend.get(self._k(key))

    def set_raw(self, key: str, value: str, ttl: Optional[int] = None):
        self.backend.set(self._k(key), value, ttl)

    def get_json(self, key: str) -> Optional[Any]:
        data = self.get_raw(key)
        if data:
            try:
                return json.loads(data)
            except ValueError:
                logger.warning(f"Cache value for {key} is not valid JSON")
                return None
        return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None):
        try:
            self.set_raw(key, json.dumps(value), ttl)
        except (TypeError, ValueError) as e:
            logger.error(f"Cache SET failed for {key}: {e}")

    def delete(self, key: str):
        self.backend.delete(self._k(key))
