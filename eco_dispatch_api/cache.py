# eco_dispatch_api/cache.py
"""
Cache-aside coordinator and its pluggable backends.

The coordinator owns no computation: callers hand it a key, a TTL and a
compute function. Backend trouble (down, slow, corrupt entry) only ever costs
a recomputation; it is never visible to the caller.
"""
import json
import logging
import threading
import time
from urllib.parse import quote

import redis

from eco_dispatch_api.ports import call_with_timeout

logger = logging.getLogger(__name__)


def serialize(value):
    return json.dumps(value, sort_keys=True, separators=(',', ':'))


def _key_part(value):
    # ':' and '%' are escaped so free-text parts cannot forge a separator
    return quote(str(value), safe='')


def route_cache_key(ctx, route_key):
    """Deterministic key over every input that changes a route score."""
    return (
        f"routes:v3:c:{_key_part(ctx.cargo_type)}:l:{_key_part(ctx.locomotive_type)}"
        f":g:{float(ctx.grade_percent)!r}:t:{float(ctx.tonnage)!r}"
        f":rk:{_key_part(route_key or 'default')}"
    )


KPI_CACHE_KEY = 'kpis:v1'


# ---------- Backends ----------

class MemoryCacheBackend:
    """In-process TTL store used when no Redis is configured (and in tests)."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key, value, ttl_seconds):
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def ping(self):
        return True


class RedisCacheBackend:
    """Redis-backed store; entries expire server-side via SET ... EX."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url, timeout=0.5):
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            retry_on_timeout=False,
        )
        return cls(client)

    def get(self, key):
        raw = self.client.get(key)
        if raw is None:
            return None
        return raw.decode('utf-8') if isinstance(raw, bytes) else raw

    def set(self, key, value, ttl_seconds):
        self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    def ping(self):
        return bool(self.client.ping())


# ---------- Coordinator ----------

class CacheAside:
    def __init__(self, backend=None, timeout=0.5):
        self.backend = backend
        self.timeout = timeout

    def lookup(self, key):
        """Return the cached value, or None on miss / backend failure."""
        if self.backend is None:
            return None
        result = call_with_timeout('cache', self.backend.get, key, timeout=self.timeout)
        if not result.ok or result.value is None:
            return None
        try:
            return json.loads(result.value)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def store(self, key, payload, ttl_seconds):
        if self.backend is None:
            return False
        result = call_with_timeout('cache', self.backend.set, key, payload, ttl_seconds,
                                   timeout=self.timeout)
        return result.ok

    def get_or_compute(self, key, ttl_seconds, compute_fn):
        """
        Return the cached value for `key`, computing and caching it on a miss.

        Exceptions raised by compute_fn propagate and nothing is cached.
        """
        cached = self.lookup(key)
        if cached is not None:
            logger.debug("cache hit %s", key)
            return cached
        logger.debug("cache miss %s", key)
        payload = serialize(compute_fn())
        if not self.store(key, payload, ttl_seconds):
            logger.debug("cache population skipped for %s", key)
        # hand back the same shape a later hit would produce
        return json.loads(payload)

    def healthy(self):
        if self.backend is None:
            return False
        result = call_with_timeout('cache', self.backend.ping, timeout=self.timeout)
        return bool(result.ok and result.value)


def build_cache(redis_url=None, enabled=True, timeout=0.5):
    """Redis when a URL is configured, otherwise the in-process store."""
    if not enabled:
        return CacheAside(None, timeout)
    if redis_url:
        logger.info("Using Redis cache backend")
        return CacheAside(RedisCacheBackend.from_url(redis_url, timeout), timeout)
    return CacheAside(MemoryCacheBackend(), timeout)
