"""Two-tier cache-aside store.

A process-local tier with a short TTL sits in front of a distributed tier
(Redis in production). Both tiers implement ``CacheBackend`` and are always
written and invalidated together through ``TwoTierCache``.

Failure policy: backend errors are logged and treated as a miss. The engine
falls back to the store and never fails a request because the cache is down.

Usage:
    cache = TwoTierCache(MemoryCacheBackend(), RedisCacheBackend.from_url(url))
    value = cache.get_or_compute(key, lambda: expensive(), ttl=1800)
    cache.invalidate_by_pattern("smartmeal:user:42:mealplans:*")
"""

import fnmatch
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from smartmeal.config import CacheSettings
from smartmeal.data_layer.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """One cache tier. Implementations raise CacheError on failure."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None on miss/expiry."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store *value* for *ttl* seconds."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob *pattern*; return the count."""
        ...


class MemoryCacheBackend(CacheBackend):
    """Thread-safe in-process TTL cache.

    When ``max_entries`` is reached, expired entries are purged first and then
    the entry closest to expiry is evicted.
    """

    def __init__(self, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict()
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            soonest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[soonest]


class RedisCacheBackend(CacheBackend):
    """Distributed tier backed by Redis; values are stored as JSON."""

    SCAN_BATCH = 500

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 1.0) -> "RedisCacheBackend":
        """Create a backend from a redis:// URL.

        The connection is lazy; an unreachable server surfaces as CacheError
        on first use.
        """
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )
        return cls(client)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as exc:
            raise CacheError("get", key, str(exc)) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheError("deserialize", key, str(exc)) from exc

    def set(self, key: str, value: Any, ttl: float) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheError("serialize", key, str(exc)) from exc
        try:
            self.client.set(key, payload, ex=max(1, int(ttl)))
        except redis.RedisError as exc:
            raise CacheError("set", key, str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as exc:
            raise CacheError("delete", key, str(exc)) from exc

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch = []
        try:
            for key in self.client.scan_iter(match=pattern, count=self.SCAN_BATCH):
                batch.append(key)
                if len(batch) >= self.SCAN_BATCH:
                    deleted += self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.client.delete(*batch)
        except redis.RedisError as exc:
            raise CacheError("delete_pattern", pattern, str(exc)) from exc
        return deleted


class TwoTierCache:
    """Cache-aside facade over a local and an optional distributed tier.

    Read path: local, then distributed (repopulating local on hit), then the
    factory. ``None`` is never cached and always reads as a miss.
    """

    def __init__(
        self,
        local: Optional[CacheBackend] = None,
        distributed: Optional[CacheBackend] = None,
        settings: Optional[CacheSettings] = None
    ):
        self.settings = settings or CacheSettings()
        self.local = local or MemoryCacheBackend(max_entries=self.settings.local_max_entries)
        self.distributed = distributed

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "TwoTierCache":
        distributed = None
        if settings.redis_url:
            distributed = RedisCacheBackend.from_url(settings.redis_url)
        return cls(
            local=MemoryCacheBackend(max_entries=settings.local_max_entries),
            distributed=distributed,
            settings=settings,
        )

    def _local_ttl(self, ttl: float) -> float:
        return min(ttl, self.settings.local_ttl_cap)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None on miss."""
        try:
            value = self.local.get(key)
        except CacheError as exc:
            logger.warning("Local cache read failed, treating as miss: %s", exc)
            value = None
        if value is not None:
            return value

        if self.distributed is None:
            return None
        try:
            value = self.distributed.get(key)
        except CacheError as exc:
            logger.warning("Distributed cache read failed, treating as miss: %s", exc)
            return None
        if value is not None:
            try:
                self.local.set(key, value, self.settings.local_ttl_cap)
            except CacheError as exc:
                logger.warning("Local cache repopulation failed: %s", exc)
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if value is None:
            return
        ttl = self.settings.default_ttl if ttl is None else ttl
        try:
            self.local.set(key, value, self._local_ttl(ttl))
        except CacheError as exc:
            logger.warning("Local cache write failed: %s", exc)
        if self.distributed is not None:
            try:
                self.distributed.set(key, value, ttl)
            except CacheError as exc:
                logger.warning("Distributed cache write failed: %s", exc)

    def get_or_compute(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: Optional[float] = None,
        empty_ttl: Optional[float] = None
    ) -> Any:
        """Return the cached value, computing and storing it on a miss.

        Exceptions raised by *factory* propagate and nothing is cached.
        Concurrent misses on the same key may both run the factory.

        Args:
            key: Cache key
            factory: Zero-argument callable producing the value
            ttl: Distributed-tier TTL in seconds (default from settings)
            empty_ttl: TTL used instead when the result is an empty
                collection (default from settings)
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = factory()
        if value is None:
            return None
        if _is_empty(value):
            chosen_ttl = self.settings.empty_result_ttl if empty_ttl is None else empty_ttl
        else:
            chosen_ttl = ttl
        self.set(key, value, chosen_ttl)
        return value

    def invalidate(self, key: str) -> None:
        """Remove *key* from both tiers."""
        try:
            self.local.delete(key)
        except CacheError as exc:
            logger.warning("Local cache delete failed: %s", exc)
        if self.distributed is not None:
            try:
                self.distributed.delete(key)
            except CacheError as exc:
                logger.warning("Distributed cache delete failed: %s", exc)

    def invalidate_by_pattern(self, pattern: str) -> int:
        """Remove every key matching *pattern* from both tiers.

        A pattern without "*" is treated as a prefix.

        Returns:
            Number of distinct deletions reported by the tiers
        """
        if "*" not in pattern:
            pattern = pattern + "*"
        removed = 0
        try:
            removed += self.local.delete_pattern(pattern)
        except CacheError as exc:
            logger.warning("Local cache pattern delete failed: %s", exc)
        if self.distributed is not None:
            try:
                removed += self.distributed.delete_pattern(pattern)
            except CacheError as exc:
                logger.warning("Distributed cache pattern delete failed: %s", exc)
        return removed


def _is_empty(value: Any) -> bool:
    try:
        return len(value) == 0
    except TypeError:
        return False
