"""Two-tier caching for candidate lookups and recommendations."""

from smartmeal.caching.cache_keys import CacheKeyBuilder, params_hash
from smartmeal.caching.cache_service import (
    CacheBackend,
    MemoryCacheBackend,
    RedisCacheBackend,
    TwoTierCache,
)

__all__ = [
    "CacheBackend",
    "CacheKeyBuilder",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "TwoTierCache",
    "params_hash",
]
