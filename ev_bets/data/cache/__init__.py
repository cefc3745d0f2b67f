"""
Caching layer for provider clients.

Provides:
- CacheBackend: backend interface
- InMemoryCache: TTL dict cache owned by one client
- CacheManager: namespaced cache with per-data-type TTLs
"""
from .cache_manager import (
    CacheBackend,
    CacheManager,
    InMemoryCache,
)

__all__ = [
    "CacheBackend",
    "CacheManager",
    "InMemoryCache",
]
