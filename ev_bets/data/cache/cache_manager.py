"""
Per-client TTL cache.

Every provider client owns one CacheManager instance; nothing is shared
across clients or held in module globals. Entries expire after a TTL
chosen per data type and can be dropped by prefix or all at once.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from loguru import logger


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None if absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value; a TTL of 0 or less never expires."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix and return how many."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    @abstractmethod
    async def get_ttl(self, key: str) -> Optional[int]:
        """Remaining TTL in seconds, -1 for no expiry, None if absent."""
        pass

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def close(self) -> None:
        await self.clear()


class InMemoryCache(CacheBackend):
    """
    Dict-backed cache of (value, expiry) pairs.

    Expired entries are removed lazily on read and in bulk when the cache
    is full; if it is still full, the oldest tenth of entries is evicted.
    """

    def __init__(
        self,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: dict[str, tuple[Any, Optional[float]]] = {}
        self._max_size = max_size
        self._clock = clock
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            value, expiry_time = entry
            if expiry_time is not None and self._clock() >= expiry_time:
                del self._cache[key]
                return None

            return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_size:
                self._evict_expired()
                if len(self._cache) >= self._max_size:
                    oldest = list(self._cache)[: max(1, self._max_size // 10)]
                    for k in oldest:
                        del self._cache[k]

            expiry_time = self._clock() + ttl_seconds if ttl_seconds > 0 else None
            self._cache[key] = (value, expiry_time)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._cache.pop(key, None)

    async def clear_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._cache if k.startswith(prefix)]
            for key in doomed:
                del self._cache[key]
            return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    async def get_ttl(self, key: str) -> Optional[int]:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            _, expiry_time = entry
            if expiry_time is None:
                return -1

            return max(0, int(expiry_time - self._clock()))

    async def evict_expired(self) -> int:
        """Remove every expired entry and return how many were removed."""
        async with self._lock:
            return self._evict_expired()

    def _evict_expired(self) -> int:
        now = self._clock()
        doomed = [
            k for k, (_, exp) in self._cache.items() if exp is not None and now >= exp
        ]
        for key in doomed:
            del self._cache[key]
        return len(doomed)


class CacheManager:
    """
    Namespaced cache with per-data-type TTLs.

    Example:
        >>> cache = CacheManager.create_memory_cache(key_prefix="optic_odds")
        >>> await cache.set("sportsbooks", books, data_type="sportsbooks")
        >>> await cache.get("sportsbooks")
    """

    # Default TTL values by data type
    DEFAULT_TTLS = {
        "odds": 300,  # 5 minutes
        "fixtures": 300,
        "sportsbooks": 3600,  # 1 hour
        "leagues": 3600,
        "player_search": 3600,
        "team_search": 3600,
        "player_stats": 1800,  # 30 minutes
        "season_averages": 1800,
        "recent_fixtures": 300,
        "default": 300,
    }

    def __init__(
        self,
        backend: CacheBackend,
        key_prefix: str = "ev_bets",
        ttls: Optional[dict[str, int]] = None,
    ):
        self.backend = backend
        self.key_prefix = key_prefix
        self.ttls = {**self.DEFAULT_TTLS, **(ttls or {})}
        self.logger = logger.bind(component="cache", namespace=key_prefix)

    @classmethod
    def create_memory_cache(
        cls,
        key_prefix: str = "ev_bets",
        max_size: int = 10000,
        ttls: Optional[dict[str, int]] = None,
    ) -> "CacheManager":
        """Create a cache manager with an in-memory backend."""
        return cls(InMemoryCache(max_size=max_size), key_prefix=key_prefix, ttls=ttls)

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def _get_ttl(self, data_type: str, ttl_seconds: Optional[int] = None) -> int:
        if ttl_seconds is not None:
            return ttl_seconds
        return self.ttls.get(data_type, self.ttls["default"])

    async def get(self, key: str) -> Optional[Any]:
        value = await self.backend.get(self._make_key(key))
        if value is not None:
            self.logger.debug(f"Cache hit: {key}")
        else:
            self.logger.debug(f"Cache miss: {key}")
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
        data_type: str = "default",
    ) -> None:
        ttl = self._get_ttl(data_type, ttl_seconds)
        await self.backend.set(self._make_key(key), value, ttl)
        self.logger.debug(f"Cache set: {key} (TTL: {ttl}s)")

    async def delete(self, key: str) -> None:
        await self.backend.delete(self._make_key(key))

    async def clear_prefix(self, prefix: str) -> int:
        removed = await self.backend.clear_prefix(self._make_key(prefix))
        self.logger.info(f"Cache cleared for prefix {prefix} ({removed} keys)")
        return removed

    async def clear(self) -> None:
        """Drop every entry of this namespace."""
        removed = await self.backend.clear_prefix(f"{self.key_prefix}:")
        self.logger.info(f"Cache cleared ({removed} keys)")

    async def exists(self, key: str) -> bool:
        return await self.backend.exists(self._make_key(key))

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None,
        data_type: str = "default",
    ) -> Any:
        """
        Get value from cache or compute and store it.

        Args:
            key: Cache key
            factory: Async callable to compute value if not cached
            ttl_seconds: Optional TTL override
            data_type: Data type for default TTL lookup

        Returns:
            Cached or computed value. None and empty results are returned
            but not cached, so a failed fetch is retried next time.
        """
        value = await self.get(key)
        if value is not None:
            return value

        value = await factory()
        if value is not None and value != [] and value != {}:
            await self.set(key, value, ttl_seconds, data_type)
        return value

    async def close(self) -> None:
        await self.backend.close()

    async def health_check(self) -> dict:
        """Check cache health."""
        test_key = self._make_key("_health_check")
        try:
            await self.backend.set(test_key, "ok", 60)
            value = await self.backend.get(test_key)
            await self.backend.delete(test_key)
        except Exception as e:
            return {
                "status": "unhealthy",
                "backend": type(self.backend).__name__,
                "error": str(e),
            }
        return {
            "status": "healthy" if value == "ok" else "degraded",
            "backend": type(self.backend).__name__,
        }
