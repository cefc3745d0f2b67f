"""
Base classes for provider clients.

Provides the common retry loop, circuit breaker, health tracking,
per-client TTL cache and rate-limited aiohttp transport that every
provider client builds on.
"""
import asyncio
import functools
import hashlib
import json
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

import aiohttp
from loguru import logger

from ..cache import CacheManager

T = TypeVar("T")

Params = Optional[dict[str, Union[str, int, float, list]]]


class DataSourceStatus(str, Enum):
    """Health status of a provider client."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


@dataclass
class DataSourceHealth:
    """Health snapshot reported by a provider client."""

    source_name: str
    status: DataSourceStatus
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None
    latency_ms: Optional[float] = None


@dataclass
class RetryConfig:
    """Bounded exponential backoff."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def backoff(self, attempt: int) -> float:
        """Wait after failed attempt number `attempt` (1-based)."""
        delay = self.initial_delay_seconds * self.exponential_base ** (attempt - 1)
        delay = min(delay, self.max_delay_seconds)
        return delay * (0.5 + random.random()) if self.jitter else delay


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout_seconds: int = 60
    half_open_max_calls: int = 3


class CircuitBreaker:
    """
    Stops calling a provider that keeps failing.

    closed -> open after `failure_threshold` failed fetches;
    open -> half-open once `recovery_timeout_seconds` have passed;
    half-open -> closed after `half_open_max_calls` successes, or back to
    open on the first failure.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self.reset()

    def reset(self) -> None:
        self.state = self.CLOSED
        self.failures = 0
        self.half_open_successes = 0
        self.last_failure_at: Optional[datetime] = None

    def allows_request(self) -> bool:
        if self.state != self.OPEN:
            return True
        if self.last_failure_at is None:
            return False
        waited = (datetime.now() - self.last_failure_at).total_seconds()
        if waited < self.config.recovery_timeout_seconds:
            return False
        self.state = self.HALF_OPEN
        self.half_open_successes = 0
        return True

    def on_success(self) -> bool:
        """Record a success; True when it closes a half-open breaker."""
        if self.state != self.HALF_OPEN:
            self.failures = 0
            return False
        self.half_open_successes += 1
        if self.half_open_successes < self.config.half_open_max_calls:
            return False
        self.state = self.CLOSED
        self.failures = 0
        return True

    def on_failure(self) -> bool:
        """Record a failure; True when it opens the breaker."""
        self.failures += 1
        self.last_failure_at = datetime.now()
        if self.state == self.OPEN:
            return False
        if self.state == self.HALF_OPEN or self.failures >= self.config.failure_threshold:
            self.state = self.OPEN
            return True
        return False


class DataSourceError(Exception):
    """Base exception for provider client errors."""

    def __init__(
        self,
        message: str,
        source_name: str,
        original_error: Optional[Exception] = None,
        retry_allowed: bool = True,
    ):
        super().__init__(message)
        self.source_name = source_name
        self.original_error = original_error
        self.retry_allowed = retry_allowed


class RateLimitError(DataSourceError):
    """HTTP 429; retried after `retry_after_seconds` when the provider sends it."""

    def __init__(
        self,
        source_name: str,
        retry_after_seconds: Optional[float] = None,
    ):
        super().__init__(
            f"Rate limit exceeded for {source_name}",
            source_name,
            retry_allowed=True,
        )
        self.retry_after_seconds = retry_after_seconds


class AuthenticationError(DataSourceError):
    """Rejected credentials. Never retried."""

    def __init__(self, source_name: str, message: str = "Authentication failed"):
        super().__init__(message, source_name, retry_allowed=False)


class DataNotAvailableError(DataSourceError):
    """The provider has nothing for this request. Never retried."""

    def __init__(self, source_name: str, message: str):
        super().__init__(message, source_name, retry_allowed=False)


class BaseDataSource(ABC, Generic[T]):
    """
    Abstract base class for provider clients.

    Subclasses implement `_fetch_impl()` without any retry handling;
    `fetch()` wraps it with bounded backoff (honoring Retry-After), the
    circuit breaker and health bookkeeping.

    `fetch()` raises once retries are exhausted; `safe_fetch()` returns a
    default instead, which is what the pipeline uses.
    """

    def __init__(
        self,
        source_name: str,
        enabled: bool = True,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
    ):
        self.source_name = source_name
        self.enabled = enabled
        self.retry_config = retry_config or RetryConfig()
        self._breaker = CircuitBreaker(circuit_breaker_config or CircuitBreakerConfig())
        self._health = DataSourceHealth(
            source_name=source_name,
            status=DataSourceStatus.HEALTHY if enabled else DataSourceStatus.DISABLED,
        )

        self.logger = logger.bind(source=source_name)

    @property
    def is_available(self) -> bool:
        """Enabled and not short-circuited."""
        if not self.enabled:
            return False
        was_open = self._breaker.state == CircuitBreaker.OPEN
        allowed = self._breaker.allows_request()
        if was_open and allowed:
            self.logger.info("Circuit breaker half-open, probing provider")
        return allowed

    @abstractmethod
    async def _fetch_impl(self, *args, **kwargs) -> T:
        """One attempt at the underlying request."""

    @abstractmethod
    async def health_check(self) -> DataSourceHealth:
        pass

    async def fetch(self, *args, **kwargs) -> T:
        """
        Fetch with retries.

        Raises:
            DataSourceError: When the source is unavailable, the error is
                not retryable, or all attempts failed
        """
        if not self.is_available:
            raise DataSourceError(
                f"Data source {self.source_name} is not available",
                self.source_name,
                retry_allowed=False,
            )

        attempts = self.retry_config.max_attempts
        started = time.monotonic()
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                result = await self._fetch_impl(*args, **kwargs)
            except DataSourceError as e:
                if not e.retry_allowed:
                    self.logger.warning(f"Not retrying: {e}")
                    self._record_failure(str(e))
                    raise
                last_error = e
            except Exception as e:
                self.logger.error(f"Unexpected error on attempt {attempt}: {e}")
                last_error = e
            else:
                self._record_success((time.monotonic() - started) * 1000)
                return result

            if attempt < attempts:
                delay = self._calculate_delay(attempt, last_error)
                self.logger.info(
                    f"Attempt {attempt}/{attempts} failed ({last_error}), "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        self._record_failure(str(last_error) if last_error else "Unknown error")
        raise DataSourceError(
            f"All {attempts} attempts failed for {self.source_name}",
            self.source_name,
            original_error=last_error,
            retry_allowed=False,
        )

    async def safe_fetch(self, *args, default: Any = None, **kwargs) -> Any:
        """
        Like fetch(), but degrades to `default` instead of raising.

        Provider failures are a normal, countable outcome for callers.
        """
        try:
            return await self.fetch(*args, **kwargs)
        except DataSourceError as e:
            self.logger.warning(f"Giving up, returning empty result: {e}")
            return default

    def _calculate_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Retry-After when the provider sent one, else backoff; both capped."""
        retry_after = getattr(error, "retry_after_seconds", None)
        if retry_after is not None:
            return min(float(retry_after), self.retry_config.max_delay_seconds)
        return self.retry_config.backoff(attempt)

    def _record_success(self, latency_ms: float) -> None:
        health = self._health
        health.last_success = datetime.now()
        health.latency_ms = latency_ms
        health.consecutive_failures = 0
        health.error_message = None
        health.status = DataSourceStatus.HEALTHY

        if self._breaker.on_success():
            self.logger.info("Circuit breaker closed after successful recovery")

    def _record_failure(self, error_message: str) -> None:
        health = self._health
        health.last_failure = datetime.now()
        health.consecutive_failures += 1
        health.error_message = error_message

        if self._breaker.on_failure():
            self.logger.error(f"Circuit breaker opened after {self._breaker.failures} failures")

        if self._breaker.state == CircuitBreaker.OPEN:
            health.status = DataSourceStatus.UNHEALTHY
        elif health.consecutive_failures >= 2:
            health.status = DataSourceStatus.DEGRADED

    def get_health(self) -> DataSourceHealth:
        return self._health

    def reset_circuit_breaker(self) -> None:
        self._breaker.reset()
        self._health.status = DataSourceStatus.HEALTHY
        self._health.consecutive_failures = 0
        self._health.error_message = None
        self.logger.info("Circuit breaker reset")


class CachedDataSource(BaseDataSource[T]):
    """
    Data source owning a TTL cache.

    Each instance gets its own CacheManager namespace unless one is
    injected.
    """

    def __init__(
        self,
        source_name: str,
        cache_ttl_seconds: int = 300,
        cache: Optional[CacheManager] = None,
        **kwargs,
    ):
        super().__init__(source_name, **kwargs)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache = cache or CacheManager.create_memory_cache(key_prefix=source_name)

    def _get_cache_key(self, *args, **kwargs) -> str:
        """Cache key from normalized request arguments."""
        key_data = {
            "args": args,
            "kwargs": {k: v for k, v in sorted(kwargs.items())},
        }
        encoded = json.dumps(key_data, default=str, sort_keys=True).encode()
        return hashlib.md5(encoded).hexdigest()

    async def fetch_cached(
        self,
        *args,
        use_cache: bool = True,
        ttl_seconds: Optional[int] = None,
        default: Any = None,
        raise_errors: bool = False,
        **kwargs,
    ) -> Any:
        """
        safe_fetch() behind the cache.

        With `raise_errors`, fetch() is used instead so callers can tell a
        failed request from an empty one. Empty and failed results are not
        cached.
        """
        if raise_errors:
            load = self.fetch
        else:
            load = functools.partial(self.safe_fetch, default=default)

        if not use_cache:
            return await load(*args, **kwargs)

        cache_key = self._get_cache_key(*args, **kwargs)
        cached_value = await self.cache.get(cache_key)
        if cached_value is not None:
            return cached_value

        result = await load(*args, **kwargs)
        if result is not None and result != [] and result != {} and result is not default:
            await self.cache.set(
                cache_key, result, ttl_seconds=ttl_seconds or self.cache_ttl_seconds
            )
        return result


class HTTPDataSource(CachedDataSource[Any]):
    """
    Rate-limited aiohttp transport for JSON APIs.

    Enforces a minimum spacing between requests and a global cap on
    in-flight requests, and maps HTTP failures onto the DataSourceError
    hierarchy so fetch() knows what to retry.
    """

    REQUEST_TIMEOUT_SECONDS = 30

    def __init__(
        self,
        source_name: str,
        base_url: str,
        api_key: str,
        min_request_interval_seconds: float = 0.2,
        max_concurrent_requests: int = 5,
        **kwargs,
    ):
        super().__init__(source_name, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

        self._request_semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._rate_lock = asyncio.Lock()
        self._last_request_time: Optional[datetime] = None
        self._min_request_interval = min_request_interval_seconds

        self._session: Optional[aiohttp.ClientSession] = None

        if not api_key:
            self.logger.warning(f"No API key provided - {source_name} will be disabled")
            self.enabled = False
            self._health.status = DataSourceStatus.DISABLED

    def _auth_headers(self) -> dict[str, str]:
        return {}

    def _auth_params(self) -> dict[str, str]:
        return {}

    def _encode_params(self, params: Params) -> list[tuple[str, str]]:
        """Flatten params; list values become repeated keys."""
        pairs: list[tuple[str, str]] = []
        for key, value in {**self._auth_params(), **(params or {})}.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((key, str(v)) for v in value)
            else:
                pairs.append((key, str(value)))
        return pairs

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT_SECONDS)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers=self._auth_headers()
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _rate_limit(self) -> None:
        """Enforce the minimum spacing between requests."""
        async with self._rate_lock:
            if self._last_request_time:
                elapsed = (datetime.now() - self._last_request_time).total_seconds()
                if elapsed < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - elapsed)
            self._last_request_time = datetime.now()

    def _retry_after(self, headers) -> Optional[float]:
        value = headers.get("Retry-After")
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    async def _make_request(self, path: str, params: Params = None) -> Any:
        """
        Make one authenticated GET request.

        Raises:
            AuthenticationError: On 401/403
            RateLimitError: On 429
            DataNotAvailableError: On 404
            DataSourceError: On 422 (not retried), other statuses and
                transport errors (retried)
        """
        if not self.enabled:
            raise DataSourceError(
                f"{self.source_name} not enabled", self.source_name, retry_allowed=False
            )

        url = f"{self.base_url}{path}"

        async with self._request_semaphore:
            await self._rate_limit()
            session = await self._get_session()

            try:
                async with session.get(url, params=self._encode_params(params)) as response:
                    if response.status == 200:
                        return await response.json()

                    if response.status in (401, 403):
                        raise AuthenticationError(self.source_name, "Invalid API key")

                    if response.status == 429:
                        raise RateLimitError(
                            self.source_name,
                            retry_after_seconds=self._retry_after(response.headers),
                        )

                    error_text = await response.text()

                    if response.status == 404:
                        raise DataNotAvailableError(
                            self.source_name, f"Not found: {path}"
                        )

                    if response.status == 422:
                        raise DataSourceError(
                            f"Invalid request: {error_text}",
                            self.source_name,
                            retry_allowed=False,
                        )

                    raise DataSourceError(
                        f"API error {response.status}: {error_text}",
                        self.source_name,
                        retry_allowed=True,
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise DataSourceError(
                    f"Connection error: {e}",
                    self.source_name,
                    original_error=e,
                    retry_allowed=True,
                )

    async def _fetch_impl(self, path: str, params: Params = None) -> Any:
        return await self._make_request(path, params)

    async def get_json(
        self,
        path: str,
        params: Params = None,
        data_type: str = "default",
        use_cache: bool = True,
        default: Any = None,
        raise_errors: bool = False,
    ) -> Any:
        """
        Cached, retried GET returning `default` when the provider fails.

        The TTL comes from the cache's per-data-type table. Pass
        `raise_errors=True` to get the DataSourceError instead.
        """
        return await self.fetch_cached(
            path,
            params,
            use_cache=use_cache,
            ttl_seconds=self.cache._get_ttl(data_type),
            default=default,
            raise_errors=raise_errors,
        )

    async def health_check(self) -> DataSourceHealth:
        if not self.enabled:
            return DataSourceHealth(
                source_name=self.source_name,
                status=DataSourceStatus.DISABLED,
                error_message="API key not configured",
            )
        return self._health
