"""
BETSYNC - Cache Backend
Redis caching with circuit breaker, compare-and-write and set membership
"""

import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError, TimeoutError

from app.core.config import settings

logger = logging.getLogger(__name__)


class CachePrefix(str, Enum):
    """Cache key prefixes for organization"""
    GAMES = "games"
    GAME = "game"
    LIVE = "live"
    SPORTS = "sports"


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Circuit breaker for cache resilience"""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 30,
        half_open_requests: int = 3,
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_requests = half_open_requests
        self.clock = clock
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.half_open_successes = 0

    def can_execute(self) -> bool:
        """Check if request can be executed"""
        if self.state == CircuitBreakerState.CLOSED:
            return True

        if self.state == CircuitBreakerState.OPEN:
            if self.clock() - self.last_failure_time > self.recovery_timeout:
                self.state = CircuitBreakerState.HALF_OPEN
                self.half_open_successes = 0
                return True
            return False

        # HALF_OPEN state
        return True

    def record_success(self):
        """Record successful execution"""
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.half_open_successes += 1
            if self.half_open_successes >= self.half_open_requests:
                self.state = CircuitBreakerState.CLOSED
                self.failure_count = 0
        else:
            self.failure_count = 0

    def record_failure(self):
        """Record failed execution"""
        self.failure_count += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitBreakerState.HALF_OPEN:
            self.state = CircuitBreakerState.OPEN
        elif self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN


# Overwrite KEYS[1] only when the stored document's version field is older
# than the incoming one. ARGV: payload, ttl, version field, incoming version.
COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current then
    local ok, decoded = pcall(cjson.decode, current)
    if ok and type(decoded) == 'table' and decoded[ARGV[3]] ~= nil then
        if tonumber(decoded[ARGV[3]]) >= tonumber(ARGV[4]) then
            return 0
        end
    end
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', tonumber(ARGV[2]))
return 1
"""


class CacheManager:
    """Redis cache manager"""

    def __init__(self):
        self._client: Optional[redis.Redis] = None
        self._compare_and_set = None
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_TIMEOUT
        )
        self._stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
            "sets": 0,
            "stale_writes_rejected": 0,
        }

    async def initialize(self) -> None:
        """Initialize Redis connection"""
        if self._client is not None:
            return

        logger.info("Initializing Redis connection...")

        self._client = redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            decode_responses=False,
            retry_on_timeout=True
        )

        try:
            await self._client.ping()
            self._compare_and_set = self._client.register_script(COMPARE_AND_SET_SCRIPT)
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._client = None
            raise

    async def close(self) -> None:
        """Close Redis connection"""
        if self._client:
            logger.info("Closing Redis connection...")
            await self._client.aclose()
            self._client = None
            self._compare_and_set = None
            logger.info("Redis connection closed")

    async def _ensure_client(self) -> bool:
        """Connect lazily; an unreachable Redis counts against the breaker"""
        if self._client is not None:
            return True
        if not self._circuit_breaker.can_execute():
            return False
        try:
            await self.initialize()
            return True
        except Exception:
            self._circuit_breaker.record_failure()
            self._stats["errors"] += 1
            return False

    def _make_key(self, prefix: CachePrefix, key: str) -> str:
        """Create prefixed cache key"""
        return f"{settings.APP_NAME}:{prefix.value}:{key}"

    async def _execute_with_circuit_breaker(self, operation: Callable) -> Any:
        """Execute operation with circuit breaker protection"""
        if not self._circuit_breaker.can_execute():
            self._stats["errors"] += 1
            raise ConnectionError("Circuit breaker is open")

        try:
            result = await operation()
            self._circuit_breaker.record_success()
            return result
        except (ConnectionError, TimeoutError) as e:
            self._circuit_breaker.record_failure()
            self._stats["errors"] += 1
            logger.error(f"Redis operation failed: {e}")
            raise

    @staticmethod
    def _serialize(value: Any) -> bytes:
        return json.dumps(value).encode('utf-8')

    @staticmethod
    def _deserialize(value: bytes) -> Any:
        return json.loads(value.decode('utf-8'))

    async def get(self, key: str, prefix: CachePrefix = CachePrefix.GAMES) -> Optional[Any]:
        """Get value from cache"""
        if not await self._ensure_client():
            return None

        full_key = self._make_key(prefix, key)

        async def _get():
            return await self._client.get(full_key)

        try:
            value = await self._execute_with_circuit_breaker(_get)

            if value is None:
                self._stats["misses"] += 1
                return None

            self._stats["hits"] += 1
            return self._deserialize(value)
        except Exception as e:
            logger.warning(f"Cache get failed for {full_key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Any,
        prefix: CachePrefix = CachePrefix.GAMES,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set value in cache"""
        if not await self._ensure_client():
            return False

        full_key = self._make_key(prefix, key)
        ttl = ttl or settings.CACHE_TTL_DEFAULT
        serialized = self._serialize(value)

        async def _set():
            return await self._client.setex(full_key, ttl, serialized)

        try:
            await self._execute_with_circuit_breaker(_set)
            self._stats["sets"] += 1
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {full_key}: {e}")
            return False

    async def compare_and_set(
        self,
        key: str,
        value: Dict[str, Any],
        prefix: CachePrefix = CachePrefix.GAME,
        ttl: Optional[int] = None,
        version_field: str = "fetched_at",
    ) -> bool:
        """
        Write value only if its version field is newer than the stored one.

        Returns True when the write was applied, False when a newer (or equal)
        version is already cached or the write failed.
        """
        if not await self._ensure_client():
            return False

        full_key = self._make_key(prefix, key)
        ttl = ttl or settings.CACHE_TTL_DEFAULT
        version = value[version_field]

        async def _cas():
            return await self._compare_and_set(
                keys=[full_key],
                args=[self._serialize(value), ttl, version_field, version],
            )

        try:
            applied = bool(await self._execute_with_circuit_breaker(_cas))
        except Exception as e:
            logger.warning(f"Cache compare-and-set failed for {full_key}: {e}")
            return False

        if applied:
            self._stats["sets"] += 1
        else:
            self._stats["stale_writes_rejected"] += 1
            logger.debug(f"Rejected out-of-order write for {full_key} ({version_field}={version})")
        return applied

    async def delete(self, key: str, prefix: CachePrefix = CachePrefix.GAMES) -> bool:
        """Delete key from cache"""
        if not self._client:
            return False

        full_key = self._make_key(prefix, key)

        async def _delete():
            return await self._client.delete(full_key)

        try:
            await self._execute_with_circuit_breaker(_delete)
            return True
        except Exception:
            return False

    async def delete_pattern(self, pattern: str, prefix: CachePrefix = CachePrefix.GAMES) -> int:
        """Delete all keys matching pattern"""
        if not self._client:
            return 0

        full_pattern = self._make_key(prefix, pattern)
        deleted = 0

        try:
            async for key in self._client.scan_iter(match=full_pattern):
                await self._client.delete(key)
                deleted += 1
            return deleted
        except Exception as e:
            logger.warning(f"Pattern delete failed for {full_pattern}: {e}")
            return deleted

    async def sadd(self, key: str, *members: str, prefix: CachePrefix = CachePrefix.LIVE) -> int:
        """Add members to a set"""
        if not await self._ensure_client():
            return 0

        full_key = self._make_key(prefix, key)

        async def _sadd():
            return await self._client.sadd(full_key, *members)

        try:
            return await self._execute_with_circuit_breaker(_sadd)
        except Exception as e:
            logger.warning(f"Set add failed for {full_key}: {e}")
            return 0

    async def srem(self, key: str, *members: str, prefix: CachePrefix = CachePrefix.LIVE) -> int:
        """Remove members from a set"""
        if not self._client:
            return 0

        full_key = self._make_key(prefix, key)

        async def _srem():
            return await self._client.srem(full_key, *members)

        try:
            return await self._execute_with_circuit_breaker(_srem)
        except Exception as e:
            logger.warning(f"Set remove failed for {full_key}: {e}")
            return 0

    async def sismember(self, key: str, member: str, prefix: CachePrefix = CachePrefix.LIVE) -> bool:
        """Check set membership"""
        if not await self._ensure_client():
            return False

        full_key = self._make_key(prefix, key)

        async def _sismember():
            return await self._client.sismember(full_key, member)

        try:
            return bool(await self._execute_with_circuit_breaker(_sismember))
        except Exception:
            return False

    async def smembers(self, key: str, prefix: CachePrefix = CachePrefix.LIVE) -> List[str]:
        """List set members"""
        if not await self._ensure_client():
            return []

        full_key = self._make_key(prefix, key)

        async def _smembers():
            return await self._client.smembers(full_key)

        try:
            members = await self._execute_with_circuit_breaker(_smembers)
            return sorted(m.decode('utf-8') if isinstance(m, bytes) else m for m in members)
        except Exception as e:
            logger.warning(f"Set members failed for {full_key}: {e}")
            return []

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis health"""
        try:
            if not self._client:
                return {"status": "disconnected"}

            start = time.time()
            await self._client.ping()
            latency = (time.time() - start) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency, 2),
                "circuit_breaker": self._circuit_breaker.state.value,
                "stats": self.get_stats()
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "circuit_breaker": self._circuit_breaker.state.value
            }

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0

        return {
            **self._stats,
            "total_requests": total,
            "hit_rate_percent": round(hit_rate, 2),
            "circuit_breaker_state": self._circuit_breaker.state.value
        }


# Global cache manager instance
cache_manager = CacheManager()


def get_cache_manager() -> CacheManager:
    """Get the global cache manager instance."""
    return cache_manager
