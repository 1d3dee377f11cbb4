"""
Redis Client with Connection Pooling

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle, retried with tenacity)
        ├── OperationExecutor (Command execution with error handling)
        └── HealthMonitor (Ping latency and pool utilization)

Every command failure is raised as a ``CacheError`` subclass so the layers
above can decide how to degrade. The distributed store turns them into
misses; nothing above it sees a raw ``redis`` exception.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from dormcache.core.config.settings import Settings, get_settings
from dormcache.core.exceptions import CacheConnectionError, CacheKeyError
from dormcache.core.logging.logger import get_logger

logger = get_logger(__name__)

# Deletes KEYS[1] only while it still holds the caller's token
RELEASE_IF_OWNER_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Handles connection lifecycle and pooling
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Connect timeout: REDIS_SOCKET_CONNECT_TIMEOUT (10s)
    - Command timeout: REDIS_SOCKET_TIMEOUT (5s)
    - Responses decoded to ``str``
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If the server cannot be reached
        """
        if self._is_connected and self._client:
            return self._client

        redis_settings = self._settings.redis

        try:
            self._pool = ConnectionPool(
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
            )
            return self._client

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            await self._release()
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={
                    "host": redis_settings.REDIS_HOST,
                    "port": redis_settings.REDIS_PORT,
                },
            ) from e

    async def _release(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._client = None
        self._pool = None
        self._is_connected = False

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        await self._release()
        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        """Return True when the connected server answers PING."""
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        """Get the Redis client instance."""
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        """Get the connection pool instance."""
        return self._pool

    def is_connected(self) -> bool:
        """Check if connected to Redis."""
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands with error handling and logging
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Error Handling Strategy:
    - Connection-level failures raise CacheConnectionError
    - Any other RedisError raises CacheKeyError
    - Both are logged with the command's stage and key
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    @staticmethod
    def _wrap(command: str, error: RedisError, **context) -> Exception:
        logger.error(f"Redis {command} failed", stage=f"REDIS.{command}", error=str(error), **context)
        if isinstance(error, (ConnectionError, TimeoutError)):
            return CacheConnectionError(message=f"Redis {command} failed: {error}", details=context)
        return CacheKeyError(message=f"Redis {command} failed: {error}", details=context)

    # -------------------------------------------------------------------------
    # String Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """
        Get value from Redis.

        STAGE-REDIS.GET: Redis GET operation
        """
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise self._wrap("GET", e, key=key) from e

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """
        Set value in Redis.

        STAGE-REDIS.SET: Redis SET operation

        Args:
            key: Redis key
            value: Value to set
            ttl: Expiry in seconds; None or <= 0 stores without expiry
            nx: Only set if key doesn't exist (SET NX)

        Returns:
            True if the value was written (False when NX found an existing key)
        """
        try:
            result = await self._redis.set(key, value, ex=ttl if ttl and ttl > 0 else None, nx=nx)
            return bool(result)
        except RedisError as e:
            raise self._wrap("SET", e, key=key) from e

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        """
        Get several values in one round-trip.

        STAGE-REDIS.MGET: Redis MGET operation
        """
        if not keys:
            return []
        try:
            return await self._redis.mget(list(keys))
        except RedisError as e:
            raise self._wrap("MGET", e, keys=list(keys)) from e

    async def delete(self, *keys: str) -> int:
        """
        Delete keys from Redis.

        STAGE-REDIS.DEL: Redis DELETE operation

        Returns:
            Number of keys deleted
        """
        if not keys:
            return 0
        try:
            return await self._redis.delete(*keys)
        except RedisError as e:
            raise self._wrap("DEL", e, keys=list(keys)) from e

    async def exists(self, *keys: str) -> int:
        """Return how many of the keys exist."""
        try:
            return await self._redis.exists(*keys)
        except RedisError as e:
            raise self._wrap("EXISTS", e, keys=list(keys)) from e

    async def ttl(self, key: str) -> int:
        """
        Get TTL of a key.

        Returns:
            TTL in seconds, -1 if no TTL, -2 if key doesn't exist
        """
        try:
            return await self._redis.ttl(key)
        except RedisError as e:
            raise self._wrap("TTL", e, key=key) from e

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        """
        Delete ``key`` only if it still holds ``expected`` (atomic, via Lua).

        STAGE-REDIS.EVAL: Owner-checked release
        """
        try:
            return bool(await self._redis.eval(RELEASE_IF_OWNER_SCRIPT, 1, key, expected))
        except RedisError as e:
            raise self._wrap("EVAL", e, key=key) from e

    # -------------------------------------------------------------------------
    # Set Operations (tag membership)
    # -------------------------------------------------------------------------

    async def sadd(self, name: str, *values: str) -> int:
        """Add members to a set."""
        try:
            return await self._redis.sadd(name, *values)
        except RedisError as e:
            raise self._wrap("SADD", e, key=name) from e

    async def srem(self, name: str, *values: str) -> int:
        """Remove members from a set."""
        try:
            return await self._redis.srem(name, *values)
        except RedisError as e:
            raise self._wrap("SREM", e, key=name) from e

    async def smembers(self, name: str) -> set[str]:
        """Return all members of a set."""
        try:
            return set(await self._redis.smembers(name))
        except RedisError as e:
            raise self._wrap("SMEMBERS", e, key=name) from e

    # -------------------------------------------------------------------------
    # Keyspace Iteration
    # -------------------------------------------------------------------------

    async def scan(self, match: str, count: int = 200, limit: int | None = None) -> list[str]:
        """
        Collect keys matching ``match`` with cursor-based SCAN.

        STAGE-REDIS.SCAN: Non-blocking keyspace iteration

        Args:
            match: Glob pattern
            count: SCAN page size hint
            limit: Stop after this many keys (None = all)
        """
        keys: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=match, count=count):
                keys.append(key)
                if limit is not None and len(keys) >= limit:
                    break
        except RedisError as e:
            raise self._wrap("SCAN", e, pattern=match) from e
        return keys


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool metrics.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check

        Returns:
            Dict with health status and metrics
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.redis.REDIS_HOST,
            "port": self._settings.redis.REDIS_PORT,
            "pool_size": 0,
            "pool_utilization_pct": 0,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)

            pool = self._conn_mgr.get_pool()
            if pool:
                health["pool_size"] = pool.max_connections
                in_use = len(getattr(pool, "_in_use_connections", ()))
                utilization = 100.0 * in_use / pool.max_connections
                health["pool_utilization_pct"] = round(utilization, 1)
                if utilization > 80:
                    logger.warning(
                        "Redis pool utilization high",
                        pool_utilization=utilization,
                        max_connections=pool.max_connections,
                    )

        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Redis client facade used by the distributed cache tier.

    Usage:
        client = RedisClient(settings)
        await client.connect()

        await client.set("expense_system:bill:detail:42", '{"id":42}', ttl=1800)
        value = await client.get("expense_system:bill:detail:42")

        await client.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)
        # None until connect() is first called, and again after disconnect()
        self._last_connect_attempt: float | None = None

    async def connect(self) -> None:
        """
        Connect with exponential backoff.

        STAGE-REDIS.2: Connection establishment

        When every attempt fails the client stays usable: later commands
        and health checks retry the connection lazily (see ``_reconnect``).

        Raises:
            CacheConnectionError: If every attempt fails
        """
        self._last_connect_attempt = time.monotonic()

        @retry(
            stop=stop_after_attempt(self._settings.redis.REDIS_CONNECT_RETRIES),
            wait=wait_exponential_jitter(initial=0.2, max=2.0),
            retry=retry_if_exception_type(CacheConnectionError),
            before_sleep=lambda retry_state: logger.info(
                "Redis connect retry",
                stage="REDIS.RETRY",
                attempt=retry_state.attempt_number,
                delay=round(retry_state.idle_for, 3),
            ),
            reraise=True,
        )
        async def _connect() -> redis.Redis:
            return await self._conn_mgr.connect()

        client = await _connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        """Close Redis connection and pool."""
        await self._conn_mgr.disconnect()
        self._executor = None
        self._last_connect_attempt = None

    async def ping(self) -> bool:
        """Check Redis connection health."""
        return await self._conn_mgr.ping()

    def is_connected(self) -> bool:
        """Check if connected to Redis."""
        return self._executor is not None and self._conn_mgr.is_connected()

    async def _reconnect(self) -> bool:
        """
        One connect attempt after a failed startup connect.

        STAGE-REDIS.RECONNECT: Lazy reconnection

        Attempts are spaced by REDIS_RECONNECT_INTERVAL so an outage costs
        at most one connect timeout per interval, not one per command.
        Never attempted before connect() or after disconnect().
        """
        if self._last_connect_attempt is None:
            return False

        now = time.monotonic()
        if now - self._last_connect_attempt < self._settings.redis.REDIS_RECONNECT_INTERVAL:
            return False
        self._last_connect_attempt = now

        try:
            client = await self._conn_mgr.connect()
        except CacheConnectionError as e:
            logger.warning("Redis reconnect failed", stage="REDIS.RECONNECT", error=e.message)
            return False

        self._executor = OperationExecutor(client)
        logger.info("Redis reconnected", stage="REDIS.RECONNECT")
        return True

    async def _require_executor(self) -> OperationExecutor:
        if self._executor is None and not await self._reconnect():
            raise CacheConnectionError("Redis client is not connected")
        return self._executor

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get value from Redis."""
        executor = await self._require_executor()
        return await executor.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """Set value in Redis."""
        executor = await self._require_executor()
        return await executor.set(key, value, ttl, nx)

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        """Get several values in one round-trip."""
        executor = await self._require_executor()
        return await executor.mget(keys)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        executor = await self._require_executor()
        return await executor.delete(*keys)

    async def exists(self, *keys: str) -> int:
        """Check if keys exist in Redis."""
        executor = await self._require_executor()
        return await executor.exists(*keys)

    async def ttl(self, key: str) -> int:
        """Get TTL of a key."""
        executor = await self._require_executor()
        return await executor.ttl(key)

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        """Delete a key only while it holds the expected value."""
        executor = await self._require_executor()
        return await executor.delete_if_equals(key, expected)

    async def sadd(self, name: str, *values: str) -> int:
        """Add members to a set."""
        executor = await self._require_executor()
        return await executor.sadd(name, *values)

    async def srem(self, name: str, *values: str) -> int:
        """Remove members from a set."""
        executor = await self._require_executor()
        return await executor.srem(name, *values)

    async def smembers(self, name: str) -> set[str]:
        """Return all members of a set."""
        executor = await self._require_executor()
        return await executor.smembers(name)

    async def scan(self, match: str, count: int = 200, limit: int | None = None) -> list[str]:
        """Collect keys matching a glob pattern."""
        executor = await self._require_executor()
        return await executor.scan(match, count, limit)

    async def health_check(self) -> dict[str, Any]:
        """Perform health check on Redis connection."""
        if self._executor is None:
            await self._reconnect()
        return await self._health_monitor.health_check()
