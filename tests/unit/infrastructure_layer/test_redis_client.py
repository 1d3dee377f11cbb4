"""
Unit Tests for RedisClient

Tests command translation and error wrapping in OperationExecutor, and the
connect retry / not-connected behavior of the facade.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError, ResponseError, TimeoutError

from dormcache.core.config.settings import Settings
from dormcache.core.exceptions import CacheConnectionError, CacheKeyError
from dormcache.infrastructure.cache.redis_client import (
    RELEASE_IF_OWNER_SCRIPT,
    ConnectionManager,
    OperationExecutor,
    RedisClient,
)


@pytest.fixture
def mock_redis():
    return AsyncMock()


@pytest.fixture
def executor(mock_redis):
    return OperationExecutor(mock_redis)


@pytest.mark.unit
class TestOperationExecutor:
    """Test suite for OperationExecutor."""

    @pytest.mark.asyncio
    async def test_get(self, executor, mock_redis):
        """Test that GET passes through."""
        mock_redis.get.return_value = '{"id": 1}'
        assert await executor.get("k") == '{"id": 1}'
        mock_redis.get.assert_called_once_with("k")

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, executor, mock_redis):
        """Test that a positive ttl becomes EX."""
        mock_redis.set.return_value = True

        assert await executor.set("k", "v", ttl=60) is True
        mock_redis.set.assert_called_once_with("k", "v", ex=60, nx=False)

    @pytest.mark.asyncio
    async def test_set_without_expiry(self, executor, mock_redis):
        """Test that ttl <= 0 stores without EX."""
        await executor.set("k", "v", ttl=0)
        mock_redis.set.assert_called_once_with("k", "v", ex=None, nx=False)

    @pytest.mark.asyncio
    async def test_set_nx_rejected(self, executor, mock_redis):
        """Test that an NX write onto an existing key reports False."""
        mock_redis.set.return_value = None
        assert await executor.set("lock", "token", ttl=10, nx=True) is False

    @pytest.mark.asyncio
    async def test_empty_batches_skip_round_trip(self, executor, mock_redis):
        """Test that empty MGET / DEL never reach Redis."""
        assert await executor.mget([]) == []
        assert await executor.delete() == 0
        mock_redis.mget.assert_not_called()
        mock_redis.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_if_equals_uses_script(self, executor, mock_redis):
        """Test that release goes through the compare-and-delete script."""
        mock_redis.eval.return_value = 1

        assert await executor.delete_if_equals("lock", "token") is True
        mock_redis.eval.assert_called_once_with(RELEASE_IF_OWNER_SCRIPT, 1, "lock", "token")

    @pytest.mark.asyncio
    async def test_smembers_returns_set(self, executor, mock_redis):
        """Test that set members come back as a Python set."""
        mock_redis.smembers.return_value = ["a", "b"]
        assert await executor.smembers("tag") == {"a", "b"}

    @pytest.mark.asyncio
    async def test_scan_stops_at_limit(self, executor, mock_redis):
        """Test that SCAN iteration stops once the limit is reached."""
        async def scan_iter(match, count):
            for i in range(10):
                yield f"expense_system:k{i}"

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)

        keys = await executor.scan("expense_system:*", count=200, limit=3)

        assert keys == ["expense_system:k0", "expense_system:k1", "expense_system:k2"]
        mock_redis.scan_iter.assert_called_once_with(match="expense_system:*", count=200)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ConnectionError("refused"), TimeoutError("timed out")])
    async def test_connection_errors_wrapped(self, executor, mock_redis, error):
        """Test that connection-level failures become CacheConnectionError."""
        mock_redis.get.side_effect = error

        with pytest.raises(CacheConnectionError) as exc_info:
            await executor.get("k")
        assert exc_info.value.details == {"key": "k"}

    @pytest.mark.asyncio
    async def test_command_errors_wrapped(self, executor, mock_redis):
        """Test that other Redis errors become CacheKeyError."""
        mock_redis.sadd.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(CacheKeyError, match="WRONGTYPE"):
            await executor.sadd("tag", "k")


@pytest.mark.unit
class TestRedisClient:
    """Test suite for the RedisClient facade."""

    @pytest.mark.asyncio
    async def test_commands_require_connection(self, test_settings):
        """Test that commands before connect() raise CacheConnectionError."""
        client = RedisClient(test_settings)

        assert client.is_connected() is False
        with pytest.raises(CacheConnectionError):
            await client.get("k")

    @pytest.mark.asyncio
    async def test_connect_retries_then_succeeds(self):
        """Test that a transient connect failure is retried."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=2)
        client = RedisClient(settings)

        with patch.object(
            ConnectionManager,
            "connect",
            AsyncMock(side_effect=[CacheConnectionError("down"), AsyncMock()]),
        ) as connect:
            await client.connect()

        assert connect.call_count == 2
        assert client._executor is not None

    @pytest.mark.asyncio
    async def test_connect_gives_up(self):
        """Test that the last connect error is re-raised unchanged."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=1)
        client = RedisClient(settings)

        with patch.object(
            ConnectionManager, "connect", AsyncMock(side_effect=CacheConnectionError("down"))
        ):
            with pytest.raises(CacheConnectionError, match="down"):
                await client.connect()

    @pytest.mark.asyncio
    async def test_health_check_without_client(self, test_settings):
        """Test that an unconnected client reports unhealthy."""
        health = await RedisClient(test_settings).health_check()

        assert health["status"] == "unhealthy"
        assert health["error"] == "Client not initialized"

    @pytest.mark.asyncio
    async def test_reconnects_lazily_after_failed_connect(self):
        """Test that the next command reconnects once Redis is reachable again."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=1, REDIS_RECONNECT_INTERVAL=0)
        client = RedisClient(settings)
        backend = AsyncMock()
        backend.get.return_value = "v"

        with patch.object(
            ConnectionManager,
            "connect",
            AsyncMock(side_effect=[CacheConnectionError("down"), backend]),
        ) as connect:
            with pytest.raises(CacheConnectionError):
                await client.connect()
            assert await client.get("k") == "v"
            assert await client.get("k") == "v"

        assert connect.call_count == 2

    @pytest.mark.asyncio
    async def test_reconnect_attempts_are_spaced(self):
        """Test that commands inside the reconnect interval fail without dialing Redis."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=1, REDIS_RECONNECT_INTERVAL=60)
        client = RedisClient(settings)

        with patch.object(
            ConnectionManager, "connect", AsyncMock(side_effect=CacheConnectionError("down"))
        ) as connect:
            with pytest.raises(CacheConnectionError):
                await client.connect()
            with pytest.raises(CacheConnectionError, match="not connected"):
                await client.get("k")

        assert connect.call_count == 1

    @pytest.mark.asyncio
    async def test_no_reconnect_after_disconnect(self):
        """Test that an explicit disconnect is final."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=1, REDIS_RECONNECT_INTERVAL=0)
        client = RedisClient(settings)

        with patch.object(ConnectionManager, "connect", AsyncMock(return_value=AsyncMock())) as connect, \
                patch.object(ConnectionManager, "disconnect", AsyncMock()):
            await client.connect()
            await client.disconnect()
            with pytest.raises(CacheConnectionError):
                await client.get("k")

        assert connect.call_count == 1

    @pytest.mark.asyncio
    async def test_health_check_attempts_reconnect(self):
        """Test that a health check after a failed connect dials Redis again."""
        settings = Settings(_env_file=None, REDIS_CONNECT_RETRIES=1, REDIS_RECONNECT_INTERVAL=0)
        client = RedisClient(settings)

        with patch.object(
            ConnectionManager,
            "connect",
            AsyncMock(side_effect=[CacheConnectionError("down"), AsyncMock()]),
        ) as connect:
            with pytest.raises(CacheConnectionError):
                await client.connect()
            await client.health_check()

        assert connect.call_count == 2
        assert client._executor is not None
