"""
Unit Tests for API Routes

Tests the cache administration and health routes with TestClient. The
lifespan is not run: each test wires the cache service and warmup scheduler
onto ``app.state`` over the in-memory Redis.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from test_fixtures.cache_factory import FakeDataSource

from dormcache.application.app import create_app
from dormcache.application.services.cached_queries import CachedQueries, build_warmup_datasets
from dormcache.core.exceptions import WarmupInProgressError
from dormcache.infrastructure.cache.warmup import WarmupScheduler

BASE = "/api/v1"


@pytest.fixture
def app(test_settings, cache_service, mock_metrics):
    app = create_app(test_settings)
    app.state.cache_service = cache_service
    app.state.warmup_scheduler = WarmupScheduler(
        build_warmup_datasets(CachedQueries(cache_service, FakeDataSource())),
        test_settings.warmup,
        mock_metrics,
    )
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.mark.unit
class TestHealthRoutes:
    """Test suite for health check routes."""

    def test_health_endpoint_returns_200(self, client):
        """Test health endpoint reports both tiers."""
        response = client.get(f"{BASE}/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["timestamp"].endswith("Z")
        assert set(data["components"]) == {"hot_tier", "redis"}

    def test_liveness(self, client):
        """Test the liveness probe."""
        assert client.get(f"{BASE}/health/live").json() == {"status": "alive"}

    def test_thread_id_echoed(self, client):
        """Test that the correlation header is propagated."""
        response = client.get(f"{BASE}/health/live", headers={"X-Thread-ID": "abc-123"})
        assert response.headers["X-Thread-ID"] == "abc-123"

    def test_root(self, client):
        """Test the root endpoint."""
        assert client.get("/").json()["health"] == f"{BASE}/health"


@pytest.mark.unit
class TestKeyRoutes:
    """Test single-key administration."""

    def test_set_inspect_delete(self, client):
        """Test the full lifecycle of one key."""
        response = client.post(
            f"{BASE}/cache/key",
            json={"key": "bill:detail:42", "value": {"id": 42}, "ttl": 600, "tags": ["bill"]},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "key": "bill:detail:42"}

        info = client.get(f"{BASE}/cache/key/bill:detail:42").json()
        assert info["exists"] is True
        assert info["value"] == {"id": 42}
        assert 0 < info["ttl"] <= 600

        assert client.delete(f"{BASE}/cache/key/bill:detail:42").json()["deleted"] == 1
        assert client.delete(f"{BASE}/cache/key/bill:detail:42").json()["deleted"] == 0

    def test_unknown_key_is_not_an_error(self, client):
        """Test that inspecting an absent key answers 200."""
        response = client.get(f"{BASE}/cache/key/user:profile:404")

        assert response.status_code == 200
        assert response.json() == {"key": "user:profile:404", "exists": False, "value": None, "ttl": -2}

    def test_blank_key_rejected(self, client):
        """Test request validation of the key."""
        response = client.post(f"{BASE}/cache/key", json={"key": "   ", "value": 1})
        assert response.status_code == 422

    def test_list_keys_and_hot_keys(self, client):
        """Test key listing and the hot tier view."""
        client.post(f"{BASE}/cache/key", json={"key": "user:profile:1", "value": 1})
        client.post(f"{BASE}/cache/key", json={"key": "stats:room:1", "value": 2})

        listing = client.get(f"{BASE}/cache/keys", params={"pattern": "user:*"}).json()
        assert listing == {"pattern": "user:*", "count": 1, "keys": ["user:profile:1"]}

        assert client.get(f"{BASE}/cache/hot-keys").json() == {"count": 1, "keys": ["user:profile:1"]}

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_list_limit_bounds(self, client, limit):
        """Test that the listing limit is validated."""
        assert client.get(f"{BASE}/cache/keys", params={"limit": limit}).status_code == 422


@pytest.mark.unit
class TestInvalidationRoutes:
    """Test bulk invalidation."""

    def test_delete_by_tag(self, client):
        """Test that tag invalidation reports the deleted count."""
        client.post(f"{BASE}/cache/key", json={"key": "bill:detail:1", "value": 1, "tags": ["bill"]})
        client.post(f"{BASE}/cache/key", json={"key": "bill:detail:2", "value": 2, "tags": ["bill"]})

        assert client.delete(f"{BASE}/cache/tag/bill").json() == {"success": True, "deleted": 2}
        assert client.get(f"{BASE}/cache/key/bill:detail:1").json()["exists"] is False

    def test_delete_by_pattern(self, client):
        """Test glob deletion."""
        client.post(f"{BASE}/cache/key", json={"key": "user:profile:1", "value": 1})
        client.post(f"{BASE}/cache/key", json={"key": "room:detail:1", "value": 2})

        assert client.delete(f"{BASE}/cache/pattern/user:*").json()["deleted"] == 1
        assert client.get(f"{BASE}/cache/key/room:detail:1").json()["exists"] is True

    def test_clear_all(self, client):
        """Test namespace clearing."""
        client.post(f"{BASE}/cache/key", json={"key": "user:profile:1", "value": 1})

        assert client.delete(f"{BASE}/cache/all").json()["deleted"] == 1
        assert client.get(f"{BASE}/cache/hot-keys").json()["count"] == 0


@pytest.mark.unit
class TestStatsRoutes:
    """Test statistics and metrics."""

    def test_stats_and_reset(self, client):
        """Test that stats reflect traffic and reset zeroes them."""
        client.post(f"{BASE}/cache/key", json={"key": "stats:room:1", "value": 1})

        stats = client.get(f"{BASE}/cache/stats").json()
        assert stats["sets"] == 1
        assert stats["hit_rate"] == 0.0

        assert client.post(f"{BASE}/cache/stats/reset").json() == {"success": True}
        assert client.get(f"{BASE}/cache/stats").json()["sets"] == 0

    def test_hit_rate_without_traffic(self, client):
        """Test that the hit rate is 0 before any read."""
        assert client.get(f"{BASE}/cache/hit-rate").json() == {"hit_rate": 0.0, "hits": 0, "misses": 0}

    def test_hit_rate_reflects_counters(self, app, client):
        """Test that the hit rate route reports the service counters."""
        cache = MagicMock()
        cache.get_stats.return_value = {"hits": 3, "misses": 1, "hit_rate": 0.75}
        app.state.cache_service = cache

        assert client.get(f"{BASE}/cache/hit-rate").json() == {"hit_rate": 0.75, "hits": 3, "misses": 1}

    def test_prometheus_metrics(self, client):
        """Test the metrics exposition endpoint."""
        response = client.get(f"{BASE}/cache/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.unit
class TestWarmupRoutes:
    """Test warmup control."""

    def test_warmup_runs_enabled_datasets(self, client):
        """Test a default run over the fake data source."""
        response = client.post(f"{BASE}/cache/warmup")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 9  # 3 users + 2 rooms + 4 bills
        assert data["success"] == 9
        assert data["failed"] == 0
        assert data["skipped_datasets"] == ["stats"]

        keys = client.get(f"{BASE}/cache/keys", params={"pattern": "bill:detail:*"}).json()
        assert keys["count"] == 4

    def test_warmup_selected_datasets(self, client):
        """Test that the body restricts and forces datasets."""
        response = client.post(f"{BASE}/cache/warmup", json={"force": True, "datasets": ["stats"]})

        assert response.json()["success"] == 2

    def test_unknown_dataset_rejected(self, client):
        """Test dataset name validation."""
        response = client.post(f"{BASE}/cache/warmup", json={"datasets": ["expenses"]})
        assert response.status_code == 422

    def test_warmup_in_progress_conflict(self, app, client):
        """Test that a second trigger answers 409."""
        scheduler = MagicMock(spec=WarmupScheduler)
        scheduler.ensure_not_running.side_effect = WarmupInProgressError(
            message="Cache warmup is already running"
        )
        app.state.warmup_scheduler = scheduler

        response = client.post(f"{BASE}/cache/warmup")

        assert response.status_code == 409
        assert response.json()["error_type"] == "WarmupInProgressError"
        scheduler.run.assert_not_called()

    def test_warmup_status(self, client):
        """Test the status view after a run."""
        client.post(f"{BASE}/cache/warmup", json={"datasets": ["users"]})

        status = client.get(f"{BASE}/cache/warmup/status").json()
        assert status["is_running"] is False
        assert status["stats"]["success"] == 3


@pytest.mark.unit
class TestErrorHandling:
    """Test error mapping."""

    def test_uninitialized_service_returns_503(self, test_settings):
        """Test that routes answer 503 before the lifespan has run."""
        client = TestClient(create_app(test_settings))

        response = client.get(f"{BASE}/cache/stats")

        assert response.status_code == 503
        assert response.json()["error_type"] == "ConfigurationError"

    def test_unexpected_error_returns_500(self, app):
        """Test that an unexpected failure becomes a JSON 500."""
        cache = MagicMock()
        cache.get_stats.side_effect = RuntimeError("boom")
        app.state.cache_service = cache

        response = TestClient(app, raise_server_exceptions=False).get(f"{BASE}/cache/stats")

        assert response.status_code == 500
