"""
Tests for online/offline tracking, force sync and the health endpoint
"""
from fastapi.testclient import TestClient

from livemetro.cache import TierName
from livemetro.main import create_app
from livemetro.sync import MAX_RECENT_ERRORS, HealthTracker


def test_starts_online_with_no_errors():
    status = HealthTracker().get_status()
    assert status.is_online is True
    assert status.pending_task_count == 0
    assert status.recent_errors == []


def test_cache_outcome_means_offline():
    """Serving from the local cache is not considered online"""
    health = HealthTracker()
    health.record_outcome(TierName.CACHE, True, "all remote tiers failed")
    assert health.get_status().is_online is False


def test_remote_success_restores_online():
    health = HealthTracker()
    health.record_outcome(TierName.PRIMARY, False, "timeout")
    health.record_outcome(TierName.SECONDARY, True)
    assert health.get_status().is_online is True


def test_recent_errors_keep_only_the_newest():
    health = HealthTracker()
    for i in range(MAX_RECENT_ERRORS + 5):
        health.record_error("primary", f"failure {i}")

    errors = health.get_status().recent_errors
    assert len(errors) == MAX_RECENT_ERRORS
    assert errors[0].endswith("primary: failure 5")
    assert errors[-1].endswith(f"primary: failure {MAX_RECENT_ERRORS + 4}")


def test_record_error_does_not_change_online_state():
    health = HealthTracker()
    health.record_error("sync", "write-back failed")
    assert health.get_status().is_online is True


def test_pending_count_comes_from_source():
    health = HealthTracker(pending_count=lambda: 3)
    assert health.get_status().pending_task_count == 3


def test_force_sync_success_clears_errors():
    health = HealthTracker(probe=lambda: True)
    health.record_outcome(TierName.PRIMARY, False, "timeout")

    assert health.force_sync() is True
    status = health.get_status()
    assert status.is_online is True
    assert status.recent_errors == []


def test_force_sync_failed_probe_goes_offline():
    health = HealthTracker(probe=lambda: False)
    assert health.force_sync() is False
    status = health.get_status()
    assert status.is_online is False
    assert len(status.recent_errors) == 1


def test_force_sync_probe_exception_is_a_failure():
    def probe():
        raise ConnectionError("unreachable")

    health = HealthTracker(probe=probe)
    assert health.force_sync() is False
    assert "unreachable" in health.get_status().recent_errors[0]


def test_force_sync_without_probe_fails():
    assert HealthTracker().force_sync() is False


# =============================================================================
# Endpoint
# =============================================================================

def test_health_endpoint_returns_ok(manager_factory):
    """Test that /health returns status: ok"""
    manager, _ = manager_factory(primary=lambda key: None)
    client = TestClient(create_app(manager))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_version_endpoint(manager_factory):
    manager, _ = manager_factory(primary=lambda key: None)
    client = TestClient(create_app(manager))
    data = client.get("/version").json()
    assert data["name"] == "LiveMetro"
    assert data["full"].startswith("LiveMetro v")
