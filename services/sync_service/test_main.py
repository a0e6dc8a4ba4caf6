"""Tests for the Sync Service HTTP API."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi import BackgroundTasks, HTTPException
from fastapi.testclient import TestClient

from services.sync_service import main
from shared.exceptions import ConfigError
from shared.models import PipelineState, SyncRunResult


@pytest.fixture
def client():
    main.jobs.clear()
    return TestClient(main.app)


@pytest.fixture
def orchestrator():
    mock = Mock()
    mock.execute_sync = AsyncMock(
        side_effect=lambda job_id: SyncRunResult(job_id=job_id, state=PipelineState.DONE, imported=1)
    )
    mock.aclose = AsyncMock()
    return mock


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["sync_running"] is False


def test_execute_then_status(client, orchestrator):
    job_id = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"
    with patch.object(main, "get_sync_settings", return_value=Mock()), \
            patch.object(main, "create_orchestrator", return_value=orchestrator):
        response = client.post("/internal/sync/execute", json={"job_id": job_id})

    assert response.status_code == 202
    assert response.json()["job_id"] == job_id
    assert response.json()["status"] == "queued"
    orchestrator.aclose.assert_awaited_once()

    status_response = client.get(f"/internal/sync/status/{job_id}")
    assert status_response.status_code == 200
    assert status_response.json()["status"] == "done"
    assert status_response.json()["summary"]["imported"] == 1


def test_execute_without_body_generates_job_id(client, orchestrator):
    with patch.object(main, "get_sync_settings", return_value=Mock()), \
            patch.object(main, "create_orchestrator", return_value=orchestrator):
        response = client.post("/internal/sync/execute")

    assert response.status_code == 202
    assert response.json()["job_id"] in main.jobs


def test_execute_invalid_job_id(client):
    response = client.post("/internal/sync/execute", json={"job_id": "not-a-uuid"})

    assert response.status_code == 400


def test_execute_config_error(client):
    with patch.object(main, "get_sync_settings", side_effect=ConfigError("Missing required setting: graph")):
        response = client.post("/internal/sync/execute")

    assert response.status_code == 400
    assert "graph" in response.json()["detail"]


def test_execute_while_running(client):
    """Test that a second run is refused while one is in progress."""
    with patch.object(main, "sync_lock", Mock(locked=Mock(return_value=True))):
        response = client.post("/internal/sync/execute")

    assert response.status_code == 409


def test_status_unknown_job(client):
    response = client.get("/internal/sync/status/unknown")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_queued_run_blocks_second_request(orchestrator):
    """A run counts as in progress from the moment it is queued."""
    main.jobs.clear()
    first_tasks = BackgroundTasks()

    with patch.object(main, "get_sync_settings", return_value=Mock()), \
            patch.object(main, "create_orchestrator", return_value=orchestrator):
        queued = await main.execute_sync(first_tasks, None)
        assert main.sync_lock.locked()

        with pytest.raises(HTTPException) as exc_info:
            await main.execute_sync(BackgroundTasks(), None)
        assert exc_info.value.status_code == 409

        await first_tasks()

    assert not main.sync_lock.locked()
    assert main.jobs[queued.job_id].state == PipelineState.DONE


def test_failure_inside_job_is_recorded(client):
    job_id = "2c5ea4c0-4067-11e9-8bad-9b1deb4d3b7d"
    with patch.object(main, "get_sync_settings", return_value=Mock()), \
            patch.object(main, "create_orchestrator", side_effect=ConfigError("Missing required setting: graph")):
        response = client.post("/internal/sync/execute", json={"job_id": job_id})

    assert response.status_code == 202
    assert not main.sync_lock.locked()

    data = client.get(f"/internal/sync/status/{job_id}").json()
    assert data["status"] == "aborted"
    assert data["error_kind"] == "config_error"
    assert data["failed_stage"] == "init"
    assert "graph" in data["error"]


def test_unexpected_failure_inside_job_is_recorded(client, orchestrator):
    job_id = "3d6fb5d1-4067-11e9-8bad-9b1deb4d3b7d"
    orchestrator.execute_sync = AsyncMock(side_effect=RuntimeError("boom"))
    with patch.object(main, "get_sync_settings", return_value=Mock()), \
            patch.object(main, "create_orchestrator", return_value=orchestrator):
        client.post("/internal/sync/execute", json={"job_id": job_id})

    data = client.get(f"/internal/sync/status/{job_id}").json()
    assert data["status"] == "aborted"
    assert data["error_kind"] == "unexpected_error"
    orchestrator.aclose.assert_awaited_once()
