"""
Unit tests for the manual batch triggers.
"""
from datetime import timedelta
from unittest.mock import MagicMock

from conftest import TODAY
from pulse.routers import dependencies


class TestBatchTriggers:

    def test_metrics_pass(self, test_client, make_entry):
        make_entry("alice", TODAY)

        response = test_client.post("/api/batch/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["job"] == "metrics"
        assert data["workspace_id"] == "default"
        assert data["processed"] == 1
        assert data["details"] == {"week": 1}
        assert data["run_id"]

    def test_alert_pass(self, test_client):
        response = test_client.post("/api/batch/alerts")

        assert response.status_code == 200
        data = response.json()
        assert data["job"] == "alerts"
        assert data["processed"] == 0
        assert data["failed"] == 0

    def test_achievement_pass_for_workspace(self, test_client, make_entry):
        make_entry("zed", TODAY, workspace_id="other")
        for offset in range(7):
            make_entry("alice", TODAY - timedelta(days=offset))

        response = test_client.post("/api/batch/achievements?workspace_id=other")

        assert response.status_code == 200
        data = response.json()
        assert data["workspace_id"] == "other"
        assert data["processed"] == 1
        assert data["details"] == {"awarded": 0}

    def test_unexpected_failure_is_a_batch_error(self, test_client):
        from pulse.main import app

        service = MagicMock()
        service.run_metrics_pass.side_effect = RuntimeError("database gone")
        app.dependency_overrides[dependencies.get_batch_service] = lambda: service

        response = test_client.post("/api/batch/metrics")

        assert response.status_code == 500
        assert response.json()["code"] == "BATCH_ERROR"
