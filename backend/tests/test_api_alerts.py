"""
Unit tests for the alert endpoints.
"""
import pytest
from datetime import timedelta

from conftest import TODAY


@pytest.fixture
def silent_bob(make_entry):
    """Six entries last week and none this week: one warning and one critical alert."""
    for offset in range(8, 14):
        make_entry("bob", TODAY - timedelta(days=offset))


class TestListAlerts:

    def test_lists_by_priority(self, test_client, silent_bob):
        test_client.post("/api/batch/alerts")

        response = test_client.get("/api/alerts")

        assert response.status_code == 200
        alerts = response.json()
        assert [a["alert_type"] for a in alerts] == ["no_recent_submissions", "declining_performance"]
        assert alerts[0]["severity"] == "critical"
        assert alerts[0]["priority"] == 10
        assert alerts[0]["suggested_actions"]

    def test_filter_by_person(self, test_client, silent_bob):
        test_client.post("/api/batch/alerts")

        assert test_client.get("/api/alerts?person_id=alice").json() == []
        assert len(test_client.get("/api/alerts?person_id=bob").json()) == 2

    def test_rerun_counts_occurrences(self, test_client, silent_bob):
        test_client.post("/api/batch/alerts")
        test_client.post("/api/batch/alerts")

        alerts = test_client.get("/api/alerts").json()

        assert len(alerts) == 2
        assert all(a["occurrence_count"] == 2 and a["is_recurring"] for a in alerts)

    def test_invalid_status(self, test_client):
        assert test_client.get("/api/alerts?status=open").status_code == 422


class TestDismissAlert:

    def test_dismiss(self, test_client, silent_bob):
        test_client.post("/api/batch/alerts")
        alert_id = test_client.get("/api/alerts").json()[0]["id"]

        response = test_client.post(f"/api/alerts/{alert_id}/dismiss", json={"resolution": "On leave"})

        assert response.status_code == 200
        assert response.json()["status"] == "dismissed"
        assert response.json()["resolution"] == "On leave"
        assert len(test_client.get("/api/alerts").json()) == 1
        dismissed = test_client.get("/api/alerts?status=dismissed").json()
        assert [a["id"] for a in dismissed] == [alert_id]

    def test_dismiss_without_body(self, test_client, silent_bob):
        test_client.post("/api/batch/alerts")
        alert_id = test_client.get("/api/alerts").json()[0]["id"]

        response = test_client.post(f"/api/alerts/{alert_id}/dismiss")

        assert response.status_code == 200
        assert response.json()["resolution"] == "Dismissed by operator"

    def test_dismiss_unknown_alert(self, test_client):
        response = test_client.post("/api/alerts/999/dismiss")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert data["error"] == "Alert not found: 999"
