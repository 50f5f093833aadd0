"""
Unit tests for the achievement endpoints.
"""
from datetime import timedelta

from conftest import TODAY


class TestUserBadges:

    def test_badges_and_streak(self, test_client, make_entry):
        for offset in range(7):
            make_entry("alice", TODAY - timedelta(days=offset))
        test_client.post("/api/batch/achievements")

        response = test_client.get("/api/achievements/alice")

        assert response.status_code == 200
        data = response.json()
        assert data["streak"] == {"current": 7, "longest": 7, "total": 7}
        [badge] = data["badges"]
        assert badge["badge_name"] == "Week Warrior"
        assert badge["level"] == "bronze"
        assert badge["achievement_type"] == "streak"

    def test_unknown_person(self, test_client):
        data = test_client.get("/api/achievements/nobody").json()
        assert data["badges"] == []
        assert data["streak"]["current"] == 0


class TestLeaderboard:

    def test_leaderboard(self, test_client, make_entry):
        for offset in range(30):
            make_entry("alice", TODAY - timedelta(days=offset))
        for offset in range(7):
            make_entry("bob", TODAY - timedelta(days=offset))
        make_entry("carol", TODAY)
        test_client.post("/api/batch/achievements")

        response = test_client.get("/api/achievements/leaderboard")

        assert response.status_code == 200
        board = response.json()
        assert [e["person_id"] for e in board] == ["alice", "bob"]
        # Week Warrior and Month Master, then all three consistency rungs
        assert board[0]["points"] == 10 + 25 + 10 + 25 + 50
        assert board[0]["badges"] == 5
        assert board[1] == {"person_id": "bob", "person_name": "Bob", "points": 10, "badges": 1}
