"""Tests for the MCP server tool functions."""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from classquest.classroom import Classroom
from classquest.db import Database
from classquest.mcp_server import award_score, check_in, get_badges, get_roster, get_student


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "mcp.db"
    database = Database(db_path=path)
    classroom = Classroom("c1")
    classroom.add_student("Alice", student_id="alice")
    classroom.add_student("Bob", student_id="bob")
    classroom.score_student("bob", 4, datetime(2025, 1, 3, 9, 0))
    database.save_classroom(classroom)
    database.close()
    return path


@pytest.fixture(autouse=True)
def server_env(db_path):
    with patch("classquest.mcp_server._get_db", side_effect=lambda: Database(db_path=db_path)), \
         patch("classquest.mcp_server.get_language", return_value="en"), \
         patch("classquest.mcp_server.get_current_class", return_value="c1"):
        yield


class TestGetRoster:
    def test_sorted_by_score(self):
        result = get_roster()
        assert result["count"] == 2
        assert [s["name"] for s in result["students"]] == ["Bob", "Alice"]
        assert result["students"][0]["xp"] == 9

    def test_closes_db(self):
        mock_db = MagicMock()
        mock_db.load_classroom.return_value = Classroom("c1")
        with patch("classquest.mcp_server._get_db", return_value=mock_db):
            result = get_roster()
        assert result["count"] == 0
        mock_db.close.assert_called_once()


class TestGetStudent:
    def test_by_name(self):
        result = get_student("bob")
        assert result["id"] == "bob"
        assert result["record"]["unlocked_badge_ids"] == ["first-score"]
        assert result["xp_for_next"] == 50
        assert len(result["closest_badges"]) == 3

    def test_unknown(self):
        assert "error" in get_student("nobody")


class TestGetBadges:
    def test_all_badges(self):
        result = get_badges()
        assert result["total_count"] == 15
        assert result["unlocked_count"] == 0

    def test_for_student(self):
        result = get_badges("Bob")
        assert result["unlocked_count"] == 1
        unlocked = [b["id"] for b in result["badges"] if b["unlocked"]]
        assert unlocked == ["first-score"]


class TestAwardScore:
    def test_value(self):
        result = award_score("Alice", value=2)
        assert result["student"]["score"] == 2
        assert [e["badge_id"] for e in result["events"]] == ["first-score"]
        assert get_student("alice")["score"] == 2

    def test_item(self):
        result = award_score("Alice", item_id="default-9")
        assert result["student"]["score"] == 2

    def test_unknown_item(self):
        assert "error" in award_score("Alice", item_id="nope")

    def test_needs_value_or_item(self):
        assert "error" in award_score("Alice")

    def test_unknown_student(self):
        assert "error" in award_score("nobody", value=1)


class TestCheckIn:
    def test_check_in_once_per_day(self):
        first = check_in("Alice")
        assert first["student"]["score"] == 1
        second = check_in("Alice")
        assert "error" in second
