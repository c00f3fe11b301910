"""Tests for CLI commands and display helpers."""

from __future__ import annotations

import json
from datetime import datetime
from unittest.mock import patch

import pytest

from classquest.cli import (
    build_parser,
    do_add_group,
    do_add_student,
    do_attend,
    do_badges,
    do_events,
    do_exempt_add,
    do_exempt_remove,
    do_exempt_weekends,
    do_group_redeem,
    do_history,
    do_load_badges,
    do_makeup,
    do_redeem,
    do_remove_student,
    do_roster,
    do_score,
    do_settle,
    do_show,
    do_undo,
    main,
)
from classquest.db import Database
from classquest.display import _xp_bar, format_event
from classquest.errors import ClassQuestError, StudentNotFoundError
from classquest.models import EventType, NotificationEvent

FRI = datetime(2025, 1, 3, 9, 0)
MON = datetime(2025, 1, 6, 9, 0)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    db_path = tmp_path / "test.db"
    database = Database(db_path=db_path)
    yield database
    database.close()


@pytest.fixture(autouse=True)
def english():
    with patch("classquest.cli.get_language", return_value="en"):
        yield


@pytest.fixture
def alice(db):
    return do_add_student(db, "c1", "Alice")


# ── Argument Parsing ──────────────────────────────────────────────────────────


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        args = build_parser().parse_args([])
        assert args.command is None
        assert args.verbose is False

    def test_score_with_value(self):
        args = build_parser().parse_args(["score", "Alice", "3"])
        assert args.command == "score"
        assert args.value == 3
        assert args.item is None

    def test_score_with_item(self):
        args = build_parser().parse_args(["score", "Alice", "--item", "default-5"])
        assert args.item == "default-5"
        assert args.value is None

    def test_exempt_weekends(self):
        args = build_parser().parse_args(["exempt", "weekends", "2025", "1"])
        assert args.exempt_command == "weekends"
        assert (args.year, args.month) == (2025, 1)

    def test_global_flags(self):
        args = build_parser().parse_args(["-v", "--class", "7b", "roster"])
        assert args.verbose is True
        assert args.class_id == "7b"

    def test_lang_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["lang", "fr"])

    def test_invalid_command_raises(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["nonexistent"])


# ── Commands ──────────────────────────────────────────────────────────────────


class TestStudentCommands:
    def test_add_student_persists(self, db, alice):
        assert alice["name"] == "Alice"
        assert alice["id"] in db.load_classroom("c1").students

    def test_remove_student(self, db, alice):
        do_remove_student(db, "c1", "alice")
        assert db.load_classroom("c1").students == {}

    def test_remove_unknown(self, db):
        with pytest.raises(StudentNotFoundError):
            do_remove_student(db, "c1", "nobody")

    def test_roster_and_show_render(self, db, alice):
        do_score(db, "c1", "Alice", value=3, now=FRI)
        do_roster(db, "c1")
        do_show(db, "c1", "Alice")
        do_history(db, "c1")
        do_badges(db, "c1", "Alice")
        do_badges(db, "c1")

    def test_roster_empty(self, db):
        do_roster(db, "c1")


class TestScoreCommands:
    def test_score_value_returns_events(self, db, alice):
        events = do_score(db, "c1", "Alice", value=3, now=FRI)
        assert [e.badge_id for e in events] == ["first-score"]
        classroom = db.load_classroom("c1")
        assert classroom.students[alice["id"]].score == 3
        assert classroom.get_record(alice["id"]).xp == 8

    def test_score_item(self, db, alice):
        do_score(db, "c1", "Alice", item_id="default-5", now=FRI)
        record = db.load_classroom("c1").get_record(alice["id"])
        assert record.perfect_quiz_count == 1

    def test_unknown_item(self, db, alice):
        with pytest.raises(ClassQuestError):
            do_score(db, "c1", "Alice", item_id="nope", now=FRI)

    def test_score_needs_value_or_item(self, db, alice):
        with pytest.raises(ClassQuestError):
            do_score(db, "c1", "Alice", now=FRI)

    def test_redeem(self, db, alice):
        do_score(db, "c1", "Alice", value=12, now=FRI)
        events = do_redeem(db, "c1", "Alice", "reward-1", now=FRI)
        assert [e.badge_id for e in events] == ["first-reward"]
        assert db.load_classroom("c1").students[alice["id"]].score == 2

    def test_undo(self, db, alice):
        do_score(db, "c1", "Alice", value=3, now=FRI)
        entry_id = db.load_classroom("c1").history[0].id
        result = do_undo(db, "c1", entry_id)
        assert result["undone"] is True
        classroom = db.load_classroom("c1")
        assert classroom.students[alice["id"]].score == 0
        assert classroom.get_record(alice["id"]).xp == 0


class TestGroupCommands:
    def test_group_redeem_and_settle(self, db):
        group = do_add_group(db, "c1", "Red")
        do_add_student(db, "c1", "Alice", group="Red")
        do_add_student(db, "c1", "Bob", group=group["id"])
        do_settle(db, "c1", [6], now=FRI)
        classroom = db.load_classroom("c1")
        assert sorted(s.score for s in classroom.students.values()) == [6, 6]

        do_group_redeem(db, "c1", "Red", "reward-1", now=FRI)
        classroom = db.load_classroom("c1")
        assert sorted(s.score for s in classroom.students.values()) == [1, 1]


class TestAttendanceCommands:
    def test_attend_twice_same_day(self, db, alice):
        do_attend(db, "c1", "Alice", now=FRI)
        with pytest.raises(ClassQuestError):
            do_attend(db, "c1", "Alice", now=FRI)

    def test_weekends_bridge_attendance(self, db, alice):
        assert do_exempt_weekends(db, "c1", 2025, 1, now=FRI) == 8
        do_attend(db, "c1", "Alice", now=FRI)
        do_attend(db, "c1", "Alice", now=MON)
        assert db.load_classroom("c1").get_record(alice["id"]).attendance_streak == 2

    def test_makeup(self, db, alice):
        do_attend(db, "c1", "Alice", now=MON)
        do_makeup(db, "c1", "Alice", "2025-01-03", now=MON)
        assert db.load_classroom("c1").get_record(alice["id"]).attendance_days == 2

    def test_exempt_add_and_remove(self, db):
        do_exempt_add(db, "c1", "2025-01-04", now=FRI)
        assert db.load_classroom("c1").exempt_dates == {"2025-01-04"}
        assert do_exempt_remove(db, "c1", "2025-01-04") is True
        assert do_exempt_remove(db, "c1", "2025-01-04") is False


class TestBadgeAndEventCommands:
    def test_load_badges(self, db, tmp_path):
        path = tmp_path / "badges.json"
        path.write_text(json.dumps([
            {"id": "reader", "name": "Reader", "condition": {"type": "first_score"}, "bonus_points": 2},
        ]), encoding="utf-8")
        assert do_load_badges(db, "c1", path) == 1
        assert [b.id for b in db.load_classroom("c1").badges] == ["reader"]

    def test_load_badges_rejects_non_list(self, db, tmp_path):
        path = tmp_path / "badges.json"
        path.write_text('{"id": "reader"}', encoding="utf-8")
        with pytest.raises(ClassQuestError):
            do_load_badges(db, "c1", path)

    @pytest.mark.parametrize("rules", [
        [{"name": "no id"}],
        [{"id": "x", "bonus_points": "lots"}],
        ["not a rule"],
    ])
    def test_load_badges_rejects_malformed_rule(self, db, tmp_path, rules):
        path = tmp_path / "badges.json"
        path.write_text(json.dumps(rules), encoding="utf-8")
        with pytest.raises(ClassQuestError, match="#1"):
            do_load_badges(db, "c1", path)
        assert db.get_badges("c1") is None

    def test_malformed_rule_exits_cleanly(self, tmp_path):
        path = tmp_path / "badges.json"
        path.write_text(json.dumps([{"name": "no id"}]), encoding="utf-8")
        with patch("classquest.cli.get_db_path", return_value=tmp_path / "cli.db"), \
             patch("classquest.cli.get_current_class", return_value="c1"):
            with pytest.raises(SystemExit) as exc_info:
                main(["badges", "--load", str(path)])
        assert exc_info.value.code == 1

    def test_load_badges_missing_file(self, db, tmp_path):
        with pytest.raises(ClassQuestError):
            do_load_badges(db, "c1", tmp_path / "missing.json")

    def test_events_clear(self, db, alice):
        do_score(db, "c1", "Alice", value=1, now=FRI)
        assert len(do_events(db, "c1")) == 1
        do_events(db, "c1", clear=True)
        assert do_events(db, "c1") == []


class TestMain:
    def test_error_exits_with_status_1(self, tmp_path):
        with patch("classquest.cli.get_db_path", return_value=tmp_path / "cli.db"), \
             patch("classquest.cli.get_current_class", return_value="c1"):
            with pytest.raises(SystemExit) as exc_info:
                main(["show", "nobody"])
        assert exc_info.value.code == 1

    def test_add_then_score(self, tmp_path):
        db_path = tmp_path / "cli.db"
        with patch("classquest.cli.get_db_path", return_value=db_path), \
             patch("classquest.cli.get_current_class", return_value="c1"):
            main(["student", "add", "Alice"])
            main(["score", "Alice", "2"])
        database = Database(db_path=db_path)
        try:
            classroom = database.load_classroom("c1")
            assert [s.score for s in classroom.students.values()] == [2]
        finally:
            database.close()


# ── Display helpers ───────────────────────────────────────────────────────────


class TestDisplayHelpers:
    def test_xp_bar_half(self):
        assert _xp_bar(5, 10, width=10) == "[█████░░░░░]"

    def test_xp_bar_zero_total_is_full(self):
        assert _xp_bar(0, 0, width=4) == "[████]"

    def test_format_level_up(self):
        event = NotificationEvent(
            type=EventType.LEVEL_UP, student_id="s", student_name="Alice", timestamp=FRI,
            new_level=2, level_name="Apprentice", level_emoji="📖",
        )
        assert "level 2" in format_event(event)

    def test_format_milestone(self):
        event = NotificationEvent(
            type=EventType.STREAK_MILESTONE, student_id="s", student_name="Alice", timestamp=FRI,
            streak_days=7, streak_kind="attendance",
        )
        assert "7-day attendance streak" in format_event(event)
