"""Tests for the classroom host: history, undo, attendance and exemptions."""

from datetime import datetime

import pytest

from classquest.badges import DEFAULT_BADGES
from classquest.catalog import find_reward, find_score_item
from classquest.classroom import Classroom
from classquest.errors import (
    AlreadyCheckedInError,
    AttendanceNotFoundError,
    GroupNotFoundError,
    HistoryNotFoundError,
    InsufficientPointsError,
    LevelTooLowError,
    StudentNotFoundError,
)
from classquest.models import EventType, GamificationRecord, create_default_record

FRI = datetime(2025, 1, 3, 9, 0)
SAT = datetime(2025, 1, 4, 9, 0)
SUN = datetime(2025, 1, 5, 9, 0)
MON = datetime(2025, 1, 6, 9, 0)


@pytest.fixture
def classroom():
    room = Classroom("c1", badges=DEFAULT_BADGES)
    room.add_student("Alice", student_id="alice")
    room.add_student("Bob", student_id="bob")
    return room


class TestRoster:
    def test_lookup_by_name(self, classroom):
        assert classroom.get_student("alice").name == "Alice"
        assert classroom.get_student("BOB").id == "bob"

    def test_unknown_student(self, classroom):
        with pytest.raises(StudentNotFoundError):
            classroom.get_student("carol")

    def test_unknown_group(self, classroom):
        with pytest.raises(GroupNotFoundError):
            classroom.add_student("Dan", group_id="nope")

    def test_remove_cascades_record(self, classroom):
        classroom.score_student("alice", 2, FRI)
        assert "alice" in classroom.records
        classroom.remove_student("alice")
        assert "alice" not in classroom.records
        assert "alice" not in classroom.students

    def test_get_record_defaults(self, classroom):
        assert classroom.get_record("bob") == create_default_record("bob")


class TestScoring:
    def test_positive_score(self, classroom):
        entry = classroom.score_student("alice", 2, FRI)
        assert classroom.students["alice"].score == 2
        record = classroom.get_record("alice")
        assert record.xp == 7  # 2 + first-score bonus
        assert entry.value == 2
        assert entry.snapshot is not None
        assert entry.snapshot.xp == 0

    def test_negative_score_skips_engine(self, classroom):
        classroom.score_student("alice", -1, FRI)
        assert classroom.students["alice"].score == -1
        assert classroom.get_record("alice").xp == 0
        assert len(classroom.history) == 1

    def test_score_item(self, classroom):
        entry = classroom.score_student("alice", find_score_item("default-5"), FRI)
        assert entry.item_id == "default-5"
        assert entry.item_name == "Perfect Quiz Score"
        assert classroom.get_record("alice").perfect_quiz_count == 1

    def test_events_queued(self, classroom):
        classroom.score_student("alice", 1, FRI)
        assert [e.type for e in classroom.pending_events] == [EventType.BADGE_EARNED]
        event = classroom.dismiss_event()
        assert event.badge_id == "first-score"
        assert classroom.pending_events == []

    def test_clear_events(self, classroom):
        classroom.score_student("alice", 1, FRI)
        classroom.score_student("bob", 1, FRI)
        classroom.clear_events()
        assert classroom.pending_events == []


class TestRewards:
    def test_redeem(self, classroom):
        classroom.students["alice"].score = 20
        entry = classroom.redeem_reward("alice", find_reward("reward-1"), FRI)
        assert classroom.students["alice"].score == 10
        record = classroom.get_record("alice")
        assert record.reward_redeemed_count == 1
        assert record.xp == 5
        assert entry.value == -10

    def test_insufficient_points(self, classroom):
        classroom.students["alice"].score = 5
        with pytest.raises(InsufficientPointsError):
            classroom.redeem_reward("alice", find_reward("reward-1"), FRI)

    def test_level_too_low(self, classroom):
        classroom.students["alice"].score = 100
        with pytest.raises(LevelTooLowError):
            classroom.redeem_reward("alice", find_reward("reward-6"), FRI)

    def test_undo_redeem(self, classroom):
        classroom.students["alice"].score = 20
        entry = classroom.redeem_reward("alice", find_reward("reward-1"), FRI)
        classroom.undo(entry.id)
        assert classroom.students["alice"].score == 20
        assert classroom.get_record("alice") == create_default_record("alice")


class TestGroups:
    @pytest.fixture
    def grouped(self):
        room = Classroom("c1", badges=DEFAULT_BADGES)
        red = room.add_group("Red", group_id="red")
        blue = room.add_group("Blue", group_id="blue")
        room.add_student("Alice", group_id=red.id, student_id="alice")
        room.add_student("Bob", group_id=red.id, student_id="bob")
        room.add_student("Cara", group_id=blue.id, student_id="cara")
        return room

    def test_group_reward_undo_restores_records(self, grouped):
        grouped.records["alice"] = GamificationRecord(student_id="alice", xp=10)
        grouped.records["bob"] = GamificationRecord(student_id="bob", xp=8)
        grouped.students["alice"].score = 6
        grouped.students["bob"].score = 4

        entry = grouped.redeem_group_reward("red", find_reward("reward-1"), FRI)
        assert grouped.students["alice"].score == 1
        assert grouped.students["bob"].score == -1
        assert grouped.get_record("alice").xp == 15
        assert grouped.get_record("bob").xp == 13

        grouped.undo(entry.id)
        assert grouped.get_record("alice").xp == 10
        assert grouped.get_record("bob").xp == 8
        assert grouped.students["alice"].score == 6
        assert grouped.students["bob"].score == 4

    def test_group_cannot_afford(self, grouped):
        with pytest.raises(InsufficientPointsError):
            grouped.redeem_group_reward("blue", find_reward("reward-1"), FRI)

    def test_group_score_and_undo(self, grouped):
        entry = grouped.score_group("red", 4, FRI)
        assert grouped.groups["red"].score == 4
        grouped.undo(entry.id)
        assert grouped.groups["red"].score == 0

    def test_settlement(self, grouped):
        grouped.groups["red"].score = 3
        grouped.groups["blue"].score = 9
        entries = grouped.settle_groups([10, 4], FRI)
        assert [e.target_id for e in entries] == ["blue", "red"]
        assert grouped.students["cara"].score == 10
        assert grouped.students["alice"].score == 4
        assert grouped.groups["blue"].score == 0
        assert grouped.groups["red"].score == 0
        assert grouped.get_record("cara").xp == 15  # 10 + first-score bonus

    def test_settlement_undo(self, grouped):
        grouped.groups["blue"].score = 9
        entries = grouped.settle_groups([10], FRI)
        blue = next(e for e in entries if e.target_id == "blue")
        grouped.undo(blue.id)
        assert grouped.groups["blue"].score == 9
        assert grouped.students["cara"].score == 0
        assert grouped.get_record("cara") == create_default_record("cara")


class TestAttendance:
    def test_check_in(self, classroom):
        entry = classroom.check_in("alice", FRI)
        record = classroom.get_record("alice")
        assert record.attendance_days == 1
        assert record.last_attendance_date == "2025-01-03"
        assert classroom.students["alice"].score == 1
        assert entry.attendance_meta is not None
        assert len(classroom.attendance) == 1

    def test_second_check_in_same_day(self, classroom):
        classroom.check_in("alice", FRI)
        with pytest.raises(AlreadyCheckedInError):
            classroom.check_in("alice", datetime(2025, 1, 3, 15, 0))

    def test_undo_check_in(self, classroom):
        entry = classroom.check_in("alice", FRI)
        classroom.undo(entry.id)
        assert classroom.attendance == []
        assert classroom.students["alice"].score == 0
        assert classroom.get_record("alice") == create_default_record("alice")

    def test_weekend_bridged_check_in(self, classroom):
        classroom.exempt_weekends(2025, 1, FRI)
        classroom.check_in("alice", FRI)
        classroom.check_in("alice", MON)
        assert classroom.get_record("alice").attendance_streak == 2

    def test_makeup_recomputes_streak(self, classroom):
        classroom.exempt_weekends(2025, 1, MON)
        classroom.check_in("alice", MON)
        classroom.makeup_attendance("alice", "2025-01-03", MON)
        record = classroom.get_record("alice")
        assert record.attendance_days == 2
        assert record.attendance_streak == 2
        assert record.last_attendance_date == "2025-01-06"

    def test_makeup_existing_day(self, classroom):
        classroom.check_in("alice", FRI)
        with pytest.raises(AlreadyCheckedInError):
            classroom.makeup_attendance("alice", "2025-01-03", MON)

    def test_revoke_and_undo(self, classroom):
        classroom.check_in("alice", FRI)
        entry = classroom.revoke_attendance("alice", "2025-01-03", MON)
        assert classroom.attendance == []
        assert classroom.get_record("alice").attendance_days == 0
        assert classroom.students["alice"].score == 0

        classroom.undo(entry.id)
        assert len(classroom.attendance) == 1
        assert classroom.get_record("alice").attendance_days == 1
        assert classroom.students["alice"].score == 1

    def test_revoke_missing(self, classroom):
        with pytest.raises(AttendanceNotFoundError):
            classroom.revoke_attendance("alice", "2025-01-03", MON)


class TestExemptions:
    def test_adding_exemption_bridges_existing_streak(self, classroom):
        classroom.score_student("alice", 1, FRI)
        classroom.score_student("alice", 1, SUN)
        assert classroom.get_record("alice").current_streak == 1

        classroom.add_exemption("2025-01-04", SUN)
        assert classroom.get_record("alice").current_streak == 2

        assert classroom.remove_exemption("2025-01-04") is True
        assert classroom.get_record("alice").current_streak == 1

    def test_duplicate_exemption(self, classroom):
        first = classroom.add_exemption("2025-01-04", SAT)
        second = classroom.add_exemption("2025-01-04", SAT)
        assert first is second
        assert len(classroom.exemptions) == 1

    def test_remove_missing_exemption(self, classroom):
        assert classroom.remove_exemption("2025-01-04") is False

    def test_exempt_weekends_once(self, classroom):
        assert len(classroom.exempt_weekends(2025, 1, FRI)) == 8
        assert classroom.exempt_weekends(2025, 1, FRI) == []


class TestUndo:
    def test_undo_restores_snapshot_exactly(self, classroom):
        classroom.score_student("alice", 3, FRI)
        before = classroom.get_record("alice")
        entry = classroom.score_student("alice", 2, SAT)
        classroom.undo(entry.id)
        assert classroom.get_record("alice") == before
        assert classroom.students["alice"].score == 3
        assert entry.undone is True

    def test_undo_twice_is_noop(self, classroom):
        entry = classroom.score_student("alice", 2, FRI)
        classroom.undo(entry.id)
        classroom.undo(entry.id)
        assert classroom.students["alice"].score == 0

    def test_unknown_entry(self, classroom):
        with pytest.raises(HistoryNotFoundError):
            classroom.undo("missing")

    def test_undone_entries_ignored_by_recompute(self, classroom):
        classroom.score_student("alice", 1, FRI)
        entry = classroom.score_student("alice", 1, SAT)
        classroom.undo(entry.id)
        classroom.recompute_streaks()
        record = classroom.get_record("alice")
        assert record.current_streak == 1
        assert record.last_positive_scoring_date == "2025-01-03"


class TestSerialisation:
    def test_round_trip(self, classroom):
        classroom.add_exemption("2025-01-04", FRI)
        classroom.score_student("alice", find_score_item("default-5"), FRI)
        classroom.check_in("bob", FRI)
        restored = Classroom.from_dict(classroom.to_dict())
        assert restored.records == classroom.records
        assert restored.students == classroom.students
        assert [h.to_dict() for h in restored.history] == [h.to_dict() for h in classroom.history]
        assert restored.exempt_dates == {"2025-01-04"}
        assert restored.pending_events == classroom.pending_events
        assert [b.id for b in restored.badges] == [b.id for b in DEFAULT_BADGES]
