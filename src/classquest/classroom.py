"""In-memory classroom: students, groups, history and gamification records.

Every mutation goes through the engine and leaves a history entry carrying the
snapshot(s) needed to undo it. Retroactive changes (exemptions, backfilled or
revoked attendance, undo) finish with a streak recompute from history.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from classquest.badges import DEFAULT_BADGES, BadgeDefinition, badge_from_dict, badge_to_dict
from classquest.catalog import Reward, ScoreItem
from classquest.engine import (
    ATTENDANCE_XP,
    ApplyContext,
    Translate,
    apply_attendance_makeup,
    apply_attendance_revoke,
    apply_attendance_today,
    apply_positive_score,
    apply_reward_redemption,
    english,
)
from classquest.errors import (
    AlreadyCheckedInError,
    AttendanceNotFoundError,
    GroupNotFoundError,
    HistoryNotFoundError,
    InsufficientPointsError,
    LevelTooLowError,
    StudentNotFoundError,
)
from classquest.groups import (
    can_group_redeem_reward,
    compute_settlement_bonuses,
    sort_groups_by_score,
    split_group_reward_cost,
    students_in_group,
)
from classquest.models import (
    AttendanceExemption,
    AttendanceRecord,
    AttendanceStatus,
    GamificationRecord,
    Group,
    HistoryRecord,
    HistoryType,
    NotificationEvent,
    Snapshot,
    Student,
    StudentDelta,
    TargetType,
    create_default_record,
)
from classquest.recompute import apply_streak_summaries, compute_attendance_streaks, compute_score_streaks
from classquest.snapshots import restore_snapshot, snapshot_for_student
from classquest.streaks import date_key_from_timestamp, weekend_dates_for_month

logger = logging.getLogger(__name__)

ITEM_CUSTOM = "custom"
ITEM_ATTENDANCE = "attendance"
ITEM_ATTENDANCE_MAKEUP = "attendance_makeup"
ITEM_ATTENDANCE_REVOKE = "attendance_revoke"
ITEM_SETTLEMENT = "settlement"


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Classroom:
    """A single class and everything that happens in it. Not thread-safe."""

    def __init__(
        self,
        class_id: str,
        badges: Sequence[BadgeDefinition] | None = None,
        translate: Translate = english,
    ) -> None:
        self.class_id = class_id
        self.badges: list[BadgeDefinition] = list(DEFAULT_BADGES if badges is None else badges)
        self.translate = translate
        self.students: dict[str, Student] = {}
        self.groups: dict[str, Group] = {}
        self.records: dict[str, GamificationRecord] = {}
        self.history: list[HistoryRecord] = []
        self.attendance: list[AttendanceRecord] = []
        self.exemptions: list[AttendanceExemption] = []
        self.pending_events: list[NotificationEvent] = []

    # ── Roster ────────────────────────────────────────────────────────────

    def add_student(self, name: str, group_id: str | None = None, student_id: str | None = None) -> Student:
        if group_id is not None:
            group_id = self.get_group(group_id).id
        student = Student(id=student_id or _new_id(), class_id=self.class_id, name=name, group_id=group_id)
        self.students[student.id] = student
        return student

    def remove_student(self, student_id: str) -> Student:
        """Remove a student and their gamification record. History is kept."""
        student = self.get_student(student_id)
        del self.students[student.id]
        self.records.pop(student.id, None)
        return student

    def add_group(self, name: str, group_id: str | None = None) -> Group:
        group = Group(id=group_id or _new_id(), class_id=self.class_id, name=name)
        self.groups[group.id] = group
        return group

    def get_student(self, key: str) -> Student:
        """Look a student up by id, then by case-insensitive name."""
        if key in self.students:
            return self.students[key]
        for student in self.students.values():
            if student.name.lower() == key.lower():
                return student
        raise StudentNotFoundError(key)

    def get_group(self, key: str) -> Group:
        if key in self.groups:
            return self.groups[key]
        for group in self.groups.values():
            if group.name.lower() == key.lower():
                return group
        raise GroupNotFoundError(key)

    def get_record(self, student_id: str) -> GamificationRecord:
        return self.records.get(student_id) or create_default_record(student_id)

    def get_history(self, history_id: str) -> HistoryRecord:
        for entry in self.history:
            if entry.id == history_id:
                return entry
        raise HistoryNotFoundError(history_id)

    @property
    def exempt_dates(self) -> frozenset[str]:
        return frozenset(e.date for e in self.exemptions)

    # ── Internals ─────────────────────────────────────────────────────────

    def _context(self, student: Student, now: datetime) -> ApplyContext:
        return ApplyContext(
            student_id=student.id,
            student_name=student.name,
            badges=self.badges,
            now=now,
            exempt_dates=self.exempt_dates,
            translate=self.translate,
        )

    def _commit(self, student_id: str, record: GamificationRecord, events: list[NotificationEvent]) -> None:
        self.records[student_id] = record
        self.pending_events.extend(events)

    def _log(self, entry: HistoryRecord) -> HistoryRecord:
        self.history.append(entry)
        logger.debug("History %s: %s %s %+d", entry.id, entry.target_name, entry.item_id, entry.value)
        return entry

    def _history(
        self,
        kind: HistoryType,
        target_type: TargetType,
        target_id: str,
        target_name: str,
        item_id: str,
        item_name: str,
        value: int,
        now: datetime,
        **extra: Any,
    ) -> HistoryRecord:
        return self._log(
            HistoryRecord(
                id=_new_id(),
                class_id=self.class_id,
                type=kind,
                target_type=target_type,
                target_id=target_id,
                target_name=target_name,
                item_id=item_id,
                item_name=item_name,
                value=value,
                timestamp=now,
                **extra,
            )
        )

    def _find_attendance(self, student_id: str, date_key: str) -> AttendanceRecord | None:
        for record in self.attendance:
            if record.student_id == student_id and record.date == date_key and record.status == AttendanceStatus.PRESENT:
                return record
        return None

    # ── Scores and rewards ────────────────────────────────────────────────

    def score_student(
        self,
        student_id: str,
        item: ScoreItem | int,
        now: datetime,
        note: str | None = None,
    ) -> HistoryRecord:
        """Add (or deduct) points. Only positive scores feed the engine."""
        student = self.get_student(student_id)
        if isinstance(item, ScoreItem):
            value = item.value
            item_id, item_name = item.id, self.translate(item.name, item.name_en)
            score_item: ScoreItem | None = item
        else:
            value = int(item)
            item_id, item_name = ITEM_CUSTOM, self.translate("自定义", "Custom")
            score_item = None

        snapshot = snapshot_for_student(self.records, student.id)
        student.score += value
        if value > 0:
            record, events = apply_positive_score(
                self.get_record(student.id), value, self._context(student, now), item=score_item
            )
            self._commit(student.id, record, events)

        return self._history(
            HistoryType.SCORE, TargetType.STUDENT, student.id, student.name,
            item_id, item_name, value, now, note=note, snapshot=snapshot,
        )

    def score_group(self, group_id: str, value: int, now: datetime, note: str | None = None) -> HistoryRecord:
        """Change a group's own score. Members are not affected."""
        group = self.get_group(group_id)
        before = group.score
        group.score += value
        return self._history(
            HistoryType.SCORE, TargetType.GROUP, group.id, group.name,
            ITEM_CUSTOM, self.translate("小组加分", "Group score"), value, now,
            note=note, group_score_before=before,
        )

    def redeem_reward(self, student_id: str, reward: Reward, now: datetime) -> HistoryRecord:
        student = self.get_student(student_id)
        record = self.get_record(student.id)
        if record.level < reward.min_level:
            raise LevelTooLowError(reward.min_level, record.level)
        if student.score < reward.cost:
            raise InsufficientPointsError(reward.cost, student.score)

        snapshot = snapshot_for_student(self.records, student.id)
        student.score -= reward.cost
        self._commit(student.id, *apply_reward_redemption(record, self._context(student, now)))
        return self._history(
            HistoryType.REWARD, TargetType.STUDENT, student.id, student.name,
            reward.id, self.translate(reward.name, reward.name_en), -reward.cost, now,
            snapshot=snapshot,
        )

    def redeem_group_reward(self, group_id: str, reward: Reward, now: datetime) -> HistoryRecord:
        """Redeem a reward with pooled points; each member pays a share and gets the redemption."""
        group = self.get_group(group_id)
        members = students_in_group(self.students.values(), group.id)
        if not members or not can_group_redeem_reward(reward, members):
            raise InsufficientPointsError(reward.cost, sum(s.score for s in members))

        deltas: list[StudentDelta] = []
        for student, share in zip(members, split_group_reward_cost(reward.cost, len(members))):
            snapshot = snapshot_for_student(self.records, student.id)
            student.score -= share
            self._commit(student.id, *apply_reward_redemption(self.get_record(student.id), self._context(student, now)))
            deltas.append(StudentDelta(student_id=student.id, delta=-share, snapshot=snapshot))

        return self._history(
            HistoryType.REWARD, TargetType.GROUP, group.id, group.name,
            reward.id, self.translate(reward.name, reward.name_en), -reward.cost, now,
            per_student_deltas=deltas,
        )

    def settle_groups(self, bonuses: Sequence[int], now: datetime) -> list[HistoryRecord]:
        """Rank groups by score, give every member their rank's bonus, then reset group scores."""
        ranked = sort_groups_by_score(self.groups.values())
        entries: list[HistoryRecord] = []
        for group_id, bonus in compute_settlement_bonuses(ranked, bonuses):
            group = self.groups[group_id]
            deltas: list[StudentDelta] = []
            for student in students_in_group(self.students.values(), group.id):
                snapshot = snapshot_for_student(self.records, student.id)
                student.score += bonus
                record, events = apply_positive_score(self.get_record(student.id), bonus, self._context(student, now))
                self._commit(student.id, record, events)
                deltas.append(StudentDelta(student_id=student.id, delta=bonus, snapshot=snapshot))

            before = group.score
            group.score = 0
            entries.append(
                self._history(
                    HistoryType.SCORE, TargetType.GROUP, group.id, group.name,
                    ITEM_SETTLEMENT, self.translate("小组结算", "Group settlement"), bonus, now,
                    per_student_deltas=deltas, group_score_before=before,
                )
            )
        return entries

    # ── Attendance ────────────────────────────────────────────────────────

    def check_in(self, student_id: str, now: datetime, note: str | None = None) -> HistoryRecord:
        student = self.get_student(student_id)
        today = date_key_from_timestamp(now)
        if self._find_attendance(student.id, today) is not None:
            raise AlreadyCheckedInError(student.name, today)

        attendance = AttendanceRecord(
            id=_new_id(), class_id=self.class_id, student_id=student.id, date=today, timestamp=now, note=note
        )
        snapshot = snapshot_for_student(self.records, student.id)
        self.attendance.append(attendance)
        student.score += ATTENDANCE_XP
        self._commit(student.id, *apply_attendance_today(self.get_record(student.id), today, self._context(student, now)))
        return self._history(
            HistoryType.SCORE, TargetType.STUDENT, student.id, student.name,
            ITEM_ATTENDANCE, self.translate("出勤", "Attendance"), ATTENDANCE_XP, now,
            snapshot=snapshot, attendance_meta=attendance,
        )

    def makeup_attendance(self, student_id: str, date_key: str, now: datetime, note: str | None = None) -> HistoryRecord:
        """Backfill attendance for a past day, then rebuild streaks."""
        student = self.get_student(student_id)
        if self._find_attendance(student.id, date_key) is not None:
            raise AlreadyCheckedInError(student.name, date_key)

        attendance = AttendanceRecord(
            id=_new_id(), class_id=self.class_id, student_id=student.id, date=date_key, timestamp=now, note=note
        )
        snapshot = snapshot_for_student(self.records, student.id)
        self.attendance.append(attendance)
        student.score += ATTENDANCE_XP
        self._commit(student.id, *apply_attendance_makeup(self.get_record(student.id), self._context(student, now)))
        entry = self._history(
            HistoryType.SCORE, TargetType.STUDENT, student.id, student.name,
            ITEM_ATTENDANCE_MAKEUP, self.translate("补签", "Attendance make-up"), ATTENDANCE_XP, now,
            snapshot=snapshot, attendance_meta=attendance,
        )
        self.recompute_streaks()
        return entry

    def revoke_attendance(self, student_id: str, date_key: str, now: datetime) -> HistoryRecord:
        student = self.get_student(student_id)
        attendance = self._find_attendance(student.id, date_key)
        if attendance is None:
            raise AttendanceNotFoundError(student.name, date_key)

        snapshot = snapshot_for_student(self.records, student.id)
        self.attendance.remove(attendance)
        student.score -= ATTENDANCE_XP
        record, events = apply_attendance_revoke(self.get_record(student.id), date_key, date_key_from_timestamp(now))
        self._commit(student.id, record, events)
        entry = self._history(
            HistoryType.SCORE, TargetType.STUDENT, student.id, student.name,
            ITEM_ATTENDANCE_REVOKE, self.translate("撤销出勤", "Attendance revoked"), -ATTENDANCE_XP, now,
            snapshot=snapshot, attendance_meta=attendance,
        )
        self.recompute_streaks()
        return entry

    # ── Exemptions ────────────────────────────────────────────────────────

    def add_exemption(self, date_key: str, now: datetime, note: str | None = None) -> AttendanceExemption:
        """Mark a no-class day. Adding an existing date returns the existing exemption."""
        for exemption in self.exemptions:
            if exemption.date == date_key:
                return exemption
        exemption = AttendanceExemption(id=_new_id(), class_id=self.class_id, date=date_key, created_at=now, note=note)
        self.exemptions.append(exemption)
        self.recompute_streaks()
        return exemption

    def remove_exemption(self, date_key: str) -> bool:
        """Drop an exemption. Returns False if the date was not exempt."""
        remaining = [e for e in self.exemptions if e.date != date_key]
        if len(remaining) == len(self.exemptions):
            return False
        self.exemptions = remaining
        self.recompute_streaks()
        return True

    def exempt_weekends(self, year: int, month: int, now: datetime) -> list[AttendanceExemption]:
        """Exempt every Saturday and Sunday of a month not already exempt."""
        existing = self.exempt_dates
        added = [
            AttendanceExemption(id=_new_id(), class_id=self.class_id, date=key, created_at=now)
            for key in weekend_dates_for_month(year, month)
            if key not in existing
        ]
        if added:
            self.exemptions.extend(added)
            self.recompute_streaks()
        return added

    def recompute_streaks(self) -> None:
        """Rebuild every student's streak fields from history and attendance."""
        student_ids = list(self.students)
        if not student_ids:
            return
        exempt = self.exempt_dates
        score = compute_score_streaks(self.history, exempt, student_ids)
        attendance = compute_attendance_streaks(self.attendance, exempt, student_ids)
        self.records.update(apply_streak_summaries(self.records, student_ids, score, attendance))

    # ── Undo ──────────────────────────────────────────────────────────────

    def _restore(self, student_id: str, delta: int, snapshot: Snapshot | None) -> None:
        student = self.students.get(student_id)
        if student is None:
            return
        student.score -= delta
        if snapshot is not None:
            self.records[student_id] = restore_snapshot(snapshot, student_id)

    def undo(self, history_id: str) -> HistoryRecord:
        """Reverse a history entry. Undoing an entry twice is a no-op."""
        entry = self.get_history(history_id)
        if entry.undone:
            return entry
        entry.undone = True

        if entry.target_type == TargetType.STUDENT:
            self._restore(entry.target_id, entry.value, entry.snapshot)
        elif entry.target_type == TargetType.GROUP:
            group = self.groups.get(entry.target_id)
            if group is not None and entry.type == HistoryType.SCORE:
                if entry.group_score_before is not None:
                    group.score = entry.group_score_before
                else:
                    group.score -= entry.value
            for delta in entry.per_student_deltas:
                self._restore(delta.student_id, delta.delta, delta.snapshot)

        meta = entry.attendance_meta
        if meta is not None:
            if entry.item_id == ITEM_ATTENDANCE_REVOKE:
                if all(r.id != meta.id for r in self.attendance):
                    self.attendance.append(meta)
            elif entry.item_id in (ITEM_ATTENDANCE, ITEM_ATTENDANCE_MAKEUP):
                self.attendance = [r for r in self.attendance if r.id != meta.id]

        logger.debug("Undid %s (%s)", entry.id, entry.item_id)
        self.recompute_streaks()
        return entry

    # ── Events ────────────────────────────────────────────────────────────

    def dismiss_event(self, index: int = 0) -> NotificationEvent:
        """Remove and return one queued event (oldest first by default)."""
        return self.pending_events.pop(index)

    def clear_events(self) -> None:
        self.pending_events.clear()

    # ── Serialisation ─────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "class_id": self.class_id,
            "badges": [badge_to_dict(b) for b in self.badges],
            "students": [s.to_dict() for s in self.students.values()],
            "groups": [g.to_dict() for g in self.groups.values()],
            "records": [r.to_dict() for r in self.records.values()],
            "history": [h.to_dict() for h in self.history],
            "attendance": [a.to_dict() for a in self.attendance],
            "exemptions": [e.to_dict() for e in self.exemptions],
            "pending_events": [e.to_dict() for e in self.pending_events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], translate: Translate = english) -> Classroom:
        badges = data.get("badges")
        classroom = cls(
            data["class_id"],
            badges=[badge_from_dict(b) for b in badges] if badges is not None else None,
            translate=translate,
        )
        classroom.students = {s["id"]: Student.from_dict(s) for s in data.get("students", [])}
        classroom.groups = {g["id"]: Group.from_dict(g) for g in data.get("groups", [])}
        classroom.records = {
            r["student_id"]: GamificationRecord.from_dict(r) for r in data.get("records", [])
        }
        classroom.history = [HistoryRecord.from_dict(h) for h in data.get("history", [])]
        classroom.attendance = [AttendanceRecord.from_dict(a) for a in data.get("attendance", [])]
        classroom.exemptions = [AttendanceExemption.from_dict(e) for e in data.get("exemptions", [])]
        classroom.pending_events = [NotificationEvent.from_dict(e) for e in data.get("pending_events", [])]
        return classroom
