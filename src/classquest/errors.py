"""Errors raised by the classroom host. The engine itself never raises."""

from __future__ import annotations


class ClassQuestError(Exception):
    """Base class for every error the CLI reports to the user."""


class StudentNotFoundError(ClassQuestError):
    def __init__(self, student_id: str):
        super().__init__(f"No student with id or name '{student_id}'")
        self.student_id = student_id


class GroupNotFoundError(ClassQuestError):
    def __init__(self, group_id: str):
        super().__init__(f"No group with id or name '{group_id}'")
        self.group_id = group_id


class HistoryNotFoundError(ClassQuestError):
    def __init__(self, history_id: str):
        super().__init__(f"No history entry '{history_id}'")
        self.history_id = history_id


class AttendanceNotFoundError(ClassQuestError):
    def __init__(self, student_id: str, date_key: str):
        super().__init__(f"No attendance for '{student_id}' on {date_key}")
        self.student_id = student_id
        self.date_key = date_key


class InsufficientPointsError(ClassQuestError):
    def __init__(self, needed: int, available: int):
        super().__init__(f"Not enough points: need {needed}, have {available}")
        self.needed = needed
        self.available = available


class LevelTooLowError(ClassQuestError):
    def __init__(self, required: int, current: int):
        super().__init__(f"Level {required} required (current level {current})")
        self.required = required
        self.current = current


class AlreadyCheckedInError(ClassQuestError):
    def __init__(self, student_id: str, date_key: str):
        super().__init__(f"'{student_id}' already has attendance on {date_key}")
        self.student_id = student_id
        self.date_key = date_key
