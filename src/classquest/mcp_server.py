"""MCP server for classquest.

Exposes the current class as MCP tools so an assistant can look students up
and record points mid-lesson.
Run via: python3 -m classquest.mcp_server
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from mcp.server.fastmcp import FastMCP

from classquest.badges import check_badges, get_closest_badges
from classquest.catalog import find_score_item
from classquest.config import get_current_class, get_db_path, get_language, make_translator
from classquest.errors import ClassQuestError
from classquest.levels import level_for_xp, xp_progress

mcp = FastMCP(name="classquest")


def _get_db():
    from classquest.db import Database
    return Database(get_db_path())


def _student_summary(classroom, student) -> dict[str, Any]:
    record = classroom.get_record(student.id)
    level = level_for_xp(record.xp)
    return {
        "id": student.id,
        "name": student.name,
        "score": student.score,
        "xp": record.xp,
        "level": level.level,
        "level_name": classroom.translate(level.name, level.name_en),
        "current_streak": record.current_streak,
        "attendance_streak": record.attendance_streak,
        "badge_count": len(record.unlocked_badge_ids),
    }


@mcp.tool()
def get_roster(class_id: str | None = None) -> dict[str, Any]:
    """List every student in the class with points, level and streaks."""
    db = _get_db()
    try:
        classroom = db.load_classroom(class_id or get_current_class(), make_translator(get_language()))
        students = sorted(classroom.students.values(), key=lambda s: s.score, reverse=True)
        return {
            "class_id": classroom.class_id,
            "students": [_student_summary(classroom, s) for s in students],
            "count": len(students),
        }
    finally:
        db.close()


@mcp.tool()
def get_student(student: str, class_id: str | None = None) -> dict[str, Any]:
    """Get one student's full gamification record by id or name."""
    db = _get_db()
    try:
        classroom = db.load_classroom(class_id or get_current_class(), make_translator(get_language()))
        try:
            found = classroom.get_student(student)
        except ClassQuestError as exc:
            return {"error": str(exc)}
        record = classroom.get_record(found.id)
        progress = xp_progress(record.xp)
        closest = get_closest_badges(check_badges(record, classroom.badges))
        result = _student_summary(classroom, found)
        result.update({
            "record": record.to_dict(),
            "xp_into_level": progress.points_into_level,
            "xp_for_next": progress.points_needed_for_next,
            "closest_badges": [
                {"id": s.definition.id, "name": s.definition.name_en, "progress": round(s.progress, 2)}
                for s in closest
            ],
        })
        return result
    finally:
        db.close()


@mcp.tool()
def get_badges(student: str | None = None, class_id: str | None = None) -> dict[str, Any]:
    """List the class's badge rules, with unlock state when a student is given."""
    db = _get_db()
    try:
        classroom = db.load_classroom(class_id or get_current_class(), make_translator(get_language()))
        unlocked: set[str] = set()
        if student:
            try:
                found = classroom.get_student(student)
            except ClassQuestError as exc:
                return {"error": str(exc)}
            unlocked = set(classroom.get_record(found.id).unlocked_badge_ids)
        badges = [
            {
                "id": b.id,
                "name": classroom.translate(b.name, b.name_en),
                "emoji": b.emoji,
                "description": classroom.translate(b.description, b.description_en),
                "bonus_points": b.bonus_points,
                "unlocked": b.id in unlocked,
            }
            for b in classroom.badges
        ]
        return {"badges": badges, "total_count": len(badges), "unlocked_count": len(unlocked)}
    finally:
        db.close()


@mcp.tool()
def award_score(
    student: str,
    value: int | None = None,
    item_id: str | None = None,
    class_id: str | None = None,
) -> dict[str, Any]:
    """Add or deduct points for a student, by raw value or score item id."""
    db = _get_db()
    try:
        classroom = db.load_classroom(class_id or get_current_class(), make_translator(get_language()))
        before = len(classroom.pending_events)
        try:
            if item_id is not None:
                item = find_score_item(item_id)
                if item is None:
                    return {"error": f"Unknown score item '{item_id}'"}
                entry = classroom.score_student(student, item, datetime.now())
            elif value is not None:
                entry = classroom.score_student(student, value, datetime.now())
            else:
                return {"error": "Give a value or an item_id"}
        except ClassQuestError as exc:
            return {"error": str(exc)}
        db.save_classroom(classroom)
        return {
            "history_id": entry.id,
            "student": _student_summary(classroom, classroom.students[entry.target_id]),
            "events": [e.to_dict() for e in classroom.pending_events[before:]],
        }
    finally:
        db.close()


@mcp.tool()
def check_in(student: str, class_id: str | None = None) -> dict[str, Any]:
    """Record today's attendance for a student."""
    db = _get_db()
    try:
        classroom = db.load_classroom(class_id or get_current_class(), make_translator(get_language()))
        before = len(classroom.pending_events)
        try:
            entry = classroom.check_in(student, datetime.now())
        except ClassQuestError as exc:
            return {"error": str(exc)}
        db.save_classroom(classroom)
        return {
            "history_id": entry.id,
            "student": _student_summary(classroom, classroom.students[entry.target_id]),
            "events": [e.to_dict() for e in classroom.pending_events[before:]],
        }
    finally:
        db.close()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
