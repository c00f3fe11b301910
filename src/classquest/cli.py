"""CLI commands for classquest."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler

from classquest.badges import badge_from_dict, check_badges, get_closest_badges
from classquest.catalog import DEFAULT_SCORE_ITEMS, find_reward, find_score_item
from classquest.classroom import Classroom
from classquest.config import (
    get_current_class,
    get_db_path,
    get_language,
    make_translator,
    set_current_class,
    set_language,
)
from classquest.db import Database
from classquest.display import (
    console,
    print_badges,
    print_events,
    print_exemptions,
    print_history,
    print_roster,
    print_student,
)
from classquest.errors import ClassQuestError
from classquest.models import HistoryRecord, NotificationEvent, create_default_record

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="classquest",
        description="Classroom points, levels, streaks and badges",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    parser.add_argument("--class", "-c", dest="class_id", default=None, help="Class to work on")
    subparsers = parser.add_subparsers(dest="command")

    student_parser = subparsers.add_parser("student", help="Manage students")
    student_sub = student_parser.add_subparsers(dest="student_command")
    student_add_p = student_sub.add_parser("add", help="Add a student")
    student_add_p.add_argument("name")
    student_add_p.add_argument("--group", "-g", default=None, help="Group id or name")
    student_rm_p = student_sub.add_parser("remove", help="Remove a student")
    student_rm_p.add_argument("student")

    group_parser = subparsers.add_parser("group", help="Manage groups")
    group_sub = group_parser.add_subparsers(dest="group_command")
    group_add_p = group_sub.add_parser("add", help="Add a group")
    group_add_p.add_argument("name")
    group_score_p = group_sub.add_parser("score", help="Change a group's score")
    group_score_p.add_argument("group")
    group_score_p.add_argument("value", type=int)
    group_redeem_p = group_sub.add_parser("redeem", help="Redeem a reward with pooled points")
    group_redeem_p.add_argument("group")
    group_redeem_p.add_argument("reward")
    group_settle_p = group_sub.add_parser("settle", help="Rank groups, pay bonuses, reset scores")
    group_settle_p.add_argument("bonuses", type=int, nargs="*", default=[])

    subparsers.add_parser("roster", help="List students")
    show_p = subparsers.add_parser("show", help="Show one student")
    show_p.add_argument("student")

    score_p = subparsers.add_parser("score", help="Add or deduct points")
    score_p.add_argument("student")
    score_p.add_argument("value", type=int, nargs="?", default=None)
    score_p.add_argument("--item", "-i", default=None, help="Score item id, e.g. default-5")
    score_p.add_argument("--note", "-n", default=None)

    redeem_p = subparsers.add_parser("redeem", help="Redeem a reward")
    redeem_p.add_argument("student")
    redeem_p.add_argument("reward", help="Reward id, e.g. reward-1")

    attend_p = subparsers.add_parser("attend", help="Check a student in for today")
    attend_p.add_argument("student")
    makeup_p = subparsers.add_parser("makeup", help="Backfill attendance for a past day")
    makeup_p.add_argument("student")
    makeup_p.add_argument("date", help="YYYY-MM-DD")
    revoke_p = subparsers.add_parser("revoke", help="Revoke attendance")
    revoke_p.add_argument("student")
    revoke_p.add_argument("date", help="YYYY-MM-DD")

    undo_p = subparsers.add_parser("undo", help="Undo a history entry")
    undo_p.add_argument("history_id")
    history_p = subparsers.add_parser("history", help="Show recent history")
    history_p.add_argument("--limit", "-l", type=int, default=20)

    exempt_parser = subparsers.add_parser("exempt", help="Manage no-class days")
    exempt_sub = exempt_parser.add_subparsers(dest="exempt_command")
    exempt_add_p = exempt_sub.add_parser("add", help="Exempt a date")
    exempt_add_p.add_argument("date", help="YYYY-MM-DD")
    exempt_add_p.add_argument("--note", "-n", default=None)
    exempt_rm_p = exempt_sub.add_parser("remove", help="Remove an exemption")
    exempt_rm_p.add_argument("date", help="YYYY-MM-DD")
    exempt_we_p = exempt_sub.add_parser("weekends", help="Exempt every weekend of a month")
    exempt_we_p.add_argument("year", type=int)
    exempt_we_p.add_argument("month", type=int)
    exempt_sub.add_parser("list", help="List exempt dates")

    badges_p = subparsers.add_parser("badges", help="Show badges or load a custom rule set")
    badges_p.add_argument("student", nargs="?", default=None)
    badges_p.add_argument("--load", default=None, help="JSON file with a list of badge rules")

    events_p = subparsers.add_parser("events", help="Show pending celebrations")
    events_p.add_argument("--clear", action="store_true", help="Dismiss all pending events")

    lang_p = subparsers.add_parser("lang", help="Show or set the display language")
    lang_p.add_argument("language", nargs="?", choices=["en", "zh-CN"], default=None)

    class_p = subparsers.add_parser("use", help="Switch the current class")
    class_p.add_argument("class_id")
    return parser


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    command = args.command or "roster"

    db = Database(get_db_path())
    class_id = args.class_id or get_current_class()

    try:
        if command == "student":
            if args.student_command == "remove":
                do_remove_student(db, class_id, args.student)
            elif args.student_command == "add":
                do_add_student(db, class_id, args.name, group=args.group)
            else:
                parser.parse_args(["student", "--help"])
        elif command == "group":
            if args.group_command == "score":
                do_group_score(db, class_id, args.group, args.value)
            elif args.group_command == "redeem":
                do_group_redeem(db, class_id, args.group, args.reward)
            elif args.group_command == "settle":
                do_settle(db, class_id, args.bonuses)
            elif args.group_command == "add":
                do_add_group(db, class_id, args.name)
            else:
                parser.parse_args(["group", "--help"])
        elif command == "roster":
            do_roster(db, class_id)
        elif command == "show":
            do_show(db, class_id, args.student)
        elif command == "score":
            do_score(db, class_id, args.student, value=args.value, item_id=args.item, note=args.note)
        elif command == "redeem":
            do_redeem(db, class_id, args.student, args.reward)
        elif command == "attend":
            do_attend(db, class_id, args.student)
        elif command == "makeup":
            do_makeup(db, class_id, args.student, args.date)
        elif command == "revoke":
            do_revoke(db, class_id, args.student, args.date)
        elif command == "undo":
            do_undo(db, class_id, args.history_id)
        elif command == "history":
            do_history(db, class_id, limit=args.limit)
        elif command == "exempt":
            exempt_cmd = getattr(args, "exempt_command", None)
            if exempt_cmd == "add":
                do_exempt_add(db, class_id, args.date, note=args.note)
            elif exempt_cmd == "remove":
                do_exempt_remove(db, class_id, args.date)
            elif exempt_cmd == "weekends":
                do_exempt_weekends(db, class_id, args.year, args.month)
            else:
                do_exempt_list(db, class_id)
        elif command == "badges":
            if args.load:
                do_load_badges(db, class_id, Path(args.load))
            else:
                do_badges(db, class_id, args.student)
        elif command == "events":
            do_events(db, class_id, clear=args.clear)
        elif command == "lang":
            do_lang(args.language)
        elif command == "use":
            set_current_class(args.class_id)
            console.print(f"Now working on class [bold]{args.class_id}[/]")
    except ClassQuestError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)
    finally:
        db.close()


# ── Helpers ───────────────────────────────────────────────────────────────────


def _load(db: Database, class_id: str) -> Classroom:
    return db.load_classroom(class_id, translate=make_translator(get_language()))


def _now(now: datetime | None) -> datetime:
    return now or datetime.now()


def _finish(db: Database, classroom: Classroom, events_before: int) -> list[NotificationEvent]:
    """Save the classroom and print any events the command produced."""
    db.save_classroom(classroom)
    new_events = classroom.pending_events[events_before:]
    print_events(new_events)
    return new_events


def _print_entry(entry: HistoryRecord) -> None:
    sign = "+" if entry.value > 0 else ""
    console.print(f"{entry.target_name}: {entry.item_name} {sign}{entry.value}  [dim]({entry.id})[/]")


# ── Commands ──────────────────────────────────────────────────────────────────


def do_add_student(db: Database, class_id: str, name: str, group: str | None = None) -> dict:
    classroom = _load(db, class_id)
    student = classroom.add_student(name, group_id=group)
    db.save_classroom(classroom)
    console.print(f"Added [bold]{student.name}[/] [dim]({student.id})[/]")
    return student.to_dict()


def do_remove_student(db: Database, class_id: str, student: str) -> dict:
    classroom = _load(db, class_id)
    removed = classroom.remove_student(student)
    db.save_classroom(classroom)
    console.print(f"Removed [bold]{removed.name}[/]")
    return removed.to_dict()


def do_add_group(db: Database, class_id: str, name: str) -> dict:
    classroom = _load(db, class_id)
    group = classroom.add_group(name)
    db.save_classroom(classroom)
    console.print(f"Added group [bold]{group.name}[/] [dim]({group.id})[/]")
    return group.to_dict()


def do_roster(db: Database, class_id: str) -> None:
    classroom = _load(db, class_id)
    print_roster(list(classroom.students.values()), classroom.records, classroom.translate)


def do_show(db: Database, class_id: str, student: str) -> None:
    classroom = _load(db, class_id)
    found = classroom.get_student(student)
    record = classroom.get_record(found.id)
    closest = get_closest_badges(check_badges(record, classroom.badges))
    print_student(found, record, closest, classroom.translate)


def do_score(
    db: Database,
    class_id: str,
    student: str,
    value: int | None = None,
    item_id: str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> list[NotificationEvent]:
    """Score a student by catalog item or by a raw value."""
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    if item_id is not None:
        item = find_score_item(item_id)
        if item is None:
            known = ", ".join(i.id for i in DEFAULT_SCORE_ITEMS)
            raise ClassQuestError(f"Unknown score item '{item_id}' (known: {known})")
        entry = classroom.score_student(student, item, _now(now), note=note)
    elif value is not None:
        entry = classroom.score_student(student, value, _now(now), note=note)
    else:
        raise ClassQuestError("Give a value or --item")
    _print_entry(entry)
    return _finish(db, classroom, before)


def do_redeem(db: Database, class_id: str, student: str, reward_id: str, now: datetime | None = None) -> list[NotificationEvent]:
    reward = find_reward(reward_id)
    if reward is None:
        raise ClassQuestError(f"Unknown reward '{reward_id}'")
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    _print_entry(classroom.redeem_reward(student, reward, _now(now)))
    return _finish(db, classroom, before)


def do_group_score(db: Database, class_id: str, group: str, value: int, now: datetime | None = None) -> None:
    classroom = _load(db, class_id)
    _print_entry(classroom.score_group(group, value, _now(now)))
    db.save_classroom(classroom)


def do_group_redeem(db: Database, class_id: str, group: str, reward_id: str, now: datetime | None = None) -> list[NotificationEvent]:
    reward = find_reward(reward_id)
    if reward is None:
        raise ClassQuestError(f"Unknown reward '{reward_id}'")
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    _print_entry(classroom.redeem_group_reward(group, reward, _now(now)))
    return _finish(db, classroom, before)


def do_settle(db: Database, class_id: str, bonuses: list[int], now: datetime | None = None) -> list[NotificationEvent]:
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    for entry in classroom.settle_groups(bonuses, _now(now)):
        console.print(f"{entry.target_name}: +{entry.value} per student [dim]({entry.id})[/]")
    return _finish(db, classroom, before)


def do_attend(db: Database, class_id: str, student: str, now: datetime | None = None) -> list[NotificationEvent]:
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    _print_entry(classroom.check_in(student, _now(now)))
    return _finish(db, classroom, before)


def do_makeup(db: Database, class_id: str, student: str, date_key: str, now: datetime | None = None) -> list[NotificationEvent]:
    classroom = _load(db, class_id)
    before = len(classroom.pending_events)
    _print_entry(classroom.makeup_attendance(student, date_key, _now(now)))
    return _finish(db, classroom, before)


def do_revoke(db: Database, class_id: str, student: str, date_key: str, now: datetime | None = None) -> None:
    classroom = _load(db, class_id)
    _print_entry(classroom.revoke_attendance(student, date_key, _now(now)))
    db.save_classroom(classroom)


def do_undo(db: Database, class_id: str, history_id: str) -> dict:
    classroom = _load(db, class_id)
    entry = classroom.undo(history_id)
    db.save_classroom(classroom)
    console.print(f"Undid {entry.target_name}: {entry.item_name} [dim]({entry.id})[/]")
    return entry.to_dict()


def do_history(db: Database, class_id: str, limit: int = 20) -> None:
    classroom = _load(db, class_id)
    print_history(classroom.history, limit=limit)


def do_exempt_add(db: Database, class_id: str, date_key: str, note: str | None = None, now: datetime | None = None) -> None:
    classroom = _load(db, class_id)
    classroom.add_exemption(date_key, _now(now), note=note)
    db.save_classroom(classroom)
    console.print(f"{date_key} is now a no-class day")


def do_exempt_remove(db: Database, class_id: str, date_key: str) -> bool:
    classroom = _load(db, class_id)
    removed = classroom.remove_exemption(date_key)
    db.save_classroom(classroom)
    if removed:
        console.print(f"{date_key} is a class day again")
    else:
        console.print(f"[yellow]{date_key} was not exempt[/]")
    return removed


def do_exempt_weekends(db: Database, class_id: str, year: int, month: int, now: datetime | None = None) -> int:
    classroom = _load(db, class_id)
    added = classroom.exempt_weekends(year, month, _now(now))
    db.save_classroom(classroom)
    console.print(f"Exempted {len(added)} weekend days in {year}-{month:02d}")
    return len(added)


def do_exempt_list(db: Database, class_id: str) -> None:
    print_exemptions(_load(db, class_id).exemptions)


def do_badges(db: Database, class_id: str, student: str | None = None) -> None:
    classroom = _load(db, class_id)
    if student is None:
        record = create_default_record("")
    else:
        record = classroom.get_record(classroom.get_student(student).id)
    print_badges(check_badges(record, classroom.badges), classroom.translate)


def do_load_badges(db: Database, class_id: str, path: Path) -> int:
    """Replace the class's badge rule set with the rules in a JSON file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ClassQuestError(f"Cannot read badge rules from {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise ClassQuestError(f"{path} must contain a JSON list of badge rules")
    badges = []
    for position, item in enumerate(raw, start=1):
        try:
            badges.append(badge_from_dict(item))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ClassQuestError(f"Badge rule #{position} in {path} is invalid: {exc!r}") from exc
    db.set_badges(class_id, badges)
    console.print(f"Loaded {len(badges)} badge rules")
    return len(badges)


def do_events(db: Database, class_id: str, clear: bool = False) -> list[NotificationEvent]:
    classroom = _load(db, class_id)
    events = list(classroom.pending_events)
    print_events(events)
    if not events:
        console.print("[dim]Nothing to celebrate yet.[/]")
    if clear:
        classroom.clear_events()
        db.save_classroom(classroom)
    return events


def do_lang(language: str | None) -> str:
    if language is not None:
        set_language(language)
    current = get_language()
    console.print(f"Language: [bold]{current}[/]")
    return current
