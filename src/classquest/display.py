"""Rich terminal display for classquest."""

from __future__ import annotations

from collections.abc import Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from classquest.badges import BadgeStatus
from classquest.engine import Translate, english
from classquest.levels import level_for_xp, xp_progress
from classquest.models import (
    AttendanceExemption,
    EventType,
    GamificationRecord,
    HistoryRecord,
    NotificationEvent,
    Student,
)

console = Console()

# Border colour per level number
_LEVEL_COLORS: dict[int, str] = {
    1: "grey70",
    2: "green",
    3: "deep_sky_blue1",
    4: "purple",
    5: "gold1",
    6: "orange_red1",
}


def _level_color(level: int) -> str:
    return _LEVEL_COLORS.get(level, "white")


def _xp_bar(current: int, total: int, width: int = 20) -> str:
    """Render an XP progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(current / total, 1.0)
    filled = int(ratio * width)
    empty = width - filled
    return "[" + "█" * filled + "░" * empty + "]"


def print_roster(
    students: Sequence[Student],
    records: dict[str, GamificationRecord],
    translate: Translate = english,
) -> None:
    """Print every student with points, level and streaks."""
    if not students:
        print_empty_roster()
        return

    table = Table(title="Roster", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Name", style="bold", min_width=12)
    table.add_column("Points", justify="right")
    table.add_column("XP", justify="right")
    table.add_column("Level")
    table.add_column("\U0001f525 Streak", justify="right")
    table.add_column("\U0001f4c5 Attendance", justify="right")
    table.add_column("Badges", justify="right")

    for student in sorted(students, key=lambda s: s.score, reverse=True):
        record = records.get(student.id) or GamificationRecord(student_id=student.id)
        level = level_for_xp(record.xp)
        color = _level_color(level.level)
        table.add_row(
            student.name,
            str(student.score),
            str(record.xp),
            f"[{color}]{level.emoji} {translate(level.name, level.name_en)}[/]",
            str(record.current_streak),
            str(record.attendance_streak),
            str(len(record.unlocked_badge_ids)),
        )
    console.print(table)


def print_student(
    student: Student,
    record: GamificationRecord,
    closest: Sequence[BadgeStatus] = (),
    translate: Translate = english,
) -> None:
    """Print one student's card: level, XP bar, streaks and nearest badges."""
    level = level_for_xp(record.xp)
    progress = xp_progress(record.xp)
    color = _level_color(level.level)

    lines: list[str] = []
    lines.append("")
    lines.append(f"  [bold {color}]{level.emoji} Level {level.level} - {translate(level.name, level.name_en)}[/]")
    bar = _xp_bar(progress.points_into_level, progress.points_needed_for_next)
    if progress.points_needed_for_next > 0:
        lines.append(f"  {bar} {progress.points_into_level}/{progress.points_needed_for_next} XP")
    else:
        lines.append(f"  {bar} MAX LEVEL")
    lines.append(f"  Total: [bold]{record.xp}[/] XP  |  Points: [bold]{student.score}[/]")

    lines.append("")
    lines.append(
        f"  \U0001f525 Streak: {record.current_streak} days (best {record.longest_streak})"
    )
    lines.append(
        f"  \U0001f4c5 Attendance: {record.attendance_days} days, "
        f"streak {record.attendance_streak} (best {record.longest_attendance_streak})"
    )
    lines.append(
        f"  \U0001f381 Rewards redeemed: {record.reward_redeemed_count}  |  "
        f"\U0001f3c5 Badges: {len(record.unlocked_badge_ids)}"
    )

    if closest:
        lines.append("")
        lines.append("  [bold]Almost There:[/]")
        for status in closest:
            badge = status.definition
            pct = int(status.progress * 100)
            lines.append(f"  ⏳ {badge.emoji} {translate(badge.name, badge.name_en)} ({pct}%)")

    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]{student.name}[/]",
        box=box.ROUNDED,
        border_style=color,
        width=56,
    )
    console.print(panel)


def print_badges(statuses: Sequence[BadgeStatus], translate: Translate = english) -> None:
    """Print a badge rule set with unlock state and progress."""
    unlocked = [s for s in statuses if s.unlocked]
    locked = sorted((s for s in statuses if not s.unlocked), key=lambda s: s.progress, reverse=True)

    table = Table(title="Badges", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Badge", min_width=20)
    table.add_column("Bonus", justify="right", width=6)
    table.add_column("Progress", min_width=18)

    for status in unlocked + locked:
        badge = status.definition
        icon = "✅" if status.unlocked else "⏳"
        name_text = (
            f"{badge.emoji} [bold]{translate(badge.name, badge.name_en)}[/]\n"
            f"{translate(badge.description, badge.description_en)}"
        )
        pct = int(status.progress * 100)
        bar = _xp_bar(pct, 100, width=10)
        bonus = f"+{badge.bonus_points}" if badge.bonus_points else ""
        table.add_row(icon, name_text, bonus, f"{bar} {pct}%")

    console.print(table)


def format_event(event: NotificationEvent) -> str:
    """One-line description of a notification event."""
    if event.type == EventType.LEVEL_UP:
        return (
            f"{event.level_emoji} [bold]{event.student_name}[/] reached level "
            f"{event.new_level} - {event.level_name}!"
        )
    if event.type == EventType.BADGE_EARNED:
        bonus = f" (+{event.bonus_points} XP)" if event.bonus_points else ""
        return f"{event.badge_emoji} [bold]{event.student_name}[/] earned {event.badge_name}{bonus}"
    kind = "attendance" if event.streak_kind == "attendance" else "scoring"
    return f"\U0001f525 [bold]{event.student_name}[/] hit a {event.streak_days}-day {kind} streak!"


def print_events(events: Sequence[NotificationEvent]) -> None:
    if not events:
        return
    lines = [""] + [f"  {format_event(e)}" for e in events] + [""]
    panel = Panel(
        "\n".join(lines),
        title="[bold]\U0001f389 Celebrations[/]",
        box=box.ROUNDED,
        border_style="yellow",
        width=64,
    )
    console.print(panel)


def print_history(entries: Sequence[HistoryRecord], limit: int = 20) -> None:
    """Print the most recent history entries, newest first."""
    table = Table(title="History", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Time")
    table.add_column("Target")
    table.add_column("Item")
    table.add_column("Value", justify="right")

    for entry in list(reversed(entries))[:limit]:
        value = f"[green]+{entry.value}[/]" if entry.value > 0 else f"[red]{entry.value}[/]"
        target = entry.target_name
        if entry.undone:
            value = f"[strike]{entry.value:+d}[/] (undone)"
            target = f"[dim]{target}[/]"
        table.add_row(
            entry.id,
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            target,
            entry.item_name,
            value,
        )
    console.print(table)


def print_exemptions(exemptions: Sequence[AttendanceExemption]) -> None:
    table = Table(title="No-class days", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("Note")
    for exemption in sorted(exemptions, key=lambda e: e.date):
        table.add_row(exemption.date, exemption.note or "")
    console.print(table)


def print_empty_roster() -> None:
    """Print message when the class has no students."""
    panel = Panel(
        "\n  No students yet. Run [bold]classquest student add NAME[/] first.\n",
        title="[bold]CLASSQUEST[/]",
        box=box.ROUNDED,
        border_style="grey50",
        width=56,
    )
    console.print(panel)
