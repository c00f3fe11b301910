"""SQLite database layer for classquest.

Each class is stored as a handful of JSON rows per table; the Classroom object
is loaded whole, mutated in memory and saved back in one transaction.
"""

import json
import logging
import sqlite3
from pathlib import Path

from classquest.badges import BadgeDefinition, badge_from_dict, badge_to_dict
from classquest.classroom import Classroom
from classquest.engine import Translate, english

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".classquest" / "data.db"

# table name -> Classroom.to_dict() key
_COLLECTIONS = {
    "students": "students",
    "groups_": "groups",
    "gamification": "records",
    "history": "history",
    "attendance": "attendance",
    "exemptions": "exemptions",
}


class Database:
    """SQLite database manager with WAL mode."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS classes (
                id TEXT PRIMARY KEY,
                badges TEXT,
                pending_events TEXT
            );

            CREATE TABLE IF NOT EXISTS students (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS groups_ (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS gamification (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS history (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS attendance (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS exemptions (
                class_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def has_class(self, class_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM classes WHERE id = ?", (class_id,)).fetchone()
        return row is not None

    def list_classes(self) -> list[str]:
        """Return all stored class ids."""
        rows = self.conn.execute("SELECT id FROM classes ORDER BY id").fetchall()
        return [row["id"] for row in rows]

    def save_classroom(self, classroom: Classroom) -> None:
        """Replace everything stored for the classroom's class id."""
        data = classroom.to_dict()
        with self.conn:
            self.conn.execute(
                "INSERT INTO classes (id, badges, pending_events) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET badges = excluded.badges, "
                "pending_events = excluded.pending_events",
                (
                    classroom.class_id,
                    json.dumps(data["badges"], ensure_ascii=False),
                    json.dumps(data["pending_events"], ensure_ascii=False),
                ),
            )
            for table, key in _COLLECTIONS.items():
                self.conn.execute(f"DELETE FROM {table} WHERE class_id = ?", (classroom.class_id,))
                self.conn.executemany(
                    f"INSERT INTO {table} (class_id, position, data) VALUES (?, ?, ?)",
                    [
                        (classroom.class_id, position, json.dumps(item, ensure_ascii=False))
                        for position, item in enumerate(data[key])
                    ],
                )
        logger.debug("Saved class %s to %s", classroom.class_id, self.db_path)

    def load_classroom(self, class_id: str, translate: Translate = english) -> Classroom:
        """Load a class, or return a fresh empty one if it was never saved."""
        row = self.conn.execute(
            "SELECT badges, pending_events FROM classes WHERE id = ?", (class_id,)
        ).fetchone()
        if row is None:
            return Classroom(class_id, translate=translate)

        data: dict = {
            "class_id": class_id,
            "badges": json.loads(row["badges"]) if row["badges"] else None,
            "pending_events": json.loads(row["pending_events"]) if row["pending_events"] else [],
        }
        for table, key in _COLLECTIONS.items():
            rows = self.conn.execute(
                f"SELECT data FROM {table} WHERE class_id = ? ORDER BY position", (class_id,)
            ).fetchall()
            data[key] = [json.loads(r["data"]) for r in rows]
        return Classroom.from_dict(data, translate=translate)

    def get_badges(self, class_id: str) -> list[BadgeDefinition] | None:
        """Return the class's stored badge rule set, or None if it has none."""
        row = self.conn.execute("SELECT badges FROM classes WHERE id = ?", (class_id,)).fetchone()
        if row is None or not row["badges"]:
            return None
        return [badge_from_dict(b) for b in json.loads(row["badges"])]

    def set_badges(self, class_id: str, badges: list[BadgeDefinition]) -> None:
        """Store a badge rule set for a class (upsert)."""
        payload = json.dumps([badge_to_dict(b) for b in badges], ensure_ascii=False)
        self.conn.execute(
            "INSERT INTO classes (id, badges) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET badges = excluded.badges",
            (class_id, payload),
        )
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
