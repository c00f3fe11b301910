"""Configuration file management for classquest.

Reads and writes ~/.classquest/config.json for settings that don't belong in the DB
(display language, database location, the class the CLI works on).
"""
from __future__ import annotations

import json
from pathlib import Path

from classquest.engine import Translate, english

DEFAULT_CONFIG_PATH: Path = Path.home() / ".classquest" / "config.json"
DEFAULT_CLASS_ID = "default"

LANGUAGES = ("en", "zh-CN")


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def get_language(config_path: Path | None = None) -> str:
    """Return the display language, "en" unless configured otherwise."""
    language = load_config(config_path).get("language")
    return language if language in LANGUAGES else "en"


def set_language(language: str, config_path: Path | None = None) -> None:
    if language not in LANGUAGES:
        raise ValueError(f"Unsupported language '{language}' (choose from {', '.join(LANGUAGES)})")
    config = load_config(config_path)
    config["language"] = language
    save_config(config, config_path)


def get_db_path(config_path: Path | None = None) -> Path | None:
    """Return the configured database path, or None to use the default."""
    raw = load_config(config_path).get("db_path")
    if raw:
        return Path(raw)
    return None


def get_current_class(config_path: Path | None = None) -> str:
    return load_config(config_path).get("current_class") or DEFAULT_CLASS_ID


def set_current_class(class_id: str, config_path: Path | None = None) -> None:
    config = load_config(config_path)
    config["current_class"] = class_id
    save_config(config, config_path)


def _chinese(zh: str, en: str) -> str:
    return zh or en


def make_translator(language: str) -> Translate:
    """Pick between the Chinese and English text of a name."""
    return _chinese if language == "zh-CN" else english
