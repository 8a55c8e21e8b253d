"""CLI configuration helpers for options persistence."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict

_DEFAULT_TEXT_MODE = "instant"
_DEFAULT_LOG_LEVEL = "WARNING"
_TEXT_MODES = ("instant", "step")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

logger = logging.getLogger(__name__)


def get_user_data_dir() -> Path:
    """Return the per-user data directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "Taleweave"
        return Path.home() / "Taleweave"
    return Path.home() / ".config" / "taleweave"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def get_save_dir() -> Path:
    """Return the per-user save directory."""
    return get_user_data_dir() / "saves"


def default_config() -> Dict[str, str]:
    return {"text_display_mode": _DEFAULT_TEXT_MODE, "log_level": _DEFAULT_LOG_LEVEL}


def normalize_text_mode(value: object) -> str:
    return value if value in _TEXT_MODES else _DEFAULT_TEXT_MODE


def normalize_log_level(value: object) -> str:
    if isinstance(value, str) and value.upper() in _LOG_LEVELS:
        return value.upper()
    return _DEFAULT_LOG_LEVEL


def load_config(path: Path | None = None) -> Dict[str, str]:
    """Load config from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return default_config()
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_path, exc)
        return default_config()
    if not isinstance(raw, dict):
        return default_config()
    return {
        "text_display_mode": normalize_text_mode(raw.get("text_display_mode")),
        "log_level": normalize_log_level(raw.get("log_level")),
    }


def save_config(config: Dict[str, str], path: Path | None = None) -> None:
    """Persist config to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "text_display_mode": normalize_text_mode(config.get("text_display_mode")),
        "log_level": normalize_log_level(config.get("log_level")),
    }
    config_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
