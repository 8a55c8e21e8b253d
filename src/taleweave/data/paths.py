"""Helpers for resolving bundled story locations."""
from __future__ import annotations

from pathlib import Path

DEFAULT_STORY_NAME = "lighthouse.yaml"


def get_stories_path(base_path: Path | str | None = None) -> Path:
    """Return the directory containing bundled story files."""
    if base_path is not None:
        return Path(base_path)
    return Path(__file__).resolve().parent / "stories"


def get_default_story_path() -> Path:
    """Return the sample story shipped with the package."""
    return get_stories_path() / DEFAULT_STORY_NAME
