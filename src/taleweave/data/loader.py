"""Low-level helpers that turn story sources into raw documents."""
from __future__ import annotations

import json
from pathlib import Path

import yaml

from taleweave.core.types import StoryFormat
from .errors import StoryFormatError, StoryLoadError

_SUFFIX_FORMATS: dict[str, StoryFormat] = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def load_text(path: Path | str) -> str:
    """Read a story source from disk and raise StoryLoadError on failure."""
    file_path = Path(path)
    try:
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StoryLoadError(f"Story file not found: {file_path}") from exc
    except OSError as exc:
        raise StoryLoadError(f"Unable to read story file: {file_path}") from exc


def detect_format(path: Path | str) -> StoryFormat:
    """Infer the story format from the file suffix."""
    suffix = Path(path).suffix.lower()
    try:
        return _SUFFIX_FORMATS[suffix]
    except KeyError as exc:
        raise StoryFormatError(f"Cannot infer story format from suffix '{suffix}' of {path}") from exc


def parse_document(raw: str, fmt: StoryFormat) -> object:
    """Decode JSON or YAML text, raising StoryFormatError on malformed input."""
    if fmt == "json":
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoryFormatError(f"Invalid story JSON: {exc}") from exc
    if fmt == "yaml":
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise StoryFormatError(f"Invalid story YAML: {exc}") from exc
    raise StoryFormatError(f"Unsupported story format: {fmt!r}")
