"""Data layer utilities for loading and validating story documents."""

from .errors import (
    StoryDataError,
    StoryFormatError,
    StoryLoadError,
    StoryValidationError,
    ValidationIssue,
)
from .paths import get_default_story_path, get_stories_path
from .story_parser import StoryParser, parse, parse_file

__all__ = [
    "StoryDataError",
    "StoryFormatError",
    "StoryLoadError",
    "StoryValidationError",
    "ValidationIssue",
    "StoryParser",
    "get_default_story_path",
    "get_stories_path",
    "parse",
    "parse_file",
]
