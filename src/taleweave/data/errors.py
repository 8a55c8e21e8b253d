"""Custom exceptions for story loading and validation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class StoryDataError(Exception):
    """Base exception for the data layer."""


class StoryLoadError(StoryDataError):
    """Raised when a story source cannot be read."""


class StoryFormatError(StoryDataError):
    """Raised when story text is not well-formed JSON/YAML or not a document object."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One structural problem found while validating a story document."""

    node_id: str | None
    field: str
    message: str

    def __str__(self) -> str:
        if self.node_id is None:
            return f"story.{self.field}: {self.message}"
        return f"node '{self.node_id}' {self.field}: {self.message}"


class StoryValidationError(StoryDataError):
    """Raised when a story document fails structural or referential validation.

    ``node_id`` and ``field`` describe the first problem found; ``issues`` holds all of them.
    """

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        if not issues:
            raise ValueError("StoryValidationError requires at least one issue.")
        self.issues = tuple(issues)
        first = self.issues[0]
        self.node_id = first.node_id
        self.field = first.field
        message = str(first)
        if len(self.issues) > 1:
            message = f"{message} (and {len(self.issues) - 1} more issue(s))"
        super().__init__(message)
