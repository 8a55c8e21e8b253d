"""Service-layer exceptions."""
from __future__ import annotations


class StoryError(Exception):
    """Base exception for story traversal contract violations."""


class StoryNotLoadedError(StoryError):
    """Raised when an operation needs a loaded story and none is installed."""


class NodeNotFoundError(StoryError):
    """Raised when navigation targets a node id that is not part of the story."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' not found in story.")


class InvalidChoiceError(StoryError):
    """Raised when a choice is made on a non-choice node or with a bad index."""


class CannotProgressError(StoryError):
    """Raised when progress() is called where the story cannot advance linearly."""

    NO_CURRENT_NODE = "no-current-node"
    IS_CHOICE_NODE = "is-choice-node"
    IS_END_NODE = "is-end-node"
    NO_NEXT_NODE = "no-next-node"

    def __init__(self, reason: str, node_id: str | None = None) -> None:
        self.reason = reason
        self.node_id = node_id
        location = f" at node '{node_id}'" if node_id else ""
        super().__init__(f"Cannot progress{location}: {reason}")


class SaveLoadError(Exception):
    """Raised when save or load operations fail."""
