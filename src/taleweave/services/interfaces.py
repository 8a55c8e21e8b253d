"""Narrow collaborator interfaces consumed by the story services."""
from __future__ import annotations

from typing import Protocol


class SceneSwitcher(Protocol):
    """Presentation scene registry used when a scene node is entered."""

    def has_scene(self, scene_id: str) -> bool:
        """Return whether a scene with this id can be switched to."""
        ...

    def switch_to(self, scene_id: str, transition: str) -> None:
        """Activate the scene using the named transition."""
        ...


class ScreenshotProvider(Protocol):
    """Supplies an encoded thumbnail for save metadata."""

    def take_screenshot(self) -> str | None:
        ...


class NullSceneSwitcher:
    """Scene switcher for hosts without presentation scenes; every scene node falls through."""

    def has_scene(self, scene_id: str) -> bool:
        return False

    def switch_to(self, scene_id: str, transition: str) -> None:
        raise KeyError(f"Unknown scene '{scene_id}'.")
