"""Serialization helpers for manual save/load."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from taleweave.domain.characters import CharacterState
from taleweave.services.character_state_manager import CharacterStateManager
from taleweave.services.errors import SaveLoadError
from taleweave.services.interfaces import ScreenshotProvider
from taleweave.services.story_manager import StoryManager

SavePayload = Dict[str, Any]


@dataclass(slots=True)
class SaveSummary:
    """Metadata of a restored save."""

    name: str
    saved_at: str
    story_id: str
    current_node_id: str
    screenshot: str | None = None
    custom_data: Dict[str, Any] = field(default_factory=dict)


class SaveService:
    """Converts story progress and character state to/from a validated, versioned payload."""

    SAVE_VERSION = 1

    def __init__(
        self,
        story_manager: StoryManager,
        character_states: CharacterStateManager,
        *,
        screenshot_provider: ScreenshotProvider | None = None,
    ) -> None:
        self._story_manager = story_manager
        self._character_states = character_states
        self._screenshot_provider = screenshot_provider

    def serialize(self, name: str = "Quicksave", custom_data: Mapping[str, Any] | None = None) -> SavePayload:
        """Return a JSON-serializable payload for disk persistence."""
        story = self._story_manager.story
        current_node_id = self._story_manager.current_node_id
        if story is None or current_node_id is None:
            raise SaveLoadError("Nothing to save: no story is in progress.")
        return {
            "save_version": self.SAVE_VERSION,
            "metadata": self._build_metadata(name, story.id, current_node_id),
            "story_progress": {
                "currentNodeId": current_node_id,
                "visitedNodes": self._story_manager.get_visited_nodes(),
                "completedBranches": self._story_manager.get_completed_branches(),
            },
            "gameState": self._story_manager.get_game_state(),
            "characterStates": self._character_states.export_for_save(),
            "customData": copy.deepcopy(dict(custom_data or {})),
        }

    def restore(self, payload: Mapping[str, Any]) -> SaveSummary:
        """Validate a payload completely, then restore story progress and character state."""
        if not isinstance(payload, Mapping):
            raise SaveLoadError("Save data must be a JSON object.")
        version = payload.get("save_version")
        if version != self.SAVE_VERSION:
            raise SaveLoadError(f"Unsupported save version: {version!r}.")
        metadata = self._require_dict(payload.get("metadata"), "metadata")
        progress = self._require_dict(payload.get("story_progress"), "story_progress")
        game_state = self._require_dict(payload.get("gameState"), "gameState")
        character_payload = self._require_dict(payload.get("characterStates", {}), "characterStates")
        custom_data = self._require_dict(payload.get("customData", {}), "customData")

        story = self._story_manager.story
        if story is None:
            raise SaveLoadError("Load a story before restoring a save.")
        story_id = self._require_str(metadata.get("story_id"), "metadata.story_id")
        if story_id != story.id:
            raise SaveLoadError(f"Save belongs to story '{story_id}', but '{story.id}' is loaded.")
        current_node_id = self._require_str(progress.get("currentNodeId"), "story_progress.currentNodeId")
        self._validate_story_node(current_node_id)
        visited_nodes = self._coerce_str_list(progress.get("visitedNodes"), "story_progress.visitedNodes")
        completed_branches = self._coerce_str_list(
            progress.get("completedBranches"), "story_progress.completedBranches"
        )
        character_states = self._coerce_character_states(character_payload)

        self._story_manager.load_progress(current_node_id, visited_nodes, completed_branches, game_state=game_state)
        self._character_states.load_from_save_data(
            {character_id: state.to_dict() for character_id, state in character_states.items()}
        )
        return SaveSummary(
            name=self._coerce_optional_str(metadata.get("name"), "metadata.name") or "",
            saved_at=self._coerce_optional_str(metadata.get("saved_at"), "metadata.saved_at") or "",
            story_id=story_id,
            current_node_id=current_node_id,
            screenshot=self._coerce_optional_str(metadata.get("screenshot"), "metadata.screenshot"),
            custom_data=custom_data,
        )

    def _build_metadata(self, name: str, story_id: str, current_node_id: str) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": name,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "current_node_id": current_node_id,
            "story_id": story_id,
        }
        if self._screenshot_provider is not None:
            screenshot = self._screenshot_provider.take_screenshot()
            if screenshot:
                metadata["screenshot"] = screenshot
        return metadata

    def _coerce_character_states(self, value: Mapping[str, Any]) -> Dict[str, CharacterState]:
        states: Dict[str, CharacterState] = {}
        for character_id, entry in value.items():
            entry_dict = self._require_dict(entry, f"characterStates.{character_id}")
            try:
                states[character_id] = CharacterState.from_dict({**entry_dict, "id": character_id})
            except ValueError as exc:
                raise SaveLoadError(f"characterStates.{character_id}: {exc}") from exc
        return states

    def _validate_story_node(self, node_id: str) -> None:
        if not self._story_manager.has_node(node_id):
            raise SaveLoadError(
                f"Save incompatible with current story: node '{node_id}' missing."
            )

    @staticmethod
    def _require_str(value: Any, context: str) -> str:
        if not isinstance(value, str):
            raise SaveLoadError(f"{context} must be a string.")
        return value

    def _coerce_optional_str(self, value: Any, context: str) -> str | None:
        if value is None:
            return None
        return self._require_str(value, context)

    def _coerce_str_list(self, value: Any, context: str) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise SaveLoadError(f"{context} must be a list.")
        result: List[str] = []
        for entry in value:
            if not isinstance(entry, str):
                raise SaveLoadError(f"{context} entries must be strings.")
            result.append(entry)
        return result

    @staticmethod
    def _require_dict(value: Any, context: str) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            raise SaveLoadError(f"{context} must be an object.")
        return dict(value)
