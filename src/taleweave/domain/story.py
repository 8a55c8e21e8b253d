"""Story definition structures produced by the parser and consumed by the runtime."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Tuple

from taleweave.core.types import NodeType
from taleweave.domain.characters import CharacterEmotion, CharacterPosition

Condition = str | bool


@dataclass(frozen=True, slots=True)
class StoryChoice:
    """Represents a selectable choice on a choice node."""

    id: str
    text: str
    next_node: str
    condition: Condition | None = None
    state_changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SceneCharacter:
    """Blocking declaration for one character in a scene node."""

    id: str
    position: CharacterPosition
    expression: CharacterEmotion | None = None


@dataclass(frozen=True, slots=True)
class StoryBackground:
    id: str
    image_id: str | None = None
    transition: str | None = None


@dataclass(frozen=True, slots=True)
class StoryAnimation:
    """Explicit animation request attached to a node."""

    target: str
    type: str
    duration: float | None = None
    delay: float | None = None
    ease: str | None = None
    direction: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NodeMetadata:
    """Presentation hints; the engine only reads ``transition``."""

    transition: str | None = None
    transition_duration: float | None = None
    effect: str | None = None
    effect_intensity: float | None = None
    effect_duration: float | None = None
    animation_in: str | None = None
    animation_out: str | None = None
    text_speed: float | None = None
    text_effect: str | None = None
    emotion: CharacterEmotion | None = None
    choice_animation: str | None = None


@dataclass(frozen=True, slots=True)
class DialogueOptions:
    speed: float | None = None
    auto_progress: bool = False
    text_effect: str | None = None
    text_effect_intensity: float | None = None


@dataclass(frozen=True, slots=True)
class StoryNodeData:
    """Fully parsed story node. Which fields are populated depends on ``type``."""

    id: str
    type: NodeType
    text: str | None = None
    character: str | None = None
    mood: str | None = None
    next_node: str | None = None
    choices: Tuple[StoryChoice, ...] = ()
    scene_id: str | None = None
    characters: Tuple[SceneCharacter, ...] | None = None
    background: StoryBackground | None = None
    condition: Condition | None = None
    on_enter: str | None = None
    on_exit: str | None = None
    state_changes: Mapping[str, Any] = field(default_factory=dict)
    animations: Tuple[StoryAnimation, ...] = ()
    metadata: NodeMetadata | None = None
    audio: str | Mapping[str, Any] | None = None
    tags: Tuple[str, ...] = ()
    dialogue_options: DialogueOptions | None = None
    text_speed: float | None = None


@dataclass(frozen=True, slots=True)
class StoryCharacter:
    """Roster entry from the story's ``assets.characters`` block."""

    id: str
    name: str
    display_name: str | None = None
    text_color: str | None = None
    text_speed: float | None = None


@dataclass(frozen=True, slots=True)
class Story:
    """Immutable, validated story graph."""

    id: str
    title: str
    start_node: str
    nodes: Mapping[str, StoryNodeData]
    initial_state: Mapping[str, Any] = field(default_factory=dict)
    author: str | None = None
    version: str | None = None
    description: str | None = None
    tags: Tuple[str, ...] = ()
    characters: Mapping[str, StoryCharacter] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "characters", MappingProxyType(dict(self.characters)))

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes
