"""Domain model exports."""

from .characters import (
    ActionType,
    CharacterAction,
    CharacterAnimation,
    CharacterEmotion,
    CharacterPosition,
    CharacterState,
)
from .story import (
    DialogueOptions,
    NodeMetadata,
    SceneCharacter,
    Story,
    StoryAnimation,
    StoryBackground,
    StoryCharacter,
    StoryChoice,
    StoryNodeData,
)

__all__ = [
    "ActionType",
    "CharacterAction",
    "CharacterAnimation",
    "CharacterEmotion",
    "CharacterPosition",
    "CharacterState",
    "DialogueOptions",
    "NodeMetadata",
    "SceneCharacter",
    "Story",
    "StoryAnimation",
    "StoryBackground",
    "StoryCharacter",
    "StoryChoice",
    "StoryNodeData",
]
