"""Service layer exports."""

from .errors import (
    CannotProgressError,
    InvalidChoiceError,
    NodeNotFoundError,
    SaveLoadError,
    StoryError,
    StoryNotLoadedError,
)
from .story_node import StoryNode
from .story_manager import (
    ChoiceMadeEvent,
    NodeEnteredEvent,
    NodeExitedEvent,
    GameStateUndoneEvent,
    StateChangedEvent,
    StoryEvent,
    StoryJumpedEvent,
    StoryLoadedEvent,
    StoryManager,
    StoryResetEvent,
    StoryResumedEvent,
    StoryStartedEvent,
    StoryStatus,
)
from .character_action_generator import CharacterActionGenerator
from .character_state_manager import CharacterStateManager
from .dialogue_director import DialogueDirector, PresentationCue, SpeakerProfile
from .save_service import SaveService, SaveSummary

__all__ = [
    "CannotProgressError",
    "InvalidChoiceError",
    "NodeNotFoundError",
    "SaveLoadError",
    "StoryError",
    "StoryNotLoadedError",
    "StoryNode",
    "ChoiceMadeEvent",
    "NodeEnteredEvent",
    "NodeExitedEvent",
    "GameStateUndoneEvent",
    "StateChangedEvent",
    "StoryEvent",
    "StoryJumpedEvent",
    "StoryLoadedEvent",
    "StoryManager",
    "StoryResetEvent",
    "StoryResumedEvent",
    "StoryStartedEvent",
    "StoryStatus",
    "CharacterActionGenerator",
    "CharacterStateManager",
    "DialogueDirector",
    "PresentationCue",
    "SpeakerProfile",
    "SaveService",
    "SaveSummary",
]
