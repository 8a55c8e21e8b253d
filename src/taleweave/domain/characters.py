"""Character state and the presentation actions derived from the narrative."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping


def _normalize(value: str) -> str:
    return value.replace("-", "").replace("_", "").replace(" ", "").lower()


class CharacterPosition(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    OFF_SCREEN_LEFT = "offScreenLeft"
    OFF_SCREEN_RIGHT = "offScreenRight"

    @classmethod
    def parse(cls, value: object) -> "CharacterPosition":
        """Accept 'offScreenLeft', 'off-screen-left', 'offscreenleft' and friends."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            wanted = _normalize(value)
            for member in cls:
                if _normalize(member.value) == wanted:
                    return member
        raise ValueError(f"Invalid character position: {value!r}")

    @property
    def is_on_screen(self) -> bool:
        return self in (CharacterPosition.LEFT, CharacterPosition.CENTER, CharacterPosition.RIGHT)


class CharacterEmotion(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    SURPRISED = "surprised"
    THOUGHTFUL = "thoughtful"
    WORRIED = "worried"
    EXCITED = "excited"
    DETERMINED = "determined"
    POWERFUL = "powerful"
    ETHEREAL = "ethereal"

    @classmethod
    def parse(cls, value: object) -> "CharacterEmotion":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Invalid character emotion: {value!r}")


class CharacterAnimation(str, Enum):
    IDLE = "idle"
    TALK = "talk"
    WALK_IN = "walkIn"
    WALK_OUT = "walkOut"
    EMOTE = "emote"
    CUSTOM = "custom"


class ActionType(str, Enum):
    ENTER = "ENTER"
    EXIT = "EXIT"
    MOVE = "MOVE"
    CHANGE_EMOTION = "CHANGE_EMOTION"
    ANIMATE = "ANIMATE"
    SPEAK = "SPEAK"


def _default_custom_state() -> Dict[str, Any]:
    return {"flags": {}, "relationships": {}}


@dataclass(slots=True)
class CharacterState:
    """Live, per-character presentation state."""

    id: str
    position: CharacterPosition = CharacterPosition.OFF_SCREEN_LEFT
    current_emotion: CharacterEmotion = CharacterEmotion.NEUTRAL
    current_animation: CharacterAnimation | str | None = None
    is_visible: bool = False
    custom_state: Dict[str, Any] = field(default_factory=_default_custom_state)

    def copy(self) -> "CharacterState":
        return CharacterState(
            id=self.id,
            position=self.position,
            current_emotion=self.current_emotion,
            current_animation=self.current_animation,
            is_visible=self.is_visible,
            custom_state=copy.deepcopy(self.custom_state),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the save-data representation (enum values as strings)."""
        animation = self.current_animation
        if isinstance(animation, CharacterAnimation):
            animation = animation.value
        return {
            "id": self.id,
            "position": self.position.value,
            "currentEmotion": self.current_emotion.value,
            "currentAnimation": animation,
            "isVisible": self.is_visible,
            "customState": copy.deepcopy(self.custom_state),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CharacterState":
        """Rebuild a state from save data, raising ValueError on malformed input."""
        character_id = payload.get("id")
        if not isinstance(character_id, str) or not character_id:
            raise ValueError("Character state id must be a non-empty string.")
        is_visible = payload.get("isVisible", False)
        if not isinstance(is_visible, bool):
            raise ValueError(f"Character '{character_id}' isVisible must be a boolean.")
        custom_state = payload.get("customState", {})
        if not isinstance(custom_state, Mapping):
            raise ValueError(f"Character '{character_id}' customState must be an object.")
        animation = payload.get("currentAnimation")
        if animation is not None and not isinstance(animation, str):
            raise ValueError(f"Character '{character_id}' currentAnimation must be a string.")
        if isinstance(animation, str):
            try:
                animation = CharacterAnimation(animation)
            except ValueError:
                pass
        return cls(
            id=character_id,
            position=CharacterPosition.parse(payload.get("position", CharacterPosition.OFF_SCREEN_LEFT.value)),
            current_emotion=CharacterEmotion.parse(payload.get("currentEmotion", CharacterEmotion.NEUTRAL.value)),
            current_animation=animation,
            is_visible=is_visible,
            custom_state=copy.deepcopy(dict(custom_state)),
        )


@dataclass(frozen=True, slots=True)
class CharacterAction:
    """Single presentation instruction for one character."""

    type: ActionType
    character_id: str
    position: CharacterPosition | None = None
    emotion: CharacterEmotion | None = None
    animation: CharacterAnimation | str | None = None
    duration: float | None = None
    text: str | None = None
    audio_id: str | None = None
    custom_params: Mapping[str, Any] = field(default_factory=dict)
