"""Owner of live character presentation state."""
from __future__ import annotations

import copy
import logging
import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

from taleweave.core.events import Event, EventBus
from taleweave.domain.characters import (
    ActionType,
    CharacterAction,
    CharacterAnimation,
    CharacterEmotion,
    CharacterPosition,
    CharacterState,
)

logger = logging.getLogger(__name__)

_EMOTION_STATE_NAMES = {"happy", "sad", "angry", "neutral", "surprised", "afraid", "thinking"}
_STATE_FLAG_PREFIX = "state_"
_UPDATABLE_FIELDS = {"position", "current_emotion", "current_animation", "is_visible", "custom_state"}
_FIELD_ALIASES = {
    "currentEmotion": "current_emotion",
    "currentAnimation": "current_animation",
    "isVisible": "is_visible",
    "customState": "custom_state",
}

_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


@dataclass(slots=True)
class CharacterStateEvent(Event):
    """Base class for character state notifications."""


@dataclass(slots=True)
class CharacterInitializedEvent(CharacterStateEvent):
    character_id: str
    state: CharacterState


@dataclass(slots=True)
class CharacterUpdatedEvent(CharacterStateEvent):
    character_id: str
    state: CharacterState
    updates: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CharacterEmotionChangedEvent(CharacterStateEvent):
    character_id: str
    emotion: CharacterEmotion


@dataclass(slots=True)
class CharacterStateRegisteredEvent(CharacterStateEvent):
    character_id: str
    name: str
    value: Any


@dataclass(slots=True)
class CharacterFlagStateChangedEvent(CharacterStateEvent):
    character_id: str
    name: str


@dataclass(slots=True)
class CharacterRemovedEvent(CharacterStateEvent):
    character_id: str


@dataclass(slots=True)
class CharacterStatesLoadedEvent(CharacterStateEvent):
    states: Dict[str, CharacterState]


@dataclass(slots=True)
class CharacterStatesClearedEvent(CharacterStateEvent):
    pass


@dataclass(slots=True)
class CharacterStatesResetEvent(CharacterStateEvent):
    pass


class CharacterStateManager:
    """Keeps one CharacterState per character id; callers only ever see copies."""

    def __init__(self, *, events: EventBus | None = None) -> None:
        self._events = events or EventBus()
        self._states: Dict[str, CharacterState] = {}

    @property
    def events(self) -> EventBus:
        return self._events

    def has_character(self, character_id: str) -> bool:
        return character_id in self._states

    def initialize_character(self, character_id: str, state: CharacterState | None = None) -> CharacterState:
        """Create the character's state, or replace it when an explicit state is given.

        Initializing a known character without a state leaves it untouched.
        """
        existing = self._states.get(character_id)
        if existing is not None and state is None:
            return existing.copy()
        created = state.copy() if state is not None else CharacterState(id=character_id)
        created.id = character_id
        self._states[character_id] = created
        self._events.emit(CharacterInitializedEvent(character_id=character_id, state=created.copy()))
        return created.copy()

    def get_character_state(self, character_id: str) -> CharacterState | None:
        state = self._states.get(character_id)
        return state.copy() if state is not None else None

    def get_all_character_states(self) -> Dict[str, CharacterState]:
        return {character_id: state.copy() for character_id, state in self._states.items()}

    def update_character_state(self, character_id: str, **updates: Any) -> bool:
        """Merge ``updates`` into the character's state; unknown ids are warned and skipped."""
        current = self._states.get(character_id)
        if current is None:
            logger.warning("Character '%s' not found in state manager", character_id)
            return False
        normalized = self._normalize_updates(updates)
        for name, value in normalized.items():
            setattr(current, name, value)
        self._events.emit(
            CharacterUpdatedEvent(
                character_id=character_id,
                state=current.copy(),
                updates=copy.deepcopy(normalized),
            )
        )
        return True

    def set_character_emotion(self, character_id: str, emotion: CharacterEmotion | str) -> bool:
        if character_id not in self._states:
            logger.warning("Character '%s' not found in state manager", character_id)
            return False
        resolved = CharacterEmotion.parse(emotion)
        self.update_character_state(character_id, current_emotion=resolved)
        self._events.emit(CharacterEmotionChangedEvent(character_id=character_id, emotion=resolved))
        return True

    def register_state(self, character_id: str, name: str, value: Any = True) -> bool:
        """Record a named state as a custom flag."""
        current = self._states.get(character_id)
        if current is None:
            logger.warning("Cannot register state: character '%s' not found", character_id)
            return False
        custom_state = copy.deepcopy(current.custom_state)
        custom_state.setdefault("flags", {})[name] = value
        self.update_character_state(character_id, custom_state=custom_state)
        self._events.emit(CharacterStateRegisteredEvent(character_id=character_id, name=name, value=value))
        return True

    def set_state(self, character_id: str, name: str) -> bool:
        """Set an emotion by name, or make ``state_<name>`` the character's only active state flag."""
        current = self._states.get(character_id)
        if current is None:
            logger.warning("Cannot set state: character '%s' not found", character_id)
            return False
        if name in _EMOTION_STATE_NAMES:
            try:
                return self.set_character_emotion(character_id, name)
            except ValueError:
                logger.debug("State '%s' is not a known emotion; storing it as a flag", name)
        custom_state = copy.deepcopy(current.custom_state)
        flags = custom_state.setdefault("flags", {})
        for key in flags:
            if key.startswith(_STATE_FLAG_PREFIX):
                flags[key] = False
        state_key = name if name.startswith(_STATE_FLAG_PREFIX) else f"{_STATE_FLAG_PREFIX}{name}"
        flags[state_key] = True
        self.update_character_state(character_id, custom_state=custom_state)
        self._events.emit(CharacterFlagStateChangedEvent(character_id=character_id, name=name))
        return True

    def apply_action(self, action: CharacterAction) -> bool:
        """Reflect a presentation action in the character's state."""
        if action.character_id not in self._states:
            logger.warning("Skipping %s action for unknown character '%s'", action.type.value, action.character_id)
            return False
        updates: Dict[str, Any] = {}
        if action.type is ActionType.ENTER:
            updates["is_visible"] = True
            updates["position"] = action.position or CharacterPosition.CENTER
            updates["current_animation"] = action.animation or CharacterAnimation.WALK_IN
            if action.emotion is not None:
                updates["current_emotion"] = action.emotion
        elif action.type is ActionType.EXIT:
            updates["is_visible"] = False
            updates["position"] = action.position or CharacterPosition.OFF_SCREEN_LEFT
            updates["current_animation"] = action.animation or CharacterAnimation.WALK_OUT
        elif action.type is ActionType.MOVE:
            if action.position is not None:
                updates["position"] = action.position
        elif action.type is ActionType.CHANGE_EMOTION:
            if action.emotion is not None:
                return self.set_character_emotion(action.character_id, action.emotion)
        elif action.type is ActionType.ANIMATE:
            updates["current_animation"] = action.animation or CharacterAnimation.EMOTE
        elif action.type is ActionType.SPEAK:
            updates["current_animation"] = CharacterAnimation.TALK
            if action.emotion is not None:
                updates["current_emotion"] = action.emotion
        return self.update_character_state(action.character_id, **updates)

    def check_character_condition(self, character_id: str, path: str, op: str, value: Any) -> bool:
        """Compare a dotted property path of the character's state against ``value``.

        Supported operators are ``== != > >= < <=`` and ``contains``; a missing character,
        a missing path or incomparable values all evaluate to False.
        """
        state = self._states.get(character_id)
        if state is None:
            return False
        parts = path.split(".")
        head = _FIELD_ALIASES.get(parts[0], parts[0])
        if head not in _UPDATABLE_FIELDS and head != "id":
            return False
        current: Any = getattr(state, head)
        for part in parts[1:]:
            if not isinstance(current, Mapping) or part not in current:
                return False
            current = current[part]
        if op == "contains":
            if isinstance(current, (list, tuple, str)):
                try:
                    return value in current
                except TypeError:
                    return False
            return False
        comparator = _COMPARATORS.get(op)
        if comparator is None:
            logger.warning("Unsupported character condition operator '%s'", op)
            return False
        try:
            return bool(comparator(current, value))
        except TypeError:
            return False

    def remove_character_state(self, character_id: str) -> None:
        if self._states.pop(character_id, None) is None:
            return
        self._events.emit(CharacterRemovedEvent(character_id=character_id))

    def export_for_save(self) -> Dict[str, Dict[str, Any]]:
        return {character_id: state.to_dict() for character_id, state in self._states.items()}

    def load_from_save_data(self, payload: Mapping[str, Mapping[str, Any]]) -> None:
        """Replace every state from exported data. Raises ValueError on malformed entries."""
        loaded: Dict[str, CharacterState] = {}
        for character_id, entry in payload.items():
            if not isinstance(entry, Mapping):
                raise ValueError(f"Character state for '{character_id}' must be an object.")
            state = CharacterState.from_dict({**entry, "id": character_id})
            loaded[character_id] = state
        self._states = loaded
        self._events.emit(CharacterStatesLoadedEvent(states=self.get_all_character_states()))

    def clear(self) -> None:
        self._states.clear()
        self._events.emit(CharacterStatesClearedEvent())

    def reset(self) -> None:
        self.clear()
        self._events.emit(CharacterStatesResetEvent())

    @staticmethod
    def _normalize_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
        normalized: Dict[str, Any] = {}
        for raw_name, value in updates.items():
            name = _FIELD_ALIASES.get(raw_name, raw_name)
            if name not in _UPDATABLE_FIELDS:
                raise ValueError(f"Unknown character state field '{raw_name}'.")
            if name == "position":
                value = CharacterPosition.parse(value)
            elif name == "current_emotion":
                value = CharacterEmotion.parse(value)
            elif name == "is_visible" and not isinstance(value, bool):
                raise ValueError("is_visible must be a boolean.")
            elif name == "custom_state":
                if not isinstance(value, Mapping):
                    raise ValueError("custom_state must be a mapping.")
                value = copy.deepcopy(dict(value))
            normalized[name] = value
        return normalized
