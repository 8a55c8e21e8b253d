"""Derives character presentation actions from story nodes."""
from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Mapping, Sequence

from taleweave.core.rng import RNG
from taleweave.domain.characters import (
    ActionType,
    CharacterAction,
    CharacterAnimation,
    CharacterEmotion,
    CharacterPosition,
    CharacterState,
)
from taleweave.domain.story import SceneCharacter, StoryAnimation
from taleweave.services.story_node import StoryNode

logger = logging.getLogger(__name__)

ENTER_DURATION = 0.8
EXIT_DURATION = 0.7
MOVE_DURATION = 0.5

EMOTE_CHANCE = 0.3
RECENT_NODE_LIMIT = 5

_MOOD_EMOTIONS: Dict[str, CharacterEmotion] = {
    "happy": CharacterEmotion.HAPPY,
    "joyful": CharacterEmotion.HAPPY,
    "cheerful": CharacterEmotion.HAPPY,
    "sad": CharacterEmotion.SAD,
    "unhappy": CharacterEmotion.SAD,
    "depressed": CharacterEmotion.SAD,
    "angry": CharacterEmotion.ANGRY,
    "mad": CharacterEmotion.ANGRY,
    "furious": CharacterEmotion.ANGRY,
    "surprised": CharacterEmotion.SURPRISED,
    "shocked": CharacterEmotion.SURPRISED,
    "astonished": CharacterEmotion.SURPRISED,
    "thoughtful": CharacterEmotion.THOUGHTFUL,
    "contemplative": CharacterEmotion.THOUGHTFUL,
    "pensive": CharacterEmotion.THOUGHTFUL,
    "worried": CharacterEmotion.WORRIED,
    "anxious": CharacterEmotion.WORRIED,
    "nervous": CharacterEmotion.WORRIED,
    "excited": CharacterEmotion.EXCITED,
    "enthusiastic": CharacterEmotion.EXCITED,
    "thrilled": CharacterEmotion.EXCITED,
}

_SIDE_POSITIONS = (CharacterPosition.LEFT, CharacterPosition.RIGHT)
_EMOTE_MOODS = {"excited", "angry", "surprised"}
_MOOD_INTENSITY_BIAS = {
    "excited": 0.2,
    "angry": 0.2,
    "surprised": 0.15,
    "sad": -0.1,
    "thoughtful": -0.1,
}


def mood_to_emotion(mood: str) -> CharacterEmotion:
    """Map a free-form mood word to an emotion; unknown moods are neutral."""
    return _MOOD_EMOTIONS.get(mood.strip().lower(), CharacterEmotion.NEUTRAL)


def emote_intensity(text: str, mood: str | None = None) -> float:
    """Score how strongly a line should be emoted, in [0.1, 1.0]."""
    intensity = 0.5
    intensity += text.count("!") * 0.1
    intensity += text.count("?") * 0.05
    words = text.split(" ")
    shouted = [word for word in words if word == word.upper() and len(word) > 1]
    intensity += len(shouted) / len(words) * 0.2
    if mood:
        intensity += _MOOD_INTENSITY_BIAS.get(mood.strip().lower(), 0.0)
    return min(max(intensity, 0.1), 1.0)


class CharacterActionGenerator:
    """Turns scene blocking, dialogue lines and node animations into character actions.

    The generator never mutates the character states it is given; callers apply the returned
    actions themselves. Random heuristics draw from the injected RNG.
    """

    def __init__(self, rng: RNG | None = None) -> None:
        self._rng = rng or RNG()
        self._recent_node_ids: Deque[str] = deque(maxlen=RECENT_NODE_LIMIT)
        self._current_scene_id: str | None = None

    @property
    def current_scene_id(self) -> str | None:
        return self._current_scene_id

    @property
    def recent_node_ids(self) -> List[str]:
        """Most recent first."""
        return list(self._recent_node_ids)

    def generate_actions_from_node(
        self, node: StoryNode, characters: Mapping[str, CharacterState]
    ) -> List[CharacterAction]:
        actions: List[CharacterAction] = []
        self._recent_node_ids.appendleft(node.id)

        if node.type == "scene" and node.scene_id:
            self._current_scene_id = node.scene_id
            if node.characters is not None:
                actions.extend(self._scene_exits(node.characters, characters))
                actions.extend(self._scene_entrances(node.characters, characters))

        if node.type == "dialogue":
            actions.extend(self._dialogue_actions(node, characters))

        for animation in node.animations:
            if animation.target in characters:
                actions.append(self._animation_to_action(animation))

        logger.debug("Generated %d character action(s) for node '%s'", len(actions), node.id)
        return actions

    def generate_contextual_actions(
        self,
        current_node: StoryNode,
        next_node: StoryNode | None,
        characters: Mapping[str, CharacterState],
    ) -> List[CharacterAction]:
        """Bridge a change of speaker between two consecutive nodes."""
        if next_node is None:
            return []
        current_id = current_node.character
        next_id = next_node.character
        if not current_id or not next_id or current_id == next_id:
            return []
        current_state = characters.get(current_id)
        next_state = characters.get(next_id)
        if current_state is None or next_state is None:
            return []

        actions: List[CharacterAction] = []
        if not next_state.is_visible:
            actions.append(
                CharacterAction(
                    type=ActionType.ENTER,
                    character_id=next_id,
                    position=self._enter_position(current_state.position),
                    emotion=self._resolve_emotion(next_node.mood, next_state),
                )
            )
        if current_state.is_visible and next_state.is_visible and current_state.position != next_state.position:
            actions.append(
                CharacterAction(
                    type=ActionType.ANIMATE,
                    character_id=current_id,
                    animation="lookAt",
                    custom_params={"target": next_state.position.value},
                )
            )
        return actions

    def reset(self) -> None:
        """Forget scene and node continuity, for example between chapters."""
        self._recent_node_ids.clear()
        self._current_scene_id = None

    def _scene_exits(
        self, declared: Sequence[SceneCharacter], characters: Mapping[str, CharacterState]
    ) -> List[CharacterAction]:
        declared_ids = {entry.id for entry in declared}
        actions: List[CharacterAction] = []
        for character_id, state in characters.items():
            if not state.is_visible or character_id in declared_ids:
                continue
            exit_position = (
                CharacterPosition.OFF_SCREEN_LEFT
                if state.position is CharacterPosition.LEFT
                else CharacterPosition.OFF_SCREEN_RIGHT
            )
            actions.append(
                CharacterAction(
                    type=ActionType.EXIT,
                    character_id=character_id,
                    position=exit_position,
                    duration=EXIT_DURATION,
                )
            )
        return actions

    def _scene_entrances(
        self, declared: Sequence[SceneCharacter], characters: Mapping[str, CharacterState]
    ) -> List[CharacterAction]:
        actions: List[CharacterAction] = []
        for entry in declared:
            state = characters.get(entry.id)
            if state is None:
                logger.debug("Scene character '%s' is not registered; skipping", entry.id)
                continue
            if not state.is_visible:
                actions.append(
                    CharacterAction(
                        type=ActionType.ENTER,
                        character_id=entry.id,
                        position=entry.position,
                        emotion=entry.expression or state.current_emotion,
                        duration=ENTER_DURATION,
                    )
                )
            elif state.position != entry.position:
                actions.append(
                    CharacterAction(
                        type=ActionType.MOVE,
                        character_id=entry.id,
                        position=entry.position,
                        duration=MOVE_DURATION,
                    )
                )
            if entry.expression is not None and entry.expression != state.current_emotion:
                actions.append(
                    CharacterAction(
                        type=ActionType.CHANGE_EMOTION,
                        character_id=entry.id,
                        emotion=entry.expression,
                    )
                )
        return actions

    def _dialogue_actions(
        self, node: StoryNode, characters: Mapping[str, CharacterState]
    ) -> List[CharacterAction]:
        speaker = node.character
        if not speaker or speaker not in characters:
            return []
        state = characters[speaker]
        mood = node.mood
        emotion = self._resolve_emotion(mood, state)
        actions: List[CharacterAction] = []
        if not state.is_visible:
            actions.append(
                CharacterAction(
                    type=ActionType.ENTER,
                    character_id=speaker,
                    position=CharacterPosition.CENTER,
                    emotion=emotion,
                )
            )
        if mood and emotion != state.current_emotion:
            actions.append(CharacterAction(type=ActionType.CHANGE_EMOTION, character_id=speaker, emotion=emotion))
        text = node.text
        if text:
            actions.append(
                CharacterAction(type=ActionType.SPEAK, character_id=speaker, text=text, emotion=emotion)
            )
            if self._should_emote(text, mood):
                actions.append(
                    CharacterAction(
                        type=ActionType.ANIMATE,
                        character_id=speaker,
                        animation=CharacterAnimation.EMOTE,
                        custom_params={"intensity": emote_intensity(text, mood)},
                    )
                )
        return actions

    def _should_emote(self, text: str, mood: str | None) -> bool:
        if "!" in text or "?" in text:
            return True
        if mood and mood.strip().lower() in _EMOTE_MOODS:
            return True
        return self._rng.chance(EMOTE_CHANCE)

    def _enter_position(self, speaker_position: CharacterPosition) -> CharacterPosition:
        if speaker_position is CharacterPosition.LEFT:
            return CharacterPosition.RIGHT
        if speaker_position is CharacterPosition.RIGHT:
            return CharacterPosition.LEFT
        if speaker_position is CharacterPosition.CENTER:
            return self._rng.choice(_SIDE_POSITIONS)
        return CharacterPosition.CENTER

    @staticmethod
    def _resolve_emotion(mood: str | None, state: CharacterState) -> CharacterEmotion:
        if not mood:
            return state.current_emotion
        return mood_to_emotion(mood)

    @staticmethod
    def _animation_to_action(animation: StoryAnimation) -> CharacterAction:
        return CharacterAction(
            type=ActionType.ANIMATE,
            character_id=animation.target,
            animation=animation.type,
            duration=animation.duration or None,
            custom_params=dict(animation.parameters),
        )
