"""Connects story traversal to character state and presentation cues."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from taleweave.core.events import Event, EventBus, Unsubscribe
from taleweave.domain.characters import CharacterAction
from taleweave.domain.story import StoryBackground, StoryChoice
from taleweave.services.character_action_generator import CharacterActionGenerator
from taleweave.services.character_state_manager import CharacterStateManager
from taleweave.services.story_manager import (
    NodeEnteredEvent,
    StoryLoadedEvent,
    StoryManager,
    StoryResetEvent,
)
from taleweave.services.story_node import StoryNode

logger = logging.getLogger(__name__)

NARRATOR_ID = "narrator"


@dataclass(frozen=True, slots=True)
class SpeakerProfile:
    """Display metadata for a character."""

    id: str
    name: str
    display_name: str | None = None
    text_speed: float | None = None
    text_color: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass(slots=True)
class PresentationCue(Event):
    """Everything a front end needs to render the node that was just entered."""

    node_id: str
    node_type: str
    speaker: SpeakerProfile | None = None
    text: str | None = None
    actions: List[CharacterAction] = field(default_factory=list)
    contextual_actions: List[CharacterAction] = field(default_factory=list)
    choices: List[StoryChoice] = field(default_factory=list)
    background: StoryBackground | None = None
    transition: str | None = None
    effect: str | None = None
    animation_in: str | None = None


@dataclass(slots=True)
class DialogueEndedEvent(Event):
    """A node without a way forward was continued."""

    node_id: str


@dataclass(slots=True)
class StoryEndedEvent(Event):
    node_id: str


class DialogueDirector:
    """Subscriber that turns entered nodes into applied character actions and cues."""

    def __init__(
        self,
        story_manager: StoryManager,
        character_states: CharacterStateManager,
        generator: CharacterActionGenerator | None = None,
        *,
        events: EventBus | None = None,
    ) -> None:
        self._story_manager = story_manager
        self._character_states = character_states
        self._generator = generator or CharacterActionGenerator()
        self._events = events or story_manager.events
        self._profiles: Dict[str, SpeakerProfile] = {}
        self._subscriptions: List[Unsubscribe] = [
            story_manager.events.subscribe(NodeEnteredEvent, self._on_node_entered),
            story_manager.events.subscribe(StoryResetEvent, self._on_story_reset),
            story_manager.events.subscribe(StoryLoadedEvent, self._on_story_loaded),
        ]
        if story_manager.story is not None:
            self._register_roster(story_manager.story.characters)

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def generator(self) -> CharacterActionGenerator:
        return self._generator

    def register_character(self, character_id: str, name: str, **options: Any) -> SpeakerProfile:
        """Record display metadata and make sure the character has a state."""
        profile = SpeakerProfile(
            id=character_id,
            name=name,
            display_name=options.get("display_name"),
            text_speed=options.get("text_speed"),
            text_color=options.get("text_color"),
        )
        self._profiles[character_id] = profile
        self._character_states.initialize_character(character_id)
        return profile

    def register_characters(self, characters: Mapping[str, Mapping[str, Any]]) -> None:
        for character_id, options in characters.items():
            options = dict(options)
            name = options.pop("name", character_id)
            self.register_character(character_id, name, **options)

    def get_speaker_profile(self, character_id: str) -> SpeakerProfile | None:
        return self._profiles.get(character_id)

    def continue_dialogue(self) -> bool:
        """Advance past the current dialogue or scene node. Returns True when the story moved."""
        node = self._story_manager.current_node
        if node is None or node.type in ("choice", "end"):
            return False
        if node.next_node_id:
            self._story_manager.progress()
            return True
        self._events.emit(DialogueEndedEvent(node_id=node.id))
        return False

    def select_choice(self, index: int) -> None:
        self._story_manager.make_choice(index)

    def detach(self) -> None:
        """Stop listening to the story manager."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

    def _on_story_loaded(self, event: StoryLoadedEvent) -> None:
        self._generator.reset()
        self._register_roster(event.story.characters)

    def _on_story_reset(self, event: StoryResetEvent) -> None:
        self._generator.reset()
        self._character_states.reset()
        for character_id in self._profiles:
            self._character_states.initialize_character(character_id)

    def _on_node_entered(self, event: NodeEnteredEvent) -> None:
        node = event.node
        self._ensure_characters(node)

        actions = self._generator.generate_actions_from_node(
            node, self._character_states.get_all_character_states()
        )
        self._apply(actions)

        contextual: List[CharacterAction] = []
        next_node = self._story_manager.get_node(node.next_node_id) if node.next_node_id else None
        if next_node is not None:
            contextual = self._generator.generate_contextual_actions(
                node, next_node, self._character_states.get_all_character_states()
            )
            self._apply(contextual)

        metadata = node.metadata
        cue = PresentationCue(
            node_id=node.id,
            node_type=node.type,
            speaker=self._speaker_for(node),
            text=node.text,
            actions=actions,
            contextual_actions=contextual,
            choices=self._story_manager.get_available_choices() if node.type == "choice" else [],
            background=node.background,
            transition=metadata.transition if metadata else None,
            effect=metadata.effect if metadata else None,
            animation_in=metadata.animation_in if metadata else None,
        )
        self._events.emit(cue)

        if node.type == "end":
            self._generator.reset()
            self._events.emit(StoryEndedEvent(node_id=node.id))

    def _ensure_characters(self, node: StoryNode) -> None:
        character_ids: List[str] = []
        if node.type == "dialogue" and node.character:
            character_ids.append(node.character)
        character_ids.extend(entry.id for entry in node.characters or ())
        for character_id in character_ids:
            if character_id == NARRATOR_ID or self._character_states.has_character(character_id):
                continue
            logger.debug("Auto-registering character '%s' from node '%s'", character_id, node.id)
            self._character_states.initialize_character(character_id)

    def _apply(self, actions: List[CharacterAction]) -> None:
        for action in actions:
            self._character_states.apply_action(action)

    def _speaker_for(self, node: StoryNode) -> SpeakerProfile | None:
        if not node.character:
            return None
        profile = self._profiles.get(node.character)
        if profile is None:
            profile = SpeakerProfile(id=node.character, name=node.character)
        return profile

    def _register_roster(self, roster: Mapping[str, Any]) -> None:
        for character in roster.values():
            self.register_character(
                character.id,
                character.name,
                display_name=character.display_name,
                text_speed=character.text_speed,
                text_color=character.text_color,
            )
