"""Parse story documents into validated Story objects."""
from __future__ import annotations

import copy
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Tuple

from taleweave.core.types import NODE_TYPES, StoryFormat
from taleweave.domain.characters import CharacterEmotion, CharacterPosition
from taleweave.domain.story import (
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
from .errors import StoryFormatError, StoryValidationError, ValidationIssue
from .loader import detect_format, load_text, parse_document

logger = logging.getLogger(__name__)

TextLoader = Callable[[Path | str], str]

_TEXT_EFFECTS = {"wave", "shake", "bounce", "typewriter"}


class _Issues:
    """Accumulates validation problems so a document is checked in full before failing."""

    def __init__(self) -> None:
        self.items: List[ValidationIssue] = []

    def add(self, node_id: str | None, field: str, message: str) -> None:
        self.items.append(ValidationIssue(node_id=node_id, field=field, message=message))

    def raise_if_any(self) -> None:
        if self.items:
            raise StoryValidationError(self.items)


class StoryParser:
    """Builds Story objects from JSON/YAML text and enforces referential integrity."""

    def __init__(self, *, text_loader: TextLoader = load_text, report_diagnostics: bool = True) -> None:
        self._text_loader = text_loader
        self._report_diagnostics = report_diagnostics

    def parse(self, raw: str, fmt: StoryFormat = "yaml") -> Story:
        """Parse story text. Raises StoryFormatError or StoryValidationError."""
        return self.build(parse_document(raw, fmt))

    def parse_file(self, path: Path | str, fmt: StoryFormat | None = None) -> Story:
        """Load and parse a story file, inferring the format from its suffix when omitted."""
        story_format = fmt or detect_format(path)
        return self.parse(self._text_loader(path), story_format)

    def build(self, document: object) -> Story:
        """Validate an already-decoded document and convert it into a Story."""
        if not isinstance(document, Mapping):
            raise StoryFormatError("Story document must be an object at the top level.")
        issues = _Issues()
        story_id = self._story_str(document, "id", issues)
        title = self._story_str(document, "title", issues)
        start_node = self._story_str(document, "startNode", issues)
        raw_nodes = self._normalize_nodes(document.get("nodes"), issues)
        initial_state = document.get("initialState", {})
        if initial_state is None:
            initial_state = {}
        if not isinstance(initial_state, Mapping):
            issues.add(None, "initialState", "must be an object if provided.")
            initial_state = {}
        if start_node and raw_nodes and start_node not in raw_nodes:
            issues.add(None, "startNode", f"start node '{start_node}' does not exist in story nodes.")
        tags = document.get("tags")
        if tags is not None and not (isinstance(tags, list) and all(isinstance(tag, str) for tag in tags)):
            issues.add(None, "tags", "must be a list of strings if provided.")

        node_ids = set(raw_nodes)
        for node_id, payload in raw_nodes.items():
            _NodeValidator(node_id, payload, node_ids, issues).validate()
        characters = self._parse_roster(document.get("assets"), issues)
        issues.raise_if_any()

        nodes = {node_id: _build_node(node_id, payload) for node_id, payload in raw_nodes.items()}
        story = Story(
            id=story_id,
            title=title,
            start_node=start_node,
            nodes=nodes,
            initial_state=copy.deepcopy(dict(initial_state)),
            author=_optional_str(document.get("author")),
            version=_optional_str(document.get("version")),
            description=_optional_str(document.get("description")),
            tags=tuple(tags or ()),
            characters=characters,
        )
        if self._report_diagnostics:
            self._log_diagnostics(story)
        return story

    @staticmethod
    def _story_str(document: Mapping[str, Any], key: str, issues: _Issues) -> str:
        """Return the required string field, or "" after recording an issue."""
        value = document.get(key)
        if not isinstance(value, str) or not value.strip():
            issues.add(None, key, "is required and must be a non-empty string.")
            return ""
        return value

    @staticmethod
    def _normalize_nodes(raw_nodes: object, issues: _Issues) -> Dict[str, Mapping[str, Any]]:
        nodes: Dict[str, Mapping[str, Any]] = {}
        if isinstance(raw_nodes, Mapping):
            for node_id, payload in raw_nodes.items():
                if not isinstance(node_id, str) or not node_id.strip():
                    issues.add(None, "nodes", f"node identifier {node_id!r} must be a non-empty string.")
                    continue
                if not isinstance(payload, Mapping):
                    issues.add(node_id, "<node>", "must be an object.")
                    continue
                nodes[node_id] = payload
        elif isinstance(raw_nodes, list):
            seen: List[str] = []
            for index, payload in enumerate(raw_nodes):
                node_id = payload.get("id") if isinstance(payload, Mapping) else None
                if not isinstance(node_id, str) or not node_id.strip():
                    issues.add(None, f"nodes[{index}]", "must be an object with a non-empty 'id'.")
                    continue
                seen.append(node_id)
                nodes.setdefault(node_id, payload)
            for node_id, count in sorted(Counter(seen).items()):
                if count > 1:
                    issues.add(node_id, "id", f"duplicate node id ({count} definitions).")
        elif raw_nodes is not None:
            issues.add(None, "nodes", "must be an object mapping ids to nodes or a list of nodes.")
        if not nodes and not issues.items:
            issues.add(None, "nodes", "story must have at least one node.")
        return nodes

    @staticmethod
    def _parse_roster(assets: object, issues: _Issues) -> Dict[str, StoryCharacter]:
        if assets is None:
            return {}
        if not isinstance(assets, Mapping):
            issues.add(None, "assets", "must be an object if provided.")
            return {}
        raw_characters = assets.get("characters")
        if raw_characters is None:
            return {}
        if not isinstance(raw_characters, Mapping):
            issues.add(None, "assets.characters", "must be an object if provided.")
            return {}
        roster: Dict[str, StoryCharacter] = {}
        for character_id, entry in raw_characters.items():
            field_path = f"assets.characters.{character_id}"
            if not isinstance(entry, Mapping):
                issues.add(None, field_path, "must be an object.")
                continue
            name = entry.get("name", character_id)
            if not isinstance(name, str):
                issues.add(None, f"{field_path}.name", "must be a string.")
                continue
            text_speed = entry.get("textSpeed")
            roster[str(character_id)] = StoryCharacter(
                id=str(character_id),
                name=name,
                display_name=_optional_str(entry.get("displayName")),
                text_color=_optional_str(entry.get("textColor")),
                text_speed=float(text_speed) if _is_number(text_speed) else None,
            )
        return roster

    @staticmethod
    def _log_diagnostics(story: Story) -> None:
        from taleweave.services.story_graph_validator import format_issue, validate_story_graph

        for issue in validate_story_graph(story):
            logger.warning("Story '%s': %s", story.id, format_issue(issue))


class _NodeValidator:
    """Checks one raw node payload; records every problem instead of stopping at the first."""

    def __init__(
        self, node_id: str, payload: Mapping[str, Any], node_ids: set[str], issues: _Issues
    ) -> None:
        self._node_id = node_id
        self._payload = payload
        self._node_ids = node_ids
        self._issues = issues

    def _add(self, field: str, message: str) -> None:
        self._issues.add(self._node_id, field, message)

    def validate(self) -> None:
        payload = self._payload
        declared_id = payload.get("id")
        if declared_id is not None and declared_id != self._node_id:
            self._add("id", f"declared id {declared_id!r} does not match its key.")
        node_type = payload.get("type")
        if not isinstance(node_type, str) or not node_type:
            self._add("type", "node must have a type.")
        elif node_type not in NODE_TYPES:
            self._add("type", f"unknown node type '{node_type}'.")
        else:
            getattr(self, f"_validate_{node_type}")()
        self._validate_reference("nextNode", payload.get("nextNode"))
        self._validate_common()

    def _validate_dialogue(self) -> None:
        if not _is_non_empty_str(self._payload.get("text")):
            self._add("text", "dialogue node must have text.")
        if not _is_non_empty_str(_speaker(self._payload)):
            self._add("character", "dialogue node must have a character.")

    def _validate_choice(self) -> None:
        choices = self._payload.get("choices")
        if not isinstance(choices, list) or not choices:
            self._add("choices", "choice node must have at least one choice.")
            return
        choice_ids: List[str] = []
        for index, choice in enumerate(choices):
            field = f"choices[{index}]"
            if not isinstance(choice, Mapping):
                self._add(field, "must be an object.")
                continue
            if not isinstance(choice.get("text"), str):
                self._add(f"{field}.text", "choice must have text.")
            next_node = choice.get("nextNode")
            if not _is_non_empty_str(next_node):
                self._add(f"{field}.nextNode", "choice must have a nextNode.")
            else:
                self._validate_reference(f"{field}.nextNode", next_node)
            choice_id = choice.get("id")
            if choice_id is not None:
                if not _is_non_empty_str(choice_id):
                    self._add(f"{field}.id", "must be a non-empty string if provided.")
                else:
                    choice_ids.append(choice_id)
            if not _is_condition(choice.get("condition")):
                self._add(f"{field}.condition", "must be a string or boolean if provided.")
            if not isinstance(choice.get("stateChanges", {}), Mapping):
                self._add(f"{field}.stateChanges", "must be an object if provided.")
        for choice_id, count in Counter(choice_ids).items():
            if count > 1:
                self._add("choices", f"duplicate choice id '{choice_id}'.")

    def _validate_branch(self) -> None:
        condition = self._payload.get("condition")
        if condition is None or (isinstance(condition, str) and not condition.strip()):
            self._add("condition", "branch node must have a condition.")
        if not _is_non_empty_str(self._payload.get("nextNode")):
            self._add("nextNode", "branch node must have a nextNode.")

    def _validate_scene(self) -> None:
        if not _is_non_empty_str(self._payload.get("sceneId")):
            self._add("sceneId", "scene node must have a sceneId.")

    def _validate_characters(self, characters: object) -> None:
        if characters is None:
            return
        if not isinstance(characters, list):
            self._add("characters", "must be a list if provided.")
            return
        for index, entry in enumerate(characters):
            field = f"characters[{index}]"
            if not isinstance(entry, Mapping):
                self._add(field, "must be an object.")
                continue
            if not _is_non_empty_str(entry.get("id")):
                self._add(f"{field}.id", "scene character must have an id.")
            position = entry.get("position")
            if position is None:
                self._add(f"{field}.position", "scene character must have a position.")
            else:
                try:
                    CharacterPosition.parse(position)
                except ValueError:
                    self._add(f"{field}.position", f"invalid position {position!r}.")
            expression = entry.get("expression")
            if expression is not None:
                try:
                    CharacterEmotion.parse(expression)
                except ValueError:
                    self._add(f"{field}.expression", f"invalid expression {expression!r}.")

    def _validate_end(self) -> None:
        if self._payload.get("nextNode") is not None:
            self._add("nextNode", "end node must not declare a nextNode.")

    def _validate_reference(self, field: str, target: object) -> None:
        if target is None:
            return
        if not _is_non_empty_str(target):
            self._add(field, "must be a non-empty node id.")
        elif target not in self._node_ids:
            self._add(field, f"references missing node '{target}'.")

    def _validate_common(self) -> None:
        payload = self._payload
        if not _is_condition(payload.get("condition")):
            self._add("condition", "must be a string or boolean if provided.")
        if payload.get("type") != "dialogue":
            self._optional_type("text", str, "a string")
            self._optional_type("character", str, "a string")
            self._optional_type("characterId", str, "a string")
        self._optional_type("mood", str, "a string")
        self._optional_type("onEnter", str, "a string")
        self._optional_type("onExit", str, "a string")
        self._optional_type("stateChanges", Mapping, "an object")
        self._optional_type("sceneId", str, "a string")
        tags = payload.get("tags")
        if tags is not None and not (isinstance(tags, list) and all(isinstance(tag, str) for tag in tags)):
            self._add("tags", "must be a list of strings if provided.")
        background = payload.get("background")
        if background is not None:
            if isinstance(background, Mapping):
                if not _is_non_empty_str(background.get("id")):
                    self._add("background.id", "background object must have an id.")
            elif not isinstance(background, str):
                self._add("background", "must be a string or an object if provided.")
        audio = payload.get("audio")
        if audio is not None and not isinstance(audio, (str, Mapping)):
            self._add("audio", "must be a string or an object if provided.")
        self._validate_characters(payload.get("characters"))
        self._validate_animations(payload.get("animations"))
        self._validate_metadata(payload.get("metadata"))
        self._validate_dialogue_options(payload.get("dialogueOptions"))

    def _validate_animations(self, animations: object) -> None:
        if animations is None:
            return
        if not isinstance(animations, list):
            self._add("animations", "must be a list if provided.")
            return
        for index, animation in enumerate(animations):
            field = f"animations[{index}]"
            if not isinstance(animation, Mapping):
                self._add(field, "must be an object.")
                continue
            if not _is_non_empty_str(animation.get("target")):
                self._add(f"{field}.target", "animation must have a target.")
            if not _is_non_empty_str(animation.get("type")):
                self._add(f"{field}.type", "animation must have a type.")
            parameters = animation.get("parameters")
            if parameters is not None and not isinstance(parameters, Mapping):
                self._add(f"{field}.parameters", "must be an object if provided.")

    def _validate_metadata(self, metadata: object) -> None:
        if metadata is None:
            return
        if not isinstance(metadata, Mapping):
            self._add("metadata", "must be an object if provided.")
            return
        for key in ("transition", "effect"):
            value = metadata.get(key)
            if value is None or isinstance(value, str):
                continue
            if not isinstance(value, Mapping) or not _is_non_empty_str(value.get("type")):
                self._add(f"metadata.{key}", "must be a string or an object with a type.")
        emotion = metadata.get("emotion")
        if emotion is not None:
            try:
                CharacterEmotion.parse(emotion)
            except ValueError:
                self._add("metadata.emotion", f"invalid emotion {emotion!r}.")
        animation = metadata.get("animation")
        if animation is not None and not isinstance(animation, Mapping):
            self._add("metadata.animation", "must be an object with in/out keys.")
        text_speed = metadata.get("textSpeed")
        if text_speed is not None and not _is_number(text_speed):
            self._add("metadata.textSpeed", "must be a number.")

    def _validate_dialogue_options(self, options: object) -> None:
        if options is None:
            return
        if not isinstance(options, Mapping):
            self._add("dialogueOptions", "must be an object if provided.")
            return
        effects = options.get("textEffects")
        if effects is None:
            return
        if not isinstance(effects, Mapping) or effects.get("type") not in _TEXT_EFFECTS:
            self._add("dialogueOptions.textEffects.type", "invalid text effect type.")

    def _optional_type(self, key: str, expected: type, label: str) -> None:
        value = self._payload.get(key)
        if value is not None and not isinstance(value, expected):
            self._add(key, f"must be {label} if provided.")


def _build_node(node_id: str, payload: Mapping[str, Any]) -> StoryNodeData:
    node_type = payload["type"]
    choices: Tuple[StoryChoice, ...] = ()
    if node_type == "choice":
        choices = tuple(
            StoryChoice(
                id=entry.get("id") or f"{node_id}_choice_{index}",
                text=entry["text"],
                next_node=entry["nextNode"],
                condition=entry.get("condition"),
                state_changes=copy.deepcopy(dict(entry.get("stateChanges") or {})),
            )
            for index, entry in enumerate(payload["choices"])
        )
    characters: Tuple[SceneCharacter, ...] | None = None
    if payload.get("characters") is not None:
        characters = tuple(
            SceneCharacter(
                id=entry["id"],
                position=CharacterPosition.parse(entry["position"]),
                expression=CharacterEmotion.parse(entry["expression"]) if entry.get("expression") else None,
            )
            for entry in payload["characters"]
        )
    text_speed = payload.get("textSpeed")
    return StoryNodeData(
        id=node_id,
        type=node_type,
        text=payload.get("text"),
        character=_speaker(payload),
        mood=payload.get("mood"),
        next_node=payload.get("nextNode"),
        choices=choices,
        scene_id=payload.get("sceneId"),
        characters=characters,
        background=_build_background(payload.get("background")),
        condition=payload.get("condition"),
        on_enter=payload.get("onEnter"),
        on_exit=payload.get("onExit"),
        state_changes=copy.deepcopy(dict(payload.get("stateChanges") or {})),
        animations=tuple(_build_animation(entry) for entry in payload.get("animations") or ()),
        metadata=_build_metadata(payload.get("metadata")),
        audio=copy.deepcopy(payload.get("audio")),
        tags=tuple(payload.get("tags") or ()),
        dialogue_options=_build_dialogue_options(payload.get("dialogueOptions")),
        text_speed=float(text_speed) if _is_number(text_speed) else None,
    )


def _build_background(raw: object) -> StoryBackground | None:
    if isinstance(raw, str):
        return StoryBackground(id=raw)
    if not isinstance(raw, Mapping):
        return None
    return StoryBackground(
        id=raw["id"],
        image_id=_optional_str(raw.get("imageId")),
        transition=_optional_str(raw.get("transition")),
    )


def _build_animation(raw: Mapping[str, Any]) -> StoryAnimation:
    known = {"target", "type", "duration", "delay", "ease", "direction", "parameters"}
    parameters = dict(raw.get("parameters") or {})
    # Keep presentation-only keys (cameraEffect, scale, ...) available to renderers.
    parameters.update({key: value for key, value in raw.items() if key not in known})
    return StoryAnimation(
        target=raw["target"],
        type=raw["type"],
        duration=_optional_number(raw.get("duration")),
        delay=_optional_number(raw.get("delay")),
        ease=_optional_str(raw.get("ease")),
        direction=_optional_str(raw.get("direction")),
        parameters=copy.deepcopy(parameters),
    )


def _build_metadata(raw: object) -> NodeMetadata | None:
    if not isinstance(raw, Mapping):
        return None
    transition, transition_duration = _type_and_field(raw.get("transition"), "duration")
    effect, effect_duration = _type_and_field(raw.get("effect"), "duration")
    _, effect_intensity = _type_and_field(raw.get("effect"), "intensity")
    animation = raw.get("animation") or {}
    emotion = raw.get("emotion")
    return NodeMetadata(
        transition=transition,
        transition_duration=transition_duration,
        effect=effect,
        effect_intensity=effect_intensity,
        effect_duration=effect_duration,
        animation_in=_optional_str(animation.get("in")),
        animation_out=_optional_str(animation.get("out")),
        text_speed=_optional_number(raw.get("textSpeed")),
        text_effect=_optional_str(raw.get("textEffect")),
        emotion=CharacterEmotion.parse(emotion) if emotion is not None else None,
        choice_animation=_optional_str(raw.get("choiceAnimation")),
    )


def _build_dialogue_options(raw: object) -> DialogueOptions | None:
    if not isinstance(raw, Mapping):
        return None
    effects = raw.get("textEffects") or {}
    return DialogueOptions(
        speed=_optional_number(raw.get("speed")),
        auto_progress=bool(raw.get("autoProgress", False)),
        text_effect=_optional_str(effects.get("type")),
        text_effect_intensity=_optional_number(effects.get("intensity")),
    )


def _type_and_field(value: object, field: str) -> tuple[str | None, float | None]:
    if isinstance(value, str):
        return value, None
    if isinstance(value, Mapping):
        return _optional_str(value.get("type")), _optional_number(value.get(field))
    return None, None


def _speaker(payload: Mapping[str, Any]) -> Any:
    speaker = payload.get("character")
    if speaker is None:
        speaker = payload.get("characterId")
    return speaker


def _is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_condition(value: object) -> bool:
    return value is None or isinstance(value, (str, bool))


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _optional_number(value: object) -> float | None:
    return float(value) if _is_number(value) else None


_DEFAULT_PARSER = StoryParser()


def parse(raw: str, fmt: StoryFormat = "yaml") -> Story:
    """Parse story text with the default parser."""
    return _DEFAULT_PARSER.parse(raw, fmt)


def parse_file(path: Path | str, fmt: StoryFormat | None = None) -> Story:
    """Load and parse a story file with the default parser."""
    return _DEFAULT_PARSER.parse_file(path, fmt)
