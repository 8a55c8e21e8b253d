"""Runtime wrapper around a parsed story node."""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, MutableMapping, Tuple

from taleweave.core.expressions import ExpressionError, evaluate_condition, run_script
from taleweave.core.types import NodeType
from taleweave.domain.story import (
    Condition,
    DialogueOptions,
    NodeMetadata,
    SceneCharacter,
    StoryAnimation,
    StoryBackground,
    StoryChoice,
    StoryNodeData,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSITION = "default"


class StoryNode:
    """Typed accessors plus condition and script evaluation for one node.

    Condition and script failures never escape: they are logged, conditions fail closed and
    scripts leave the state untouched.
    """

    __slots__ = ("_data",)

    def __init__(self, data: StoryNodeData) -> None:
        self._data = data

    @property
    def data(self) -> StoryNodeData:
        return self._data

    @property
    def id(self) -> str:
        return self._data.id

    @property
    def type(self) -> NodeType:
        return self._data.type

    @property
    def text(self) -> str | None:
        return self._data.text

    @property
    def character(self) -> str | None:
        return self._data.character

    @property
    def mood(self) -> str | None:
        return self._data.mood

    @property
    def next_node_id(self) -> str | None:
        return self._data.next_node

    @property
    def choices(self) -> Tuple[StoryChoice, ...]:
        return self._data.choices

    @property
    def scene_id(self) -> str | None:
        return self._data.scene_id

    @property
    def characters(self) -> Tuple[SceneCharacter, ...] | None:
        return self._data.characters

    @property
    def background(self) -> StoryBackground | None:
        return self._data.background

    @property
    def metadata(self) -> NodeMetadata | None:
        return self._data.metadata

    @property
    def animations(self) -> Tuple[StoryAnimation, ...]:
        return self._data.animations

    @property
    def dialogue_options(self) -> DialogueOptions | None:
        return self._data.dialogue_options

    @property
    def tags(self) -> Tuple[str, ...]:
        return self._data.tags

    @property
    def audio(self) -> str | Mapping[str, Any] | None:
        return self._data.audio

    @property
    def is_terminal(self) -> bool:
        return self._data.type == "end"

    def get_state_changes(self) -> Dict[str, Any]:
        """Return a copy of the unconditional state changes applied on entry."""
        return copy.deepcopy(dict(self._data.state_changes))

    def get_transition_type(self) -> str:
        metadata = self._data.metadata
        if metadata is None or not metadata.transition:
            return DEFAULT_TRANSITION
        return metadata.transition

    def has_tag(self, tag: str) -> bool:
        return tag in self._data.tags

    def evaluate_condition(self, state: Mapping[str, Any]) -> bool:
        """Evaluate the node condition; an absent condition is true."""
        return self._evaluate(self._data.condition, state, "condition")

    def evaluate_choice_condition(self, choice: StoryChoice, state: Mapping[str, Any]) -> bool:
        return self._evaluate(choice.condition, state, f"choice '{choice.id}' condition")

    def get_available_choices(self, state: Mapping[str, Any]) -> List[StoryChoice]:
        """Return the choices whose condition holds, in declaration order."""
        return [choice for choice in self._data.choices if self.evaluate_choice_condition(choice, state)]

    def execute_on_enter(self, state: MutableMapping[str, Any]) -> bool:
        """Run the onEnter script. Returns True when a script ran successfully."""
        return self._execute(self._data.on_enter, state, "onEnter")

    def execute_on_exit(self, state: MutableMapping[str, Any]) -> bool:
        """Run the onExit script. Returns True when a script ran successfully."""
        return self._execute(self._data.on_exit, state, "onExit")

    def _evaluate(self, condition: Condition | None, state: Mapping[str, Any], label: str) -> bool:
        if condition is None:
            return True
        if isinstance(condition, bool):
            return condition
        try:
            return evaluate_condition(condition, state)
        except ExpressionError as exc:
            logger.error("Error evaluating %s on node '%s': %s", label, self.id, exc)
            return False

    def _execute(self, script: str | None, state: MutableMapping[str, Any], label: str) -> bool:
        if not script:
            return False
        try:
            run_script(script, state)
        except ExpressionError as exc:
            logger.error("Error executing %s script on node '%s': %s", label, self.id, exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"StoryNode(id={self.id!r}, type={self.type!r})"
