"""Story graph executor."""
from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Mapping, MutableMapping, Sequence

from taleweave.core.events import Event, EventBus
from taleweave.data.story_parser import StoryParser
from taleweave.domain.story import Story, StoryChoice
from taleweave.services.errors import (
    CannotProgressError,
    InvalidChoiceError,
    NodeNotFoundError,
    StoryError,
    StoryNotLoadedError,
)
from taleweave.services.interfaces import NullSceneSwitcher, SceneSwitcher
from taleweave.services.story_node import StoryNode

logger = logging.getLogger(__name__)


class StoryStatus(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(slots=True)
class StoryEvent(Event):
    """Base class for story manager notifications."""


@dataclass(slots=True)
class StoryLoadedEvent(StoryEvent):
    story: Story


@dataclass(slots=True)
class StoryStartedEvent(StoryEvent):
    story: Story


@dataclass(slots=True)
class StoryResetEvent(StoryEvent):
    story: Story


@dataclass(slots=True)
class StoryResumedEvent(StoryEvent):
    node_id: str


@dataclass(slots=True)
class StoryJumpedEvent(StoryEvent):
    node_id: str
    preserve_history: bool


@dataclass(slots=True)
class NodeEnteredEvent(StoryEvent):
    node: StoryNode
    previous: StoryNode | None


@dataclass(slots=True)
class NodeExitedEvent(StoryEvent):
    node: StoryNode


@dataclass(slots=True)
class ChoiceMadeEvent(StoryEvent):
    choice: StoryChoice
    index: int


@dataclass(slots=True)
class StateChangedEvent(StoryEvent):
    """Carries copies; mutating them does not affect the manager."""

    state: Dict[str, Any]
    previous: Dict[str, Any]
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GameStateUndoneEvent(StateChangedEvent):
    """The game state was rolled back to the previous snapshot."""


Operation = Callable[[], None]

DEFAULT_MAX_STATE_HISTORY = 50


class StoryManager:
    """Drives a loaded story: navigation, choices, game state and save/resume hooks.

    Transitions are serialized. A public operation requested while another transition is
    running (typically by an event handler) is queued, as is the auto-progression of scene and
    branch nodes. With ``auto_drain`` the queue is drained as soon as the outermost operation
    returns; otherwise the host drains it with ``process_pending()``.
    """

    def __init__(
        self,
        *,
        events: EventBus | None = None,
        scene_switcher: SceneSwitcher | None = None,
        parser: StoryParser | None = None,
        auto_drain: bool = True,
        max_state_history: int = DEFAULT_MAX_STATE_HISTORY,
    ) -> None:
        self._events = events or EventBus()
        self._scene_switcher = scene_switcher or NullSceneSwitcher()
        self._parser = parser or StoryParser()
        self._auto_drain = auto_drain
        self._story: Story | None = None
        self._nodes: Dict[str, StoryNode] = {}
        self._current: StoryNode | None = None
        self._game_state: Dict[str, Any] = {}
        self._history: List[str] = []
        self._pending: Deque[Operation] = deque()
        self._busy = False
        self._entries = 0
        self._state_history: Deque[Dict[str, Any]] = deque(maxlen=_require_history_size(max_state_history))

    # --- loading ---------------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def story(self) -> Story | None:
        return self._story

    def load_story(self, story: Story) -> None:
        """Install an already parsed story and reset all runtime state."""
        if self._busy:
            raise StoryError("Cannot load a story while a transition is in progress.")
        self._story = story
        self._nodes = {node_id: StoryNode(data) for node_id, data in story.nodes.items()}
        self._current = None
        self._game_state = copy.deepcopy(dict(story.initial_state))
        self._history = []
        self._pending.clear()
        self._state_history.clear()
        logger.info("Loaded story '%s' (%d nodes)", story.id, len(self._nodes))
        self._events.emit(StoryLoadedEvent(story=story))

    def load_from_json(self, raw: str) -> Story:
        story = self._parser.parse(raw, "json")
        self.load_story(story)
        return story

    def load_from_yaml(self, raw: str) -> Story:
        story = self._parser.parse(raw, "yaml")
        self.load_story(story)
        return story

    def load_from_file(self, path: Path | str) -> Story:
        story = self._parser.parse_file(path)
        self.load_story(story)
        return story

    # --- queries ---------------------------------------------------------------------------

    @property
    def status(self) -> StoryStatus:
        if self._story is None:
            return StoryStatus.IDLE
        if self._current is None:
            return StoryStatus.LOADED
        if self._current.is_terminal:
            return StoryStatus.ENDED
        return StoryStatus.ACTIVE

    @property
    def current_node(self) -> StoryNode | None:
        return self._current

    @property
    def current_node_id(self) -> str | None:
        return self._current.id if self._current else None

    @property
    def has_pending_transitions(self) -> bool:
        return bool(self._pending)

    def get_game_state(self) -> Dict[str, Any]:
        """Return a deep copy of the game state."""
        return copy.deepcopy(self._game_state)

    def get_history(self) -> List[str]:
        return list(self._history)

    def get_visited_nodes(self) -> List[str]:
        return list(self._history)

    def get_completed_branches(self) -> List[str]:
        """Return branch node ids that appear in the history, in story order."""
        visited = set(self._history)
        return [node_id for node_id, node in self._nodes.items() if node.type == "branch" and node_id in visited]

    def get_node(self, node_id: str) -> StoryNode | None:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_all_nodes(self) -> Dict[str, StoryNode]:
        return dict(self._nodes)

    def get_nodes_by_type(self, node_type: str) -> List[StoryNode]:
        return [node for node in self._nodes.values() if node.type == node_type]

    def get_available_choices(self) -> List[StoryChoice]:
        """Return the choices currently offered, or an empty list off a choice node."""
        if self._current is None or self._current.type != "choice":
            return []
        return self._current.get_available_choices(self._game_state)

    # --- state -----------------------------------------------------------------------------

    def update_game_state(self, changes: Mapping[str, Any], record_history: bool = True) -> None:
        """Shallow-merge ``changes`` into the game state and emit a change notification.

        Unless ``record_history`` is False, the state before a non-empty update is kept
        as an undo snapshot.
        """
        previous = copy.deepcopy(self._game_state)
        applied = copy.deepcopy(dict(changes))
        if applied and record_history:
            self._push_state_history(previous)
        self._game_state.update(applied)
        self._events.emit(
            StateChangedEvent(state=copy.deepcopy(self._game_state), previous=previous, changes=applied)
        )

    def restore_game_state(self, state: Mapping[str, Any]) -> None:
        """Replace the whole game state, used when restoring a save."""
        previous = copy.deepcopy(self._game_state)
        self._push_state_history(previous)
        self._game_state = copy.deepcopy(dict(state))
        self._events.emit(
            StateChangedEvent(
                state=copy.deepcopy(self._game_state),
                previous=previous,
                changes=copy.deepcopy(self._game_state),
            )
        )

    @property
    def max_state_history(self) -> int:
        return self._state_history.maxlen or 0

    def set_max_state_history(self, size: int) -> None:
        """Bound the undo stack, dropping the oldest snapshots beyond ``size``."""
        self._state_history = deque(self._state_history, maxlen=_require_history_size(size))

    def can_undo(self) -> bool:
        return bool(self._state_history)

    def undo_game_state(self) -> bool:
        """Roll the game state back one change; returns False when there is nothing to undo.

        Only the game state is rolled back; the current node and history stay where they are.
        """
        if not self._state_history:
            return False
        previous = copy.deepcopy(self._game_state)
        self._game_state = self._state_history.pop()
        changes = {
            key: copy.deepcopy(value)
            for key, value in self._game_state.items()
            if key not in previous or previous[key] != value
        }
        self._events.emit(
            GameStateUndoneEvent(state=copy.deepcopy(self._game_state), previous=previous, changes=changes)
        )
        return True

    def _push_state_history(self, snapshot: Dict[str, Any]) -> None:
        if self._state_history.maxlen:
            self._state_history.append(copy.deepcopy(snapshot))

    # --- transitions -----------------------------------------------------------------------

    def start(self) -> None:
        """Navigate to the start node. Raises StoryNotLoadedError without a story."""
        self._require_story()
        self._run(self._start)

    def navigate_to_node(self, node_id: str) -> None:
        self._require_story()
        self._require_node(node_id)
        self._run(lambda: self._navigate(node_id))

    def make_choice(self, index: int) -> None:
        """Select one of the currently available choices by position."""
        self._require_story()
        self._run(lambda: self._make_choice(index))

    def progress(self) -> None:
        """Follow ``nextNode`` from the current non-choice, non-end node."""
        self._require_story()
        self._run(self._progress)

    def jump_to_node(self, node_id: str, preserve_history: bool = False) -> None:
        self._require_story()
        self._require_node(node_id)
        self._run(lambda: self._jump(node_id, preserve_history))

    def reset(self) -> None:
        """Restore the initial state and start over from the start node."""
        self._require_story()
        self._pending.clear()
        self._run(self._reset)

    def load_progress(
        self,
        current_node_id: str | None,
        visited_nodes: Sequence[str] = (),
        completed_branches: Sequence[str] = (),
        game_state: Mapping[str, Any] | None = None,
    ) -> None:
        """Resume at a saved node with the saved history.

        With ``game_state`` the saved state is installed first and the node is re-entered
        without running its stateChanges/onEnter again, so auto-progression is decided
        against the saved values. Without it the game state is reset to the story's initial
        state and the node is entered normally; effects of earlier nodes are never replayed.
        Completed branches are derived from the history and only accepted for save-format
        compatibility. An unknown node id restarts the story from the start node.
        """
        self._require_story()
        self._pending.clear()
        logger.debug("Restoring progress at %r (%d completed branches saved)", current_node_id, len(completed_branches))
        saved_state = copy.deepcopy(dict(game_state)) if game_state is not None else None
        self._run(lambda: self._load_progress(current_node_id, list(visited_nodes), saved_state))

    def process_pending(self) -> int:
        """Run queued transitions until the queue is empty; returns how many ran."""
        if self._busy:
            return 0
        processed = 0
        while self._pending:
            operation = self._pending.popleft()
            self._execute(operation)
            processed += 1
        return processed

    def _run(self, operation: Operation) -> None:
        if self._busy:
            self._pending.append(operation)
            return
        self._execute(operation)
        if self._auto_drain:
            self.process_pending()

    def _execute(self, operation: Operation) -> None:
        self._busy = True
        try:
            operation()
        except Exception:
            self._pending.clear()
            raise
        finally:
            self._busy = False

    def _start(self) -> None:
        story = self._require_story()
        self._navigate(story.start_node)
        self._events.emit(StoryStartedEvent(story=story))

    def _navigate(self, node_id: str) -> None:
        target = self._require_node(node_id)
        previous = self._current
        if previous is not None:
            self._run_script(previous.execute_on_exit)
            self._events.emit(NodeExitedEvent(node=previous))

        self._set_current(target)
        state_changes = target.get_state_changes()
        if state_changes:
            self.update_game_state(state_changes)
        self._run_script(target.execute_on_enter)
        logger.debug("Entered node '%s' (%s)", target.id, target.type)
        self._events.emit(NodeEnteredEvent(node=target, previous=previous))
        self._schedule_auto_progress(target)

    def _set_current(self, node: StoryNode) -> None:
        self._current = node
        self._history.append(node.id)
        self._entries += 1

    def _schedule_auto_progress(self, node: StoryNode) -> None:
        next_node_id = node.next_node_id
        if node.type == "scene":
            scene_id = node.scene_id
            if scene_id and self._scene_switcher.has_scene(scene_id):
                transition = node.get_transition_type()
                self._queue_auto_progress(node, lambda: self._scene_switcher.switch_to(scene_id, transition))
            elif next_node_id:
                self._queue_auto_progress(node, lambda: self._navigate(next_node_id))
        elif node.type == "branch":
            if node.evaluate_condition(self._game_state) and next_node_id:
                self._queue_auto_progress(node, lambda: self._navigate(next_node_id))
            else:
                logger.debug("Branch '%s' condition is false; waiting for progress()", node.id)
        elif node.type == "end":
            logger.info("Story reached end node '%s'", node.id)

    def _queue_auto_progress(self, node: StoryNode, step: Operation) -> None:
        """Queue ``step`` to run only if ``node`` is still the node entered last."""
        entry = self._entries

        def follow() -> None:
            if self._entries != entry:
                logger.debug("Dropping auto-progression from '%s'; the story has moved on", node.id)
                return
            step()

        self._pending.append(follow)

    def _make_choice(self, index: int) -> None:
        node = self._current
        if node is None or node.type != "choice":
            raise InvalidChoiceError("Cannot make a choice: current node is not a choice node.")
        available = node.get_available_choices(self._game_state)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(available):
            raise InvalidChoiceError(f"Invalid choice index {index!r} for node '{node.id}'.")
        choice = available[index]
        if choice.state_changes:
            self.update_game_state(choice.state_changes)
        self._events.emit(ChoiceMadeEvent(choice=choice, index=index))
        self._navigate(choice.next_node)

    def _progress(self) -> None:
        node = self._current
        if node is None:
            raise CannotProgressError(CannotProgressError.NO_CURRENT_NODE)
        if node.type == "choice":
            raise CannotProgressError(CannotProgressError.IS_CHOICE_NODE, node.id)
        if node.type == "end":
            raise CannotProgressError(CannotProgressError.IS_END_NODE, node.id)
        if not node.next_node_id:
            raise CannotProgressError(CannotProgressError.NO_NEXT_NODE, node.id)
        self._navigate(node.next_node_id)

    def _jump(self, node_id: str, preserve_history: bool) -> None:
        if not preserve_history:
            self._history = []
        self._navigate(node_id)
        self._events.emit(StoryJumpedEvent(node_id=node_id, preserve_history=preserve_history))

    def _reset(self) -> None:
        story = self._require_story()
        self._push_state_history(self._game_state)
        self._game_state = copy.deepcopy(dict(story.initial_state))
        self._history = []
        self._current = None
        self._events.emit(StoryResetEvent(story=story))
        self._start()

    def _load_progress(
        self,
        current_node_id: str | None,
        visited_nodes: List[str],
        game_state: Dict[str, Any] | None,
    ) -> None:
        story = self._require_story()
        self._current = None
        if current_node_id and current_node_id in self._nodes:
            self._history = visited_nodes
            if game_state is None:
                self._game_state = copy.deepcopy(dict(story.initial_state))
                self._navigate(current_node_id)
            else:
                self.restore_game_state(game_state)
                self._resume_at(self._nodes[current_node_id])
            self._events.emit(StoryResumedEvent(node_id=current_node_id))
            return
        logger.warning("Saved node %r not found in story '%s'; restarting", current_node_id, story.id)
        self._game_state = copy.deepcopy(dict(story.initial_state))
        self._history = []
        self._start()

    def _resume_at(self, node: StoryNode) -> None:
        # Entry effects are already part of the saved game state.
        self._set_current(node)
        logger.debug("Resumed at node '%s' (%s)", node.id, node.type)
        self._events.emit(NodeEnteredEvent(node=node, previous=None))
        self._schedule_auto_progress(node)

    def _run_script(self, script: Callable[[MutableMapping[str, Any]], bool]) -> None:
        previous = copy.deepcopy(self._game_state)
        if not script(self._game_state):
            return
        changes = {
            key: copy.deepcopy(value)
            for key, value in self._game_state.items()
            if key not in previous or previous[key] != value
        }
        if changes:
            self._push_state_history(previous)
            self._events.emit(
                StateChangedEvent(state=copy.deepcopy(self._game_state), previous=previous, changes=changes)
            )

    def _require_story(self) -> Story:
        if self._story is None:
            raise StoryNotLoadedError("No story loaded.")
        return self._story

    def _require_node(self, node_id: str) -> StoryNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node


def _require_history_size(size: int) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValueError(f"State history size must be a non-negative integer, got {size!r}.")
    return size
