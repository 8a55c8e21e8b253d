from __future__ import annotations

import logging

import pytest

from taleweave.services.story_node import StoryNode
from tests.helpers.story_builders import build_story


def _make_node(payload: dict, node_id: str = "start") -> StoryNode:
    nodes = {node_id: payload, "end": {"type": "end"}}
    story = build_story(nodes, start=node_id)
    return StoryNode(story.nodes[node_id])


def test_absent_condition_is_true() -> None:
    node = _make_node({"type": "dialogue", "character": "mara", "text": "Hi.", "nextNode": "end"})

    assert node.evaluate_condition({}) is True


def test_literal_boolean_conditions() -> None:
    node = _make_node({"type": "branch", "condition": False, "nextNode": "end"})

    assert node.evaluate_condition({"anything": 1}) is False


def test_condition_reads_game_state() -> None:
    node = _make_node({"type": "branch", "condition": "state.flag == true", "nextNode": "end"})

    assert node.evaluate_condition({"flag": True}) is True
    assert node.evaluate_condition({"flag": False}) is False


def test_failing_condition_returns_false_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    node = _make_node({"type": "branch", "condition": "state.name - 1 > 0", "nextNode": "end"})

    with caplog.at_level(logging.ERROR, logger="taleweave.services.story_node"):
        result = node.evaluate_condition({"name": "mara"})

    assert result is False
    assert "start" in caplog.text


def test_malformed_condition_returns_false() -> None:
    node = _make_node({"type": "branch", "condition": "state.flag ==", "nextNode": "end"})

    assert node.evaluate_condition({"flag": True}) is False


def test_available_choices_keep_declaration_order() -> None:
    node = _make_node(
        {
            "type": "choice",
            "choices": [
                {"id": "a", "text": "A", "nextNode": "end"},
                {"id": "b", "text": "B", "nextNode": "end", "condition": "state.key"},
                {"id": "c", "text": "C", "nextNode": "end", "condition": True},
                {"id": "d", "text": "D", "nextNode": "end", "condition": "state.broken +"},
            ],
        }
    )

    assert [choice.id for choice in node.get_available_choices({})] == ["a", "c"]
    assert [choice.id for choice in node.get_available_choices({"key": True})] == ["a", "b", "c"]


def test_on_enter_and_on_exit_scripts_mutate_state() -> None:
    node = _make_node(
        {
            "type": "dialogue",
            "character": "mara",
            "text": "Hi.",
            "nextNode": "end",
            "onEnter": "state.visits += 1",
            "onExit": "state.left = true",
        }
    )
    state = {"visits": 1}

    assert node.execute_on_enter(state) is True
    assert node.execute_on_exit(state) is True
    assert state == {"visits": 2, "left": True}


def test_failing_script_leaves_state_untouched() -> None:
    node = _make_node(
        {
            "type": "dialogue",
            "character": "mara",
            "text": "Hi.",
            "nextNode": "end",
            "onEnter": "state.a = 1; state.b = state.name * 2",
        }
    )
    state = {"name": "mara"}

    assert node.execute_on_enter(state) is False
    assert state == {"name": "mara"}


def test_missing_script_reports_not_run() -> None:
    node = _make_node({"type": "dialogue", "character": "mara", "text": "Hi.", "nextNode": "end"})

    assert node.execute_on_enter({}) is False
    assert node.execute_on_exit({}) is False


def test_state_changes_are_copies() -> None:
    node = _make_node(
        {
            "type": "dialogue",
            "character": "mara",
            "text": "Hi.",
            "nextNode": "end",
            "stateChanges": {"inventory": ["lamp"]},
        }
    )

    changes = node.get_state_changes()
    changes["inventory"].append("rope")

    assert node.get_state_changes() == {"inventory": ["lamp"]}


def test_transition_type_defaults_and_tags() -> None:
    plain = _make_node({"type": "scene", "sceneId": "s", "nextNode": "end", "tags": ["intro"]})
    fancy = _make_node(
        {"type": "scene", "sceneId": "s", "nextNode": "end", "metadata": {"transition": "fade"}}
    )

    assert plain.get_transition_type() == "default"
    assert fancy.get_transition_type() == "fade"
    assert plain.has_tag("intro")
    assert not fancy.has_tag("intro")


def test_accessors_and_terminal_flag() -> None:
    node = _make_node(
        {"type": "dialogue", "character": "mara", "mood": "sad", "text": "Bye.", "nextNode": "end"}
    )
    story = build_story({"start": {"type": "end"}})
    end = StoryNode(story.nodes["start"])

    assert (node.id, node.type, node.character, node.mood, node.next_node_id) == (
        "start",
        "dialogue",
        "mara",
        "sad",
        "end",
    )
    assert not node.is_terminal
    assert end.is_terminal
