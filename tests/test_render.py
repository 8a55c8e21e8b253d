from __future__ import annotations

from taleweave.domain.characters import (
    ActionType,
    CharacterAction,
    CharacterAnimation,
    CharacterEmotion,
    CharacterPosition,
)
from taleweave.domain.story import StoryBackground
from taleweave.presentation.cli import render
from taleweave.services.dialogue_director import PresentationCue, SpeakerProfile


def _names(character_id: str) -> str:
    return {"mara": "Keeper Mara"}.get(character_id, character_id)


def test_wrap_text_breaks_on_words() -> None:
    lines = render.wrap_text("one two three four", width=9)

    assert lines == ["one two", "three", "four"]


def test_wrap_text_blank_input_yields_single_line() -> None:
    assert render.wrap_text("") == [""]


def test_wrap_text_indents_continuation_lines() -> None:
    lines = render.wrap_text("alpha beta gamma", width=11, indent_continuation=True)

    assert lines[0] == "alpha beta"
    assert lines[1] == "  gamma"


def test_debug_enabled_requires_explicit_flag(monkeypatch) -> None:
    monkeypatch.delenv("TALEWEAVE_DEBUG", raising=False)
    assert render.debug_enabled() is False

    monkeypatch.setenv("TALEWEAVE_DEBUG", "true")
    assert render.debug_enabled() is False

    monkeypatch.setenv("TALEWEAVE_DEBUG", "1")
    assert render.debug_enabled() is True


def test_describe_action_stage_directions() -> None:
    enter = CharacterAction(
        type=ActionType.ENTER,
        character_id="mara",
        position=CharacterPosition.LEFT,
        emotion=CharacterEmotion.WORRIED,
    )
    move = CharacterAction(type=ActionType.MOVE, character_id="tobin", position=CharacterPosition.RIGHT)
    leave = CharacterAction(type=ActionType.EXIT, character_id="mara")
    emotion = CharacterAction(type=ActionType.CHANGE_EMOTION, character_id="mara", emotion=CharacterEmotion.HAPPY)
    look = CharacterAction(
        type=ActionType.ANIMATE,
        character_id="tobin",
        animation="lookAt",
        custom_params={"target": "center"},
    )
    emote = CharacterAction(type=ActionType.ANIMATE, character_id="tobin", animation=CharacterAnimation.EMOTE)

    assert render.describe_action(enter, _names) == "Keeper Mara enters (left, looking worried)"
    assert render.describe_action(move, _names) == "tobin moves to the right"
    assert render.describe_action(leave, _names) == "Keeper Mara leaves"
    assert render.describe_action(emotion, _names) == "Keeper Mara looks happy"
    assert render.describe_action(look, _names) == "tobin turns toward the center"
    assert render.describe_action(emote, _names) == "tobin (emote)"


def test_describe_action_skips_speech() -> None:
    speak = CharacterAction(type=ActionType.SPEAK, character_id="mara", text="Hello")

    assert render.describe_action(speak, _names) is None


def test_render_cue_prints_scene_directions_and_speaker(capsys, monkeypatch) -> None:
    monkeypatch.delenv("TALEWEAVE_DEBUG", raising=False)
    cue = PresentationCue(
        node_id="greeting",
        node_type="dialogue",
        speaker=SpeakerProfile(id="mara", name="Mara", display_name="Keeper Mara"),
        text="You came!",
        actions=[CharacterAction(type=ActionType.EXIT, character_id="tobin")],
        background=StoryBackground(id="cliffs_night"),
    )

    render.render_cue(cue, _names)

    output = capsys.readouterr().out.splitlines()
    assert output == ["[Scene: cliffs_night]", "- tobin leaves", "Keeper Mara: You came!"]


def test_render_cue_debug_prefix(capsys, monkeypatch) -> None:
    monkeypatch.setenv("TALEWEAVE_DEBUG", "1")
    cue = PresentationCue(node_id="ending", node_type="end", text="Fin.")

    render.render_cue(cue, _names)

    output = capsys.readouterr().out.splitlines()
    assert output == ["[ending:end]", "Fin."]


def test_render_menu_numbers_options(capsys) -> None:
    render.render_menu("Load Game", ["Slot 1", "Slot 2"])

    output = capsys.readouterr().out
    assert "=== Load Game ===" in output
    assert "1. Slot 1" in output
    assert "2. Slot 2" in output
