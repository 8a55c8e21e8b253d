from __future__ import annotations

import logging

import pytest

from taleweave.core.events import EventBus
from taleweave.domain.characters import (
    ActionType,
    CharacterAction,
    CharacterAnimation,
    CharacterEmotion,
    CharacterPosition,
    CharacterState,
)
from taleweave.services.character_state_manager import (
    CharacterEmotionChangedEvent,
    CharacterInitializedEvent,
    CharacterStateManager,
    CharacterStatesLoadedEvent,
    CharacterUpdatedEvent,
)
from tests.helpers.story_builders import EventRecorder


def _make_manager() -> tuple[CharacterStateManager, EventRecorder]:
    bus = EventBus()
    manager = CharacterStateManager(events=bus)
    return manager, EventRecorder(bus)


def test_initialize_creates_default_state_once() -> None:
    manager, recorder = _make_manager()

    created = manager.initialize_character("mara")
    again = manager.initialize_character("mara")

    assert created == again
    assert created.position is CharacterPosition.OFF_SCREEN_LEFT
    assert created.current_emotion is CharacterEmotion.NEUTRAL
    assert not created.is_visible
    assert len(recorder.of_type(CharacterInitializedEvent)) == 1


def test_initialize_with_explicit_state_replaces_it() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    manager.initialize_character("mara", CharacterState(id="other", is_visible=True))

    state = manager.get_character_state("mara")
    assert state is not None
    assert state.id == "mara"
    assert state.is_visible


def test_returned_states_are_copies() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    state = manager.get_character_state("mara")
    assert state is not None
    state.is_visible = True
    state.custom_state["flags"]["brave"] = True

    fresh = manager.get_character_state("mara")
    assert fresh is not None
    assert not fresh.is_visible
    assert fresh.custom_state["flags"] == {}


def test_update_accepts_aliases_and_notifies() -> None:
    manager, recorder = _make_manager()
    manager.initialize_character("mara")

    assert manager.update_character_state("mara", position="right", isVisible=True, currentEmotion="happy")

    state = manager.get_character_state("mara")
    assert state is not None
    assert (state.position, state.is_visible, state.current_emotion) == (
        CharacterPosition.RIGHT,
        True,
        CharacterEmotion.HAPPY,
    )
    event = recorder.of_type(CharacterUpdatedEvent)[0]
    assert event.updates["position"] is CharacterPosition.RIGHT


def test_empty_update_keeps_state_and_still_notifies() -> None:
    manager, recorder = _make_manager()
    manager.initialize_character("mara")
    before = manager.get_character_state("mara")

    assert manager.update_character_state("mara")

    assert manager.get_character_state("mara") == before
    assert len(recorder.of_type(CharacterUpdatedEvent)) == 1


def test_update_rejects_unknown_fields_and_bad_values() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    with pytest.raises(ValueError):
        manager.update_character_state("mara", hat="tall")
    with pytest.raises(ValueError):
        manager.update_character_state("mara", position="upstage")
    with pytest.raises(ValueError):
        manager.update_character_state("mara", is_visible="yes")


def test_update_of_unknown_character_warns(caplog: pytest.LogCaptureFixture) -> None:
    manager, recorder = _make_manager()

    with caplog.at_level(logging.WARNING):
        result = manager.update_character_state("ghost", is_visible=True)

    assert result is False
    assert "ghost" in caplog.text
    assert recorder.events == []


def test_set_character_emotion_emits_specific_event() -> None:
    manager, recorder = _make_manager()
    manager.initialize_character("mara")

    manager.set_character_emotion("mara", "worried")

    assert recorder.of_type(CharacterEmotionChangedEvent)[0].emotion is CharacterEmotion.WORRIED
    assert manager.get_character_state("mara").current_emotion is CharacterEmotion.WORRIED


def test_set_state_switches_emotion_or_exclusive_flag() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    manager.set_state("mara", "sad")
    manager.set_state("mara", "hiding")
    manager.set_state("mara", "searching")

    state = manager.get_character_state("mara")
    assert state is not None
    assert state.current_emotion is CharacterEmotion.SAD
    assert state.custom_state["flags"] == {"state_hiding": False, "state_searching": True}


def test_register_state_records_flag() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    manager.register_state("mara", "met_tobin")
    manager.register_state("mara", "trust", 3)

    assert manager.get_character_state("mara").custom_state["flags"] == {"met_tobin": True, "trust": 3}


def test_apply_action_updates_presentation_state() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")

    manager.apply_action(
        CharacterAction(
            type=ActionType.ENTER,
            character_id="mara",
            position=CharacterPosition.LEFT,
            emotion=CharacterEmotion.HAPPY,
        )
    )
    entered = manager.get_character_state("mara")
    manager.apply_action(CharacterAction(type=ActionType.SPEAK, character_id="mara", text="Hi."))
    speaking = manager.get_character_state("mara")
    manager.apply_action(CharacterAction(type=ActionType.EXIT, character_id="mara"))
    gone = manager.get_character_state("mara")

    assert entered is not None and speaking is not None and gone is not None
    assert (entered.is_visible, entered.position, entered.current_animation) == (
        True,
        CharacterPosition.LEFT,
        CharacterAnimation.WALK_IN,
    )
    assert entered.current_emotion is CharacterEmotion.HAPPY
    assert speaking.current_animation is CharacterAnimation.TALK
    assert (gone.is_visible, gone.position, gone.current_animation) == (
        False,
        CharacterPosition.OFF_SCREEN_LEFT,
        CharacterAnimation.WALK_OUT,
    )


def test_apply_action_for_unknown_character_is_skipped() -> None:
    manager, _ = _make_manager()

    assert manager.apply_action(CharacterAction(type=ActionType.MOVE, character_id="ghost")) is False


@pytest.mark.parametrize(
    ("path", "op", "value", "expected"),
    [
        ("isVisible", "==", True, True),
        ("position", "==", "right", True),
        ("current_emotion", "!=", "sad", True),
        ("customState.flags.trust", ">=", 3, True),
        ("customState.flags.trust", "<", 3, False),
        ("customState.flags.items", "contains", "lamp", True),
        ("customState.flags.missing", "==", None, False),
        ("customState.flags.trust", ">", "high", False),
        ("nickname", "==", "M", False),
        ("isVisible", "~=", True, False),
    ],
)
def test_check_character_condition(path: str, op: str, value: object, expected: bool) -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")
    manager.update_character_state("mara", position="right", is_visible=True)
    manager.register_state("mara", "trust", 3)
    manager.register_state("mara", "items", ["lamp"])

    assert manager.check_character_condition("mara", path, op, value) is expected


def test_save_round_trip_restores_states() -> None:
    manager, _ = _make_manager()
    manager.initialize_character("mara")
    manager.update_character_state("mara", position="center", is_visible=True, current_emotion="excited")
    manager.register_state("mara", "trust", 2)
    exported = manager.export_for_save()

    restored = CharacterStateManager()
    restored.initialize_character("stale")
    restored.load_from_save_data(exported)

    assert restored.get_all_character_states() == manager.get_all_character_states()
    assert not restored.has_character("stale")
    assert exported["mara"]["position"] == "center"
    assert exported["mara"]["currentEmotion"] == "excited"


def test_load_from_save_data_is_atomic() -> None:
    manager, recorder = _make_manager()
    manager.initialize_character("mara")

    with pytest.raises(ValueError):
        manager.load_from_save_data(
            {
                "tobin": {"position": "left"},
                "mara": {"position": "nowhere"},
            }
        )

    assert manager.has_character("mara")
    assert not manager.has_character("tobin")
    assert recorder.of_type(CharacterStatesLoadedEvent) == []


def test_remove_clear_and_reset() -> None:
    manager, recorder = _make_manager()
    manager.initialize_character("mara")
    manager.initialize_character("tobin")

    manager.remove_character_state("mara")
    assert not manager.has_character("mara")

    manager.reset()
    assert manager.get_all_character_states() == {}
    assert recorder.names()[-2:] == ["CharacterStatesClearedEvent", "CharacterStatesResetEvent"]
