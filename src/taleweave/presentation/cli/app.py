"""Console-driven story player."""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Sequence

from taleweave.core.events import EventBus
from taleweave.core.rng import RNG
from taleweave.data import StoryDataError, get_default_story_path
from taleweave.presentation.cli import config, render
from taleweave.presentation.cli.save_slots import SaveSlotStore
from taleweave.services import (
    CharacterActionGenerator,
    CharacterStateManager,
    DialogueDirector,
    PresentationCue,
    SaveLoadError,
    SaveService,
    StoryError,
    StoryManager,
)

logger = logging.getLogger(__name__)

SessionAction = Literal["continue", "restart", "quit"]
_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class PlayerSession:
    """Wired-up services for one story playthrough."""

    story_manager: StoryManager
    character_states: CharacterStateManager
    director: DialogueDirector
    save_service: SaveService
    cues: List[PresentationCue] = field(default_factory=list)

    def resolve_name(self, character_id: str) -> str:
        profile = self.director.get_speaker_profile(character_id)
        return profile.label if profile is not None else character_id


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="taleweave", description="Play a branching story in the terminal.")
    parser.add_argument("--story", type=Path, default=None, help="Story file (.yaml, .yml or .json).")
    parser.add_argument("--seed", type=int, default=None, help="Seed for character heuristics.")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured log level.",
    )
    parser.add_argument("--save-dir", type=Path, default=None, help="Directory for save slots.")
    return parser.parse_args(argv)


def build_session(story_path: Path | str, seed: int | None = None) -> PlayerSession:
    """Construct the services around a shared event bus and load the story."""
    events = EventBus()
    story_manager = StoryManager(events=events)
    character_states = CharacterStateManager(events=events)
    director = DialogueDirector(story_manager, character_states, CharacterActionGenerator(RNG(seed)))
    session = PlayerSession(
        story_manager=story_manager,
        character_states=character_states,
        director=director,
        save_service=SaveService(story_manager, character_states),
    )
    events.subscribe(PresentationCue, session.cues.append)
    story_manager.load_from_file(story_path)
    return session


def main(argv: Sequence[str] | None = None) -> int:
    """Start the interactive CLI session."""
    args = parse_args(argv)
    options = config.load_config()
    logging.basicConfig(level=args.log_level or options["log_level"], format=_LOG_FORMAT)
    story_path = args.story or get_default_story_path()
    try:
        session = build_session(story_path, args.seed)
    except StoryDataError as exc:
        print(f"Could not load story: {exc}")
        return 1
    story = session.story_manager.story
    assert story is not None
    print(f"=== {story.title} ===")
    if story.author:
        print(f"by {story.author}")
    run_session(
        session,
        slot_store=SaveSlotStore(args.save_dir),
        text_mode=options["text_display_mode"],
    )
    print("Goodbye!")
    return 0


def run_session(session: PlayerSession, *, slot_store: SaveSlotStore, text_mode: str = "instant") -> None:
    """Drive the story until the player quits."""
    session.story_manager.start()
    while True:
        _flush_cues(session, text_mode)
        action = _prompt_turn(session, slot_store)
        if action == "quit":
            return
        if action == "restart":
            session.story_manager.reset()


def _flush_cues(session: PlayerSession, text_mode: str) -> None:
    cues = list(session.cues)
    session.cues.clear()
    for index, cue in enumerate(cues):
        render.render_cue(cue, session.resolve_name)
        if text_mode == "step" and index < len(cues) - 1:
            input("...")


def _prompt_turn(session: PlayerSession, slot_store: SaveSlotStore) -> SessionAction:
    manager = session.story_manager
    node = manager.current_node
    choices = manager.get_available_choices()
    if node is not None and node.type == "end":
        print("\n--- The End ---")
        prompt = "[r]estart, [l]oad or [q]uit: "
    elif choices:
        render.render_choices(choices)
        prompt = "Select a choice, or [s]ave/[l]oad/[q]uit: "
    elif node is not None and node.next_node_id:
        prompt = "\n[Enter] continue, [s]ave/[l]oad/[r]estart/[q]uit: "
    else:
        print("\n(The story cannot continue from here.)")
        prompt = "[r]estart, [l]oad or [q]uit: "

    while True:
        raw = input(prompt).strip().lower()
        if raw == "q":
            return "quit"
        if raw == "r":
            return "restart"
        if raw == "s":
            _save(session, slot_store)
            continue
        if raw == "l":
            if _load(session, slot_store):
                return "continue"
            continue
        if choices:
            index = _parse_choice(raw, len(choices))
            if index is None:
                print(f"Please enter a value between 1 and {len(choices)}.")
                continue
            session.director.select_choice(index)
            return "continue"
        if raw == "" and node is not None and node.next_node_id and node.type != "end":
            try:
                session.director.continue_dialogue()
            except StoryError as exc:
                print(f"Cannot continue: {exc}")
            return "continue"
        print("Unknown command.")


def _parse_choice(raw: str, choice_count: int) -> int | None:
    try:
        index = int(raw) - 1
    except ValueError:
        return None
    if 0 <= index < choice_count:
        return index
    return None


def _prompt_slot(slot_store: SaveSlotStore, title: str) -> int | None:
    slots = slot_store.list_slots()
    render.render_menu(title, [slot.describe() for slot in slots])
    raw = input("Slot number (blank to cancel): ").strip()
    if not raw:
        return None
    index = _parse_choice(raw, len(slots))
    if index is None:
        print("Invalid slot.")
        return None
    return index + 1


def _save(session: PlayerSession, slot_store: SaveSlotStore) -> None:
    slot = _prompt_slot(slot_store, "Save Game")
    if slot is None:
        return
    try:
        payload = session.save_service.serialize(name=f"Slot {slot}")
    except SaveLoadError as exc:
        print(f"Save failed: {exc}")
        return
    slot_store.write_slot(slot, payload)
    print(f"Saved to slot {slot}.")


def _load(session: PlayerSession, slot_store: SaveSlotStore) -> bool:
    slot = _prompt_slot(slot_store, "Load Game")
    if slot is None:
        return False
    try:
        summary = session.save_service.restore(slot_store.read_slot(slot))
    except SaveLoadError as exc:
        print(f"Load failed: {exc}")
        return False
    # Drop cues emitted by the restore itself.
    session.cues.clear()
    logger.info("Restored '%s' at node '%s'", summary.name, summary.current_node_id)
    node = session.story_manager.current_node
    if node is not None and node.text:
        speaker = session.resolve_name(node.character) if node.character else None
        print(f"{speaker}: {node.text}" if speaker else node.text)
    return True
