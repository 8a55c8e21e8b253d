"""Shared CLI rendering helpers."""
from __future__ import annotations

import os
import textwrap
from typing import Callable, Iterable, Sequence

from taleweave.domain.characters import ActionType, CharacterAction
from taleweave.domain.story import StoryChoice
from taleweave.services.dialogue_director import PresentationCue

NameResolver = Callable[[str], str]

_TEXT_WIDTH = 78


def debug_enabled() -> bool:
    """Return True only when TALEWEAVE_DEBUG is explicitly set to '1'."""
    return os.getenv("TALEWEAVE_DEBUG") == "1"


def wrap_text(text: str, width: int = _TEXT_WIDTH, *, indent_continuation: bool = False) -> list[str]:
    """Wrap text on word boundaries; blank input yields a single empty line."""
    if not text or width <= 0:
        return [text] if text else [""]
    wrapped = textwrap.fill(
        text,
        width=width,
        subsequent_indent="  " if indent_continuation else "",
        break_long_words=False,
        break_on_hyphens=False,
    )
    return wrapped.split("\n")


def render_heading(title: str) -> None:
    """Print a consistent section heading."""
    print(f"\n=== {title} ===")


def describe_action(action: CharacterAction, resolve_name: NameResolver) -> str | None:
    """Return a one-line stage direction, or None for actions shown elsewhere (speech)."""
    name = resolve_name(action.character_id)
    position = action.position.value if action.position else None
    if action.type is ActionType.ENTER:
        mood = f", looking {action.emotion.value}" if action.emotion else ""
        return f"{name} enters ({position}{mood})"
    if action.type is ActionType.EXIT:
        return f"{name} leaves"
    if action.type is ActionType.MOVE:
        return f"{name} moves to the {position}"
    if action.type is ActionType.CHANGE_EMOTION and action.emotion:
        return f"{name} looks {action.emotion.value}"
    if action.type is ActionType.ANIMATE:
        animation = getattr(action.animation, "value", action.animation)
        if animation == "lookAt":
            return f"{name} turns toward the {action.custom_params.get('target')}"
        return f"{name} ({animation})"
    return None


def render_cue(cue: PresentationCue, resolve_name: NameResolver) -> None:
    """Print the stage directions and text of one entered node."""
    if debug_enabled():
        print(f"[{cue.node_id}:{cue.node_type}]")
    if cue.background is not None:
        print(f"[Scene: {cue.background.id}]")
    directions = [describe_action(action, resolve_name) for action in [*cue.actions, *cue.contextual_actions]]
    render_bullet_lines(line for line in directions if line)
    if cue.text:
        prefix = f"{cue.speaker.label}: " if cue.speaker is not None else ""
        for line in wrap_text(prefix + cue.text, indent_continuation=bool(prefix)):
            print(line)


def render_choices(choices: Sequence[StoryChoice]) -> None:
    """Display numbered story choices."""
    if not choices:
        return
    render_heading("Choices")
    for idx, choice in enumerate(choices, start=1):
        print(f"{idx}. {choice.text}")


def render_menu(title: str, options: Sequence[str]) -> None:
    """Display a menu section with numbered options."""
    render_heading(title)
    for idx, label in enumerate(options, start=1):
        print(f"{idx}. {label}")


def render_bullet_lines(lines: Iterable[str]) -> None:
    """Print bullet-prefixed lines."""
    for line in lines:
        print(f"- {line}")
