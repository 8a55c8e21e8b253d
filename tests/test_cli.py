from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from taleweave.data import get_default_story_path
from taleweave.presentation.cli import app, config


@pytest.fixture(autouse=True)
def _isolated_user_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_user_data_dir", lambda: tmp_path / "user")


def _feed_input(monkeypatch: pytest.MonkeyPatch, responses: list[str]) -> None:
    iterator: Iterator[str] = iter(responses)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(iterator))


def _run(tmp_path: Path) -> int:
    return app.main(
        ["--story", str(get_default_story_path()), "--save-dir", str(tmp_path / "saves"), "--seed", "1"]
    )


def test_parse_args_defaults() -> None:
    args = app.parse_args([])

    assert args.story is None
    assert args.seed is None
    assert args.log_level is None


def test_full_playthrough(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    _feed_input(monkeypatch, ["", "", "1", "", "", "q"])

    assert _run(tmp_path) == 0

    out = capsys.readouterr().out
    assert "=== The Keeper's Light ===" in out
    assert "Keeper Mara: You came!" in out
    assert "1. Climb the stairs and trim the wick." in out
    assert "--- The End ---" in out
    assert out.rstrip().endswith("Goodbye!")


def test_invalid_choice_is_reprompted(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    _feed_input(monkeypatch, ["", "", "9", "x", "2", "q"])

    assert _run(tmp_path) == 0

    out = capsys.readouterr().out
    assert "Please enter a value between 1 and 2." in out
    assert "Careful, it spills easily!" in out


def test_save_then_load(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    _feed_input(monkeypatch, ["s", "1", "", "l", "1", "q"])

    assert _run(tmp_path) == 0

    out = capsys.readouterr().out
    assert "Saved to slot 1." in out
    assert (tmp_path / "saves" / "slot_1.json").exists()
    assert out.count("You came!") == 2


def test_loading_an_empty_slot_reports_failure(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    _feed_input(monkeypatch, ["l", "2", "q"])

    assert _run(tmp_path) == 0

    assert "Load failed: Save slot 2 is empty." in capsys.readouterr().out


def test_restart_from_the_end(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    _feed_input(monkeypatch, ["", "", "1", "", "", "r", "q"])

    assert _run(tmp_path) == 0

    assert capsys.readouterr().out.count("You came!") == 2


def test_missing_story_file_exits_with_error(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    assert app.main(["--story", str(tmp_path / "absent.yaml")]) == 1

    assert "Could not load story" in capsys.readouterr().out
