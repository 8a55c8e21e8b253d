from __future__ import annotations

import pytest

from taleweave.core.expressions import (
    ExpressionError,
    compile_condition,
    compile_script,
    evaluate_condition,
    run_script,
)


@pytest.mark.parametrize(
    ("source", "state", "expected"),
    [
        ("state.trust >= 3 && !state.betrayed", {"trust": 3, "betrayed": False}, True),
        ("state.trust >= 3 && !state.betrayed", {"trust": 3, "betrayed": True}, False),
        ("state.trust > 5 || state.friend == 'mara'", {"trust": 0, "friend": "mara"}, True),
        ("trust > 2", {"trust": 4}, True),
        ("state.missing == null", {}, True),
        ("state.flags.seen", {"flags": {"seen": True}}, True),
        ("state.flags.seen", {"flags": {}}, False),
        ("state.items contains 'key'", {"items": ["rope", "key"]}, True),
        ("'lamp' in state.items", {"items": ["rope"]}, False),
        ("state.items.length == 2", {"items": ["a", "b"]}, True),
        ("not state.done and (state.oil + 1) * 2 >= 8", {"done": False, "oil": 3}, True),
        ("-state.debt < 0", {"debt": 2}, True),
        ("state.items[0] == 'rope'", {"items": ["rope"]}, True),
        ("true", {}, True),
    ],
)
def test_evaluate_condition(source: str, state: dict, expected: bool) -> None:
    assert evaluate_condition(source, state) is expected


def test_booleans_are_not_numbers() -> None:
    assert evaluate_condition("state.lit == 1", {"lit": True}) is False
    assert evaluate_condition("state.lit == true", {"lit": True}) is True


def test_condition_does_not_mutate_state() -> None:
    state = {"trust": 1, "flags": {"seen": True}}
    evaluate_condition("state.trust > 0 && state.flags.seen", state)

    assert state == {"trust": 1, "flags": {"seen": True}}


@pytest.mark.parametrize("source", ["", "state.trust >", "state.trust @ 3", "(state.a", "state.a == 1 )"])
def test_malformed_condition_raises(source: str) -> None:
    with pytest.raises(ExpressionError):
        compile_condition(source)


@pytest.mark.parametrize(
    ("source", "state"),
    [
        ("state.name - 1 > 0", {"name": "mara"}),
        ("state.count / 0 > 1", {"count": 3}),
        ("state.count < 'many'", {"count": 3}),
    ],
)
def test_evaluation_errors_raise_expression_error(source: str, state: dict) -> None:
    with pytest.raises(ExpressionError):
        evaluate_condition(source, state)


def test_script_assignments_and_nested_paths() -> None:
    state: dict = {"visits": 0}

    run_script("state.visits += 1; state.seen.garden = true", state)

    assert state == {"visits": 1, "seen": {"garden": True}}


def test_script_increment_and_newline_separators() -> None:
    state = {"count": 2, "name": "tobin"}

    run_script("state.count++\nstate.name = state.name + '!'\nlevel = 4", state)

    assert state == {"count": 3, "name": "tobin!", "level": 4}


def test_script_is_atomic_on_failure() -> None:
    state = {"a": 0, "name": "mara"}

    with pytest.raises(ExpressionError):
        run_script("state.a = 1; state.b = state.name - 1", state)

    assert state == {"a": 0, "name": "mara"}


@pytest.mark.parametrize("source", ["state = 3", "state.a 1", "state.a = 1 state.b = 2", "1 = state.a"])
def test_malformed_script_raises(source: str) -> None:
    with pytest.raises(ExpressionError):
        compile_script(source)


def test_compiled_script_reports_statement_count() -> None:
    script = compile_script("state.a = 1;\n; state.b = 2;")

    assert len(script) == 2
