"""Sandboxed expression language for story conditions and enter/exit scripts.

Conditions and scripts are authored as short strings inside story files, for example::

    condition: "state.trust >= 3 && !state.betrayed"
    onEnter: "state.visits += 1; state.seen.garden = true"

They are tokenized with regular expressions and parsed by a small recursive-descent parser
into an expression tree. Nothing is ever handed to ``eval``: the only things an expression
can reach are literals and the game-state mapping it is evaluated against.

Grammar (lowest to highest precedence)::

    script     := statement ((";" | NEWLINE) statement)*
    statement  := reference ("=" | "+=" | "-=" | "*=" | "/=") expression
                | reference ("++" | "--")
    expression := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := "not" not_expr | comparison
    comparison := additive (COMPARATOR additive)*
    additive   := term (("+" | "-") term)*
    term       := unary (("*" | "/" | "%") unary)*
    unary      := ("!" | "-") unary | postfix
    postfix    := primary ("." NAME | "[" expression "]")*
    primary    := NUMBER | STRING | "true" | "false" | "null" | "undefined"
                | NAME | "[" [expression ("," expression)*] "]" | "(" expression ")"

``state.x`` and a bare ``x`` both read the top-level state key ``x``. Missing keys resolve to
``None``.
"""
from __future__ import annotations

import copy
import re
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Sequence, Tuple

__all__ = [
    "ExpressionError",
    "Expression",
    "Script",
    "compile_condition",
    "compile_script",
    "evaluate_condition",
    "run_script",
]


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed or evaluated."""


_TOKEN_RE = re.compile(
    r"""
    (?P<skip>[ \t\r]+)
    |(?P<newline>\n)
    |(?P<number>\d+(?:\.\d+)?)
    |(?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
    |(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    |(?P<op>===|!==|==|!=|<=|>=|&&|\|\||\+\+|--|\+=|-=|\*=|/=|[-+*/%<>!=()\[\].,;])
    """,
    re.VERBOSE,
)
_ESCAPE_RE = re.compile(r"\\(.)")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_COMPARATORS = {"==", "===", "!=", "!==", "<", "<=", ">", ">=", "in", "contains"}
_ASSIGNMENT_OPS = {"=", "+=", "-=", "*=", "/="}
_CONSTANTS = {"true": True, "false": False, "null": None, "undefined": None}
_STATE_ROOT = "state"


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    value: str
    pos: int


def _tokenize(source: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ExpressionError(f"Unexpected character {source[pos]!r} at offset {pos} in {source!r}.")
        kind = match.lastgroup or ""
        if kind != "skip":
            tokens.append(_Token(kind=kind, value=match.group(0), pos=pos))
        pos = match.end()
    return tokens


def _unquote(raw: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), raw[1:-1])


# --- expression tree -------------------------------------------------------------------


class _Node:
    __slots__ = ()

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class _Literal(_Node):
    value: Any

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True, slots=True)
class _ListLiteral(_Node):
    items: Tuple[_Node, ...]

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        return [item.evaluate(state) for item in self.items]


@dataclass(frozen=True, slots=True)
class _Reference(_Node):
    """Path into the state mapping; an empty path is the mapping itself."""

    parts: Tuple[_Node, ...]

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        current: Any = state
        for part in self.parts:
            current = _lookup(current, part.evaluate(state))
            if current is None:
                return None
        return current

    def assign(self, state: MutableMapping[str, Any], value: Any) -> None:
        if not self.parts:
            raise ExpressionError("Cannot assign to the state root.")
        container: Any = state
        for part in self.parts[:-1]:
            key = part.evaluate(state)
            child = _lookup(container, key)
            if not isinstance(child, (MutableMapping, list)):
                child = {}
                _store(container, key, child)
            container = child
        _store(container, self.parts[-1].evaluate(state), value)


@dataclass(frozen=True, slots=True)
class _Unary(_Node):
    op: str
    operand: _Node

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(state)
        if self.op in ("!", "not"):
            return not value
        if not _is_number(value):
            raise ExpressionError(f"Cannot negate non-numeric value {value!r}.")
        return -value


@dataclass(frozen=True, slots=True)
class _Logical(_Node):
    op: str
    left: _Node
    right: _Node

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(state)
        if self.op == "and":
            return self.right.evaluate(state) if left else left
        return left if left else self.right.evaluate(state)


@dataclass(frozen=True, slots=True)
class _Binary(_Node):
    op: str
    left: _Node
    right: _Node

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        return _apply_operator(self.op, self.left.evaluate(state), self.right.evaluate(state))


def _lookup(container: Any, key: Any) -> Any:
    if isinstance(container, Mapping):
        return container.get(key)
    if isinstance(container, (list, tuple, str)):
        if key == "length":
            return len(container)
        if isinstance(key, int) and not isinstance(key, bool) and -len(container) <= key < len(container):
            return container[key]
        return None
    return None


def _store(container: Any, key: Any, value: Any) -> None:
    if isinstance(container, MutableMapping):
        container[key] = value
        return
    if isinstance(container, list) and isinstance(key, int) and not isinstance(key, bool):
        if key == len(container):
            container.append(value)
            return
        if -len(container) <= key < len(container):
            container[key] = value
            return
    raise ExpressionError(f"Cannot assign key {key!r} on {type(container).__name__}.")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(left: Any, right: Any) -> bool:
    # Keep true == 1 false, as authors expect from the story format.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _apply_operator(op: str, left: Any, right: Any) -> Any:
    if op in ("==", "==="):
        return _equals(left, right)
    if op in ("!=", "!=="):
        return not _equals(left, right)
    if op == "+":
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        if isinstance(left, list) and isinstance(right, list):
            return left + right
    try:
        if op == "in":
            return right is not None and left in right
        if op == "contains":
            return left is not None and right in left
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if not (_is_number(left) and _is_number(right)):
            raise ExpressionError(f"Operator {op!r} needs numbers, got {left!r} and {right!r}.")
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            return left / right
        if op == "%":
            return left % right
    except (TypeError, ZeroDivisionError) as exc:
        raise ExpressionError(f"Cannot apply {op!r} to {left!r} and {right!r}: {exc}") from exc
    raise ExpressionError(f"Unknown operator {op!r}.")


# --- parser ----------------------------------------------------------------------------


class _Parser:
    def __init__(self, source: str, tokens: Sequence[_Token]) -> None:
        self._source = source
        self._tokens = list(tokens)
        self._index = 0

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _check(self, *values: str) -> bool:
        token = self._peek()
        return token is not None and token.kind in ("op", "name") and token.value in values

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise ExpressionError(f"Unexpected end of expression in {self._source!r}.")
        self._index += 1
        return token

    def _expect(self, value: str) -> _Token:
        token = self._advance()
        if token.value != value:
            raise ExpressionError(
                f"Expected {value!r} at offset {token.pos} in {self._source!r}, found {token.value!r}."
            )
        return token

    def at_end(self) -> bool:
        return self._peek() is None

    def parse_expression(self) -> _Node:
        node = self._parse_and()
        while self._check("||", "or"):
            self._advance()
            node = _Logical("or", node, self._parse_and())
        return node

    def _parse_and(self) -> _Node:
        node = self._parse_not()
        while self._check("&&", "and"):
            self._advance()
            node = _Logical("and", node, self._parse_not())
        return node

    def _parse_not(self) -> _Node:
        if self._check("not"):
            self._advance()
            return _Unary("not", self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self) -> _Node:
        node = self._parse_additive()
        while self._check(*_COMPARATORS):
            op = self._advance().value
            node = _Binary(op, node, self._parse_additive())
        return node

    def _parse_additive(self) -> _Node:
        node = self._parse_term()
        while self._check("+", "-"):
            op = self._advance().value
            node = _Binary(op, node, self._parse_term())
        return node

    def _parse_term(self) -> _Node:
        node = self._parse_unary()
        while self._check("*", "/", "%"):
            op = self._advance().value
            node = _Binary(op, node, self._parse_unary())
        return node

    def _parse_unary(self) -> _Node:
        if self._check("!", "-"):
            op = self._advance().value
            return _Unary(op, self._parse_unary())
        return self._parse_postfix()

    def _parse_postfix(self) -> _Node:
        node = self._parse_primary()
        while self._check(".", "["):
            if not isinstance(node, _Reference):
                raise ExpressionError(f"Only state references can be indexed in {self._source!r}.")
            if self._advance().value == ".":
                name = self._advance()
                if name.kind != "name":
                    raise ExpressionError(f"Expected a property name at offset {name.pos} in {self._source!r}.")
                part: _Node = _Literal(name.value)
            else:
                part = self.parse_expression()
                self._expect("]")
            node = _Reference(node.parts + (part,))
        return node

    def _parse_primary(self) -> _Node:
        token = self._advance()
        if token.kind == "number":
            return _Literal(float(token.value) if "." in token.value else int(token.value))
        if token.kind == "string":
            return _Literal(_unquote(token.value))
        if token.kind == "name":
            if token.value in _CONSTANTS:
                return _Literal(_CONSTANTS[token.value])
            if token.value == _STATE_ROOT:
                return _Reference(())
            return _Reference((_Literal(token.value),))
        if token.value == "(":
            node = self.parse_expression()
            self._expect(")")
            return node
        if token.value == "[":
            items: List[_Node] = []
            if not self._check("]"):
                items.append(self.parse_expression())
                while self._check(","):
                    self._advance()
                    items.append(self.parse_expression())
            self._expect("]")
            return _ListLiteral(tuple(items))
        raise ExpressionError(f"Unexpected token {token.value!r} at offset {token.pos} in {self._source!r}.")

    def parse_statement(self) -> "_Statement":
        target = self._parse_postfix()
        if not isinstance(target, _Reference) or not target.parts:
            raise ExpressionError(f"Assignment target must be a state path in {self._source!r}.")
        if self._check("++", "--"):
            op = self._advance().value
            return _Statement(target, "+=" if op == "++" else "-=", _Literal(1))
        token = self._advance()
        if token.value not in _ASSIGNMENT_OPS:
            raise ExpressionError(
                f"Expected an assignment at offset {token.pos} in {self._source!r}, found {token.value!r}."
            )
        return _Statement(target, token.value, self.parse_expression())

    def skip_separators(self) -> bool:
        skipped = False
        while True:
            token = self._peek()
            if token is None or not (token.kind == "newline" or token.value == ";"):
                return skipped
            self._index += 1
            skipped = True


@dataclass(frozen=True, slots=True)
class _Statement:
    target: _Reference
    op: str
    value: _Node

    def execute(self, state: MutableMapping[str, Any]) -> None:
        value = self.value.evaluate(state)
        if self.op != "=":
            value = _apply_operator(self.op[0], self.target.evaluate(state), value)
        self.target.assign(state, value)


# --- public api ------------------------------------------------------------------------


class Expression:
    """A compiled boolean/value expression."""

    __slots__ = ("source", "_root")

    def __init__(self, source: str, root: _Node) -> None:
        self.source = source
        self._root = root

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        return self._root.evaluate(state)

    def test(self, state: Mapping[str, Any]) -> bool:
        return bool(self._root.evaluate(state))

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"


class Script:
    """A compiled list of assignments, applied atomically to a state mapping."""

    __slots__ = ("source", "_statements")

    def __init__(self, source: str, statements: Sequence[_Statement]) -> None:
        self.source = source
        self._statements = tuple(statements)

    def execute(self, state: MutableMapping[str, Any]) -> None:
        """Run every statement; the mapping is only updated when all of them succeed."""
        working = copy.deepcopy(dict(state))
        for statement in self._statements:
            statement.execute(working)
        state.clear()
        state.update(working)

    def __len__(self) -> int:
        return len(self._statements)

    def __repr__(self) -> str:
        return f"Script({self.source!r})"


@lru_cache(maxsize=512)
def compile_condition(source: str) -> Expression:
    """Parse a condition string, raising ExpressionError on bad syntax."""
    tokens = [token for token in _tokenize(source) if token.kind != "newline"]
    if not tokens:
        raise ExpressionError("Condition is empty.")
    parser = _Parser(source, tokens)
    root = parser.parse_expression()
    if not parser.at_end():
        raise ExpressionError(f"Unexpected trailing input in {source!r}.")
    return Expression(source, root)


@lru_cache(maxsize=256)
def compile_script(source: str) -> Script:
    """Parse a script string, raising ExpressionError on bad syntax."""
    parser = _Parser(source, _tokenize(source))
    statements: List[_Statement] = []
    parser.skip_separators()
    while not parser.at_end():
        statements.append(parser.parse_statement())
        if not parser.skip_separators() and not parser.at_end():
            raise ExpressionError(f"Statements must be separated by ';' or newlines in {source!r}.")
    return Script(source, statements)


def evaluate_condition(source: str, state: Mapping[str, Any]) -> bool:
    """Compile (cached) and evaluate a condition against the state mapping."""
    return compile_condition(source).test(state)


def run_script(source: str, state: MutableMapping[str, Any]) -> None:
    """Compile (cached) and run a script against the state mapping."""
    compile_script(source).execute(state)
