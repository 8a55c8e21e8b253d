"""Static story graph diagnostics."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, MutableMapping, Sequence

from taleweave.core.expressions import ExpressionError, compile_condition, compile_script
from taleweave.domain.story import Story, StoryNodeData


Severity = str

_AUTO_ADVANCE_TYPES = {"scene", "branch"}


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: dict[str, str]


@dataclass(frozen=True, slots=True)
class NodeInfo:
    node_id: str
    node_type: str
    next_node_id: str | None
    choice_next_ids: list[str]
    auto_advances: bool


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == "ERROR" for issue in issues)


def validate_story_graph(
    story: Story,
    *,
    entry_roots: Sequence[str] = (),
    known_characters: Iterable[str] | None = None,
    error_on_autoadvance_cycle: bool = False,
) -> list[Issue]:
    """Analyse a parsed story and return diagnostics; nothing is raised.

    ``entry_roots`` adds extra reachability roots next to the start node (for example nodes a
    host jumps to directly). ``known_characters`` defaults to the story's own roster; when the
    roster is empty no character checks are made.
    """
    issues: list[Issue] = []
    node_infos = {node_id: _build_node_info(node) for node_id, node in story.nodes.items()}
    node_ids = set(node_infos)

    roots = [story.start_node, *entry_roots]
    for root in roots:
        if root not in node_ids:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_ENTRY_ROOT",
                    message="Entry root references missing story node.",
                    context={"referenced_id": root},
                )
            )

    for node_info in node_infos.values():
        _validate_node_references(node_info, node_ids, issues)
        _validate_dead_end(node_info, issues)
    for node in story.nodes.values():
        _validate_expressions(node, issues)

    roster = set(story.characters) if known_characters is None else set(known_characters)
    if roster:
        for node in story.nodes.values():
            _validate_characters(node, roster, issues)

    _validate_reachability(node_infos, roots, issues)
    _validate_auto_advance_cycles(
        node_infos, issues, error_on_autoadvance_cycle=error_on_autoadvance_cycle
    )
    return issues


def _build_node_info(node: StoryNodeData) -> NodeInfo:
    auto_advances = node.type in _AUTO_ADVANCE_TYPES and node.next_node is not None
    if node.type == "branch" and node.condition is False:
        auto_advances = False
    return NodeInfo(
        node_id=node.id,
        node_type=node.type,
        next_node_id=node.next_node,
        choice_next_ids=[choice.next_node for choice in node.choices],
        auto_advances=auto_advances,
    )


def _validate_node_references(
    node_info: NodeInfo, node_ids: set[str], issues: list[Issue]
) -> None:
    if node_info.next_node_id and node_info.next_node_id not in node_ids:
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_NODE_REF",
                message="Node references missing next node.",
                context={
                    "node_id": node_info.node_id,
                    "field_path": "nextNode",
                    "referenced_id": node_info.next_node_id,
                },
            )
        )
    for index, next_id in enumerate(node_info.choice_next_ids):
        if next_id not in node_ids:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_NODE_REF",
                    message="Choice references missing node.",
                    context={
                        "node_id": node_info.node_id,
                        "field_path": f"choices[{index}].nextNode",
                        "referenced_id": next_id,
                    },
                )
            )


def _validate_dead_end(node_info: NodeInfo, issues: list[Issue]) -> None:
    # Scene nodes without nextNode hand control to the scene switcher.
    if node_info.node_type in ("end", "scene"):
        return
    if node_info.next_node_id or node_info.choice_next_ids:
        return
    issues.append(
        Issue(
            severity="WARN",
            code="DEAD_END",
            message="Node is not an end node but has no way forward.",
            context={"node_id": node_info.node_id},
        )
    )


def _validate_expressions(node: StoryNodeData, issues: list[Issue]) -> None:
    sources: list[tuple[str, str, bool]] = []
    if isinstance(node.condition, str):
        sources.append(("condition", node.condition, False))
    if node.on_enter:
        sources.append(("onEnter", node.on_enter, True))
    if node.on_exit:
        sources.append(("onExit", node.on_exit, True))
    for index, choice in enumerate(node.choices):
        if isinstance(choice.condition, str):
            sources.append((f"choices[{index}].condition", choice.condition, False))
    for field_path, source, is_script in sources:
        try:
            if is_script:
                compile_script(source)
            else:
                compile_condition(source)
        except ExpressionError as exc:
            issues.append(
                Issue(
                    severity="WARN",
                    code="INVALID_EXPRESSION",
                    message=f"Expression will be ignored at runtime: {exc}",
                    context={"node_id": node.id, "field_path": field_path},
                )
            )


def _validate_characters(node: StoryNodeData, roster: set[str], issues: list[Issue]) -> None:
    referenced: list[tuple[str, str]] = []
    if node.type == "dialogue" and node.character:
        referenced.append(("character", node.character))
    for index, entry in enumerate(node.characters or ()):
        referenced.append((f"characters[{index}].id", entry.id))
    for field_path, character_id in referenced:
        if character_id in roster:
            continue
        issues.append(
            Issue(
                severity="WARN",
                code="UNKNOWN_CHARACTER",
                message="Character is not declared in the story roster.",
                context={
                    "node_id": node.id,
                    "field_path": field_path,
                    "referenced_id": character_id,
                },
            )
        )


def _validate_reachability(
    node_infos: Mapping[str, NodeInfo],
    roots: Sequence[str],
    issues: list[Issue],
) -> None:
    node_ids = set(node_infos.keys())
    reachable: set[str] = set()
    stack: list[str] = [root for root in roots if root in node_ids]
    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        node_info = node_infos[node_id]
        if node_info.next_node_id and node_info.next_node_id in node_ids:
            stack.append(node_info.next_node_id)
        for next_id in node_info.choice_next_ids:
            if next_id in node_ids:
                stack.append(next_id)
    for node_id in sorted(node_ids - reachable):
        issues.append(
            Issue(
                severity="WARN",
                code="UNREACHABLE_NODE",
                message="Node is unreachable from the start node.",
                context={"node_id": node_id},
            )
        )


def _validate_auto_advance_cycles(
    node_infos: Mapping[str, NodeInfo],
    issues: list[Issue],
    *,
    error_on_autoadvance_cycle: bool,
) -> None:
    candidate_ids = {node_id for node_id, node_info in node_infos.items() if node_info.auto_advances}
    adjacency: MutableMapping[str, str] = {}
    for node_id in candidate_ids:
        next_node_id = node_infos[node_id].next_node_id
        if next_node_id in candidate_ids:
            adjacency[node_id] = next_node_id

    visited: set[str] = set()
    stack: list[str] = []
    stack_set: set[str] = set()
    cycles: list[list[str]] = []

    def dfs(current: str) -> None:
        visited.add(current)
        stack.append(current)
        stack_set.add(current)
        next_node = adjacency.get(current)
        if next_node:
            if next_node not in visited:
                dfs(next_node)
            elif next_node in stack_set:
                cycles.append(stack[stack.index(next_node) :])
        stack.pop()
        stack_set.remove(current)

    for node_id in sorted(candidate_ids):
        if node_id not in visited:
            dfs(node_id)

    severity = "ERROR" if error_on_autoadvance_cycle else "WARN"
    for cycle in cycles:
        cycle_path = " -> ".join(cycle + [cycle[0]])
        issues.append(
            Issue(
                severity=severity,
                code="AUTOADVANCE_CYCLE",
                message="Scene/branch chain can loop without player input.",
                context={"cycle": cycle_path},
            )
        )
