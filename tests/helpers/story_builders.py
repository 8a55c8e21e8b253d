from __future__ import annotations

from typing import Any, Dict, Mapping

from taleweave.core.events import Event, EventBus
from taleweave.data.story_parser import StoryParser
from taleweave.domain.story import Story

_PARSER = StoryParser(report_diagnostics=False)


def build_document(
    nodes: Mapping[str, Mapping[str, Any]],
    *,
    start: str = "start",
    initial_state: Mapping[str, Any] | None = None,
    characters: Mapping[str, Mapping[str, Any]] | None = None,
    story_id: str = "test_story",
) -> Dict[str, Any]:
    document: Dict[str, Any] = {
        "id": story_id,
        "title": "Test Story",
        "startNode": start,
        "nodes": {node_id: dict(payload) for node_id, payload in nodes.items()},
    }
    if initial_state is not None:
        document["initialState"] = dict(initial_state)
    if characters is not None:
        document["assets"] = {"characters": {key: dict(value) for key, value in characters.items()}}
    return document


def build_story(nodes: Mapping[str, Mapping[str, Any]], **kwargs: Any) -> Story:
    return _PARSER.build(build_document(nodes, **kwargs))


class EventRecorder:
    """Collects every event published on a bus, in delivery order."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[Event] = []
        bus.subscribe(Event, self.events.append)

    def of_type(self, event_type: type) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]

    def names(self) -> list[str]:
        return [type(event).__name__ for event in self.events]
