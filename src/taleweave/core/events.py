"""Typed publish/subscribe used for lifecycle notifications.

Handlers are keyed by event class instead of string channel names, so the payload shape of
every notification is the dataclass a subscriber registered for. A handler registered for a
base class also receives its subclasses.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Type, TypeVar

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Event:
    """Base class for every notification published on an EventBus."""


E = TypeVar("E", bound=Event)
Unsubscribe = Callable[[], None]


class EventBus:
    """Synchronous in-process dispatcher; handlers run in subscription order."""

    def __init__(self) -> None:
        self._handlers: Dict[type, List[Callable[[Event], None]]] = {}

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> Unsubscribe:
        """Register a handler and return a callable that removes it again."""
        self._handlers.setdefault(event_type, []).append(handler)  # type: ignore[arg-type]

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def subscribe_once(self, event_type: Type[E], handler: Callable[[E], None]) -> Unsubscribe:
        """Register a handler that is removed after its first delivery."""

        def wrapper(event: E) -> None:
            unsubscribe()
            handler(event)

        unsubscribe = self.subscribe(event_type, wrapper)
        return unsubscribe

    def unsubscribe(self, event_type: type, handler: Callable[..., None]) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_type]

    def emit(self, event: Event) -> None:
        """Deliver the event to every handler registered for its class or a base class."""
        for event_type in type(event).__mro__:
            handlers = self._handlers.get(event_type)
            if not handlers:
                continue
            # Copy so handlers can unsubscribe while the event is being delivered.
            for handler in list(handlers):
                handler(event)
        logger.debug("Emitted %s", type(event).__name__)

    def has_subscribers(self, event_type: type) -> bool:
        return bool(self._handlers.get(event_type))

    def clear(self) -> None:
        """Remove every registered handler."""
        self._handlers.clear()
