"""
Lifecycle events and the bus plugins use to subscribe to them.
"""

import enum
import inspect
import logging
from typing import Any, Callable, Dict, List, Tuple, Union

from .errors import ConfigError


class Event(enum.Enum):
    AFTER_CONFIG = 'AFTER_CONFIG'
    BEFORE_PARSE_EARLY = 'BEFORE_PARSE_EARLY'
    AFTER_PARSE_EARLY = 'AFTER_PARSE_EARLY'
    BEFORE_PARSE_LATE = 'BEFORE_PARSE_LATE'
    AFTER_PARSE_LATE = 'AFTER_PARSE_LATE'
    AFTER_ARTICLE_PARSER_INIT = 'AFTER_ARTICLE_PARSER_INIT'
    AFTER_ARTICLE_PARSER_RUN = 'AFTER_ARTICLE_PARSER_RUN'
    ARTICLE_PRERENDER = 'ARTICLE_PRERENDER'


# Handler failures on these events are logged and the article carries on.
ENRICHMENT_EVENTS = frozenset({Event.AFTER_ARTICLE_PARSER_RUN, Event.ARTICLE_PRERENDER})

DEFAULT_PRIORITY = 50


class EventBus:
    """
    Named-event publish/subscribe with priority ordering.

    Handlers run in ascending priority; handlers sharing a priority run in the
    order they were registered. Handlers may be plain callables or coroutine
    functions.
    """

    def __init__(self):
        self.logger = logging.getLogger('Folio.EventBus')
        self._handlers: Dict[Event, List[Tuple[int, int, Callable]]] = {}
        self._seq = 0

    @staticmethod
    def resolve(event: Union[Event, str]) -> Event:
        """Turn an event or event name into an Event, raising ConfigError if unknown."""
        if isinstance(event, Event):
            return event
        if isinstance(event, str):
            try:
                return Event[event]
            except KeyError:
                pass
        raise ConfigError(f"Invalid event name '{event}'. Valid events: "
                          f"{', '.join(e.name for e in Event)}")

    def on(self, event: Union[Event, str], handler: Callable, priority: int = DEFAULT_PRIORITY) -> None:
        """
        Register a handler for an event.

        Args:
            event: Event or its name
            handler: Callable (sync or async) invoked with the emit arguments
            priority: Lower runs first
        """
        evt = self.resolve(event)
        if not callable(handler):
            raise ConfigError(f"Handler for {evt.name} is not callable")
        self._seq += 1
        handlers = self._handlers.setdefault(evt, [])
        handlers.append((priority, self._seq, handler))
        handlers.sort(key=lambda h: (h[0], h[1]))
        self.logger.debug(f"Registered handler {getattr(handler, '__qualname__', handler)} "
                          f"for {evt.name} at priority {priority}")

    def off(self, event: Union[Event, str], handler: Callable) -> bool:
        """Remove a handler. Returns True if one was removed."""
        evt = self.resolve(event)
        handlers = self._handlers.get(evt, [])
        for entry in handlers:
            if entry[2] == handler:
                handlers.remove(entry)
                return True
        return False

    def handlers(self, event: Union[Event, str]) -> List[Callable]:
        return [h[2] for h in self._handlers.get(self.resolve(event), [])]

    async def emit(self, event: Union[Event, str], *args: Any, **kwargs: Any) -> None:
        """
        Invoke every handler for the event, one after another.

        Each handler is awaited before the next starts. The handler list is
        snapshotted first, so handlers added or removed during emission only
        affect later emissions. Exceptions propagate to the caller.
        """
        evt = self.resolve(event)
        for _priority, _seq, handler in list(self._handlers.get(evt, [])):
            result = handler(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
