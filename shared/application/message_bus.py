"""
Message Bus

Hands domain events detected by the trackers to whatever reacts to them
(local alerts today). Trackers only return events; the bus decides who
hears about them.
"""

from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class MessageBus:
    """
    Events-only bus: any number of handlers per event type, run in
    registration order.

    Build one per unit of work; a bus holds its handlers (and whatever
    state they carry) for that unit only.
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)

    def register_event_handler(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        self._event_handlers[event_type].append(handler)
        logger.debug(f"Registered {_handler_name(handler)} for {event_type.__name__}")

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._event_handlers.get(event_type, ()))

    def publish_events(self, events: Iterable[DomainEvent]) -> int:
        """
        Run every handler registered for each event.

        A failing handler is logged and skipped so the remaining handlers and
        events still run. Returns how many handler calls completed.
        """
        handled = 0
        for event in events:
            event_name = type(event).__name__
            handlers = self.handlers_for(type(event))
            if not handlers:
                logger.warning(f"No handlers registered for event {event_name}")
                continue

            logger.info(f"Publishing event: {event_name} (ID: {event.event_id})")
            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {_handler_name(handler)} for event {event_name}: {e}",
                        exc_info=True,
                    )
                    continue
                handled += 1
        return handled


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, '__name__', type(handler).__name__)
