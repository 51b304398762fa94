"""
Event Bus Infrastructure

Architectural Intent:
- In-memory EventBusPort; handlers are awaited in subscription order
- Handler errors propagate to the publisher, which decides whether they matter
"""

import logging

from opsfleet.domain.events.event_base import DomainEvent
from opsfleet.domain.ports.event_bus_port import EventHandler

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = {}

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            for handler in self._handlers.get(type(event), []):
                await handler(event)

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed %s to %s", handler, event_type.__name__)
