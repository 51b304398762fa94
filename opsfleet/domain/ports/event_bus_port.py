"""
Event Bus Port

Architectural Intent:
- The coordinator announces per-target and per-run outcomes here
- Telemetry subscribes without the deploy path knowing it exists
"""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from opsfleet.domain.events.event_base import DomainEvent

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, events: list[DomainEvent]) -> None:
        """Delivers each event to its type's handlers in subscription order."""
        ...

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None: ...
