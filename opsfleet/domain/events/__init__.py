"""
Domain Events Package

Architectural Intent:
- Contains deployment events published by the fleet coordinator
- Events are the primary mechanism for cross-boundary communication
"""

from opsfleet.domain.events.event_base import DomainEvent
from opsfleet.domain.events.deploy_events import (
    TargetDeployedEvent,
    TargetFailedEvent,
    DeploymentFinishedEvent,
)

__all__ = [
    "DomainEvent",
    "TargetDeployedEvent",
    "TargetFailedEvent",
    "DeploymentFinishedEvent",
]
