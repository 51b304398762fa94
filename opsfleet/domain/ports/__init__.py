"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the orchestrator needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from opsfleet.domain.ports.remote_session_port import (
    RemoteSessionPort,
    RemoteSessionFactoryPort,
)
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.route_renderer_port import RouteRendererPort
from opsfleet.domain.ports.prompt_port import PromptPort
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "RemoteSessionPort",
    "RemoteSessionFactoryPort",
    "ControlPlanePort",
    "RouteRendererPort",
    "PromptPort",
    "OutputPort",
    "EventBusPort",
]
