"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the ops CLI
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module (except CLI)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies
- Control plane and session factory can be swapped for in-memory fakes
- Telemetry is wired to the event bus but initialized lazily by the caller
"""

from dataclasses import dataclass
from typing import Optional

from opsfleet.application.orchestration.coordinator import FleetCoordinator
from opsfleet.application.use_cases.build_images import BuildImages
from opsfleet.application.use_cases.deploy_fleet import DeployFleet
from opsfleet.application.use_cases.deploy_pipeline import DeploymentPipeline
from opsfleet.application.use_cases.manage_node_groups import NodeGroupService
from opsfleet.application.use_cases.manage_pool import PoolService
from opsfleet.application.use_cases.resolve_targets import TargetResolver
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.remote_session_port import RemoteSessionFactoryPort
from opsfleet.infrastructure.adapters.console_prompt import ConsolePrompt
from opsfleet.infrastructure.adapters.fabric_session import FabricSessionFactory
from opsfleet.infrastructure.adapters.http_control_plane import HttpControlPlane
from opsfleet.infrastructure.adapters.nginx_renderer import NginxRouteRenderer
from opsfleet.infrastructure.config import OpsSettings
from opsfleet.infrastructure.console import Console, Verbosity
from opsfleet.infrastructure.event_bus import EventBus
from opsfleet.infrastructure.telemetry.otel_exporter import OTELConfig, OTELExporter


@dataclass
class OpsContainer:
    """DI container holding all wired dependencies."""

    settings: OpsSettings
    console: Console
    prompt: ConsolePrompt
    control_plane: ControlPlanePort
    session_factory: RemoteSessionFactoryPort
    event_bus: EventBus
    telemetry: OTELExporter
    resolver: TargetResolver
    pipeline: DeploymentPipeline
    coordinator: FleetCoordinator
    deploy_fleet: DeployFleet
    build_images: BuildImages
    pool: PoolService
    node_groups: NodeGroupService


def create_container(
    settings: Optional[OpsSettings] = None,
    interactive: bool = True,
    verbosity: Verbosity = Verbosity.NORMAL,
    control_plane: Optional[ControlPlanePort] = None,
    session_factory: Optional[RemoteSessionFactoryPort] = None,
) -> OpsContainer:
    """Create and wire all dependencies."""
    settings = settings or OpsSettings()
    console = Console(verbosity)
    prompt = ConsolePrompt(interactive=interactive)
    event_bus = EventBus()

    control_plane = control_plane or HttpControlPlane(
        settings.token, base_url=settings.api.base_url, timeout=settings.api.timeout
    )
    session_factory = session_factory or FabricSessionFactory(
        control_plane,
        user=settings.ssh.user,
        port=settings.ssh.port,
        connect_timeout=settings.ssh.connect_timeout,
    )

    telemetry = OTELExporter(
        OTELConfig(
            endpoint=settings.telemetry.endpoint,
            insecure=settings.telemetry.insecure,
        )
    )
    telemetry.subscribe_to(event_bus)

    resolver = TargetResolver(control_plane, prompt, console, zone=settings.zone)
    pipeline = DeploymentPipeline(
        console,
        prompt,
        NginxRouteRenderer(),
        health_attempts=settings.deploy.health_attempts,
        health_delay=settings.deploy.health_delay,
    )
    coordinator = FleetCoordinator(pipeline, session_factory, console, event_bus)
    deploy_fleet = DeployFleet(resolver, coordinator, control_plane, console, event_bus)
    build_images = BuildImages(
        control_plane,
        session_factory,
        console,
        zone=settings.zone,
        poll_interval=settings.deploy.build_poll_interval,
    )

    return OpsContainer(
        settings=settings,
        console=console,
        prompt=prompt,
        control_plane=control_plane,
        session_factory=session_factory,
        event_bus=event_bus,
        telemetry=telemetry,
        resolver=resolver,
        pipeline=pipeline,
        coordinator=coordinator,
        deploy_fleet=deploy_fleet,
        build_images=build_images,
        pool=PoolService(control_plane, console),
        node_groups=NodeGroupService(control_plane, console),
    )
