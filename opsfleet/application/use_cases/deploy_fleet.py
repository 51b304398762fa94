"""
Deploy Fleet Use Case

Architectural Intent:
- Owns the lifetime of one deploy run: load config, resolve, fan out, report
- Config and resolution errors propagate before any remote I/O
- Per-target failures are aggregated by the coordinator, not raised
- The deployment record is created up front and updated exactly once at the
  end; both calls are best effort so a control-plane outage never blocks a deploy
"""

from __future__ import annotations
import logging
import time
from dataclasses import replace
from typing import Optional

from opsfleet.application.dtos.deployment_dtos import (
    DeployMode,
    DeployRequest,
    DeploySummary,
)
from opsfleet.application.orchestration.coordinator import FleetCoordinator
from opsfleet.application.use_cases.resolve_targets import TargetResolver
from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.entities.deployment import DeploymentRecord
from opsfleet.domain.events.deploy_events import DeploymentFinishedEvent
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.event_bus_port import EventBusPort
from opsfleet.domain.ports.output_port import OutputPort

logger = logging.getLogger(__name__)


class DeployFleet:
    def __init__(
        self,
        resolver: TargetResolver,
        coordinator: FleetCoordinator,
        control_plane: ControlPlanePort,
        output: OutputPort,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.resolver = resolver
        self.coordinator = coordinator
        self.control_plane = control_plane
        self.output = output
        self.event_bus = event_bus

    async def execute(self, request: DeployRequest) -> DeploySummary:
        started = time.monotonic()

        self.output.step("Reading ops.toml...")
        config = AppConfig.load(request.config_path)
        options = request.options

        targets = await self.resolver.resolve(
            config, app=options.app, node_id=request.node_id, region=request.region
        )

        self.output.detail(
            f"   App: {config.app_name} -> "
            + ", ".join(t.domain for t in targets)
        )
        services = config.select_services(options.app, options.service)
        if services:
            self.output.detail(f"   Services: {' '.join(services)}")

        record = await self._start_record(config)

        mode = DeployMode.ROLLING if request.rolling else DeployMode.PARALLEL
        summary = await self.coordinator.run(config, targets, options, mode)

        record = await self._finish_record(record, summary)

        if self.event_bus is not None:
            try:
                await self.event_bus.publish([
                    DeploymentFinishedEvent(
                        aggregate_id=config.app_name,
                        status=summary.status.value,
                        succeeded=len(summary.succeeded),
                        failed=len(summary.failed),
                        duration_ms=(time.monotonic() - started) * 1000,
                    )
                ])
            except Exception as e:
                logger.warning("Event handler failed for DeploymentFinishedEvent: %s", e)

        self._print_outcome(config, summary)
        return replace(summary, deployment_id=record.id)

    async def _start_record(self, config: AppConfig) -> DeploymentRecord:
        self.output.step("Syncing app record...")
        try:
            sync = await self.control_plane.sync_app(config)
        except Exception as e:
            self.output.warn(f"   App record sync failed: {e} (continuing anyway)")
            return DeploymentRecord(id=None, app_id=None)

        action = "Created" if sync.created else "Updated"
        self.output.detail(f"   {action} app (ID: {sync.app_id})")

        try:
            deployment_id = await self.control_plane.create_deployment(sync.app_id, "cli")
        except Exception as e:
            self.output.warn(f"   Deployment record failed: {e} (continuing anyway)")
            return DeploymentRecord(id=None, app_id=sync.app_id)

        self.output.detail(f"   Deployment #{deployment_id} started")
        return DeploymentRecord(id=deployment_id, app_id=sync.app_id)

    async def _finish_record(
        self, record: DeploymentRecord, summary: DeploySummary
    ) -> DeploymentRecord:
        finished = record.finish(
            len(summary.succeeded), len(summary.failed), summary.failure_logs()
        )
        if not record.is_tracked:
            return finished

        try:
            await self.control_plane.update_deployment(
                finished.id, finished.status.value, finished.logs
            )
        except Exception as e:
            logger.warning(
                "Failed to update deployment status: %s", e,
                extra={"deployment_id": finished.id},
            )
            self.output.warn(f"   Failed to update deployment status: {e}")
        return finished

    def _print_outcome(self, config: AppConfig, summary: DeploySummary) -> None:
        deployed = len(summary.succeeded)
        if summary.failed:
            self.output.result(
                f"\n[-] Deployed {config.app_name} to {deployed}/{summary.total} nodes "
                f"({summary.status.value})"
            )
        else:
            self.output.result(
                f"\n[+] Deployed {config.app_name} to {deployed}/{summary.total} nodes"
            )
