"""
Fleet Coordinator

Architectural Intent:
- Executes the deployment pipeline across every resolved target
- Rolling mode: strictly sequential, in resolved order
- Parallel mode: one concurrent task per target, no cross-target ordering
- A target's failure (including failing to open its session) is isolated:
  it is attributed to that target and never stops the others

Resource Ownership:
- Each target gets its own Remote Session; sessions are never shared
- Cross-target state is limited to the returned summary
"""

from __future__ import annotations
import logging
import time
from typing import Optional, Sequence

from opsfleet.application.dtos.deployment_dtos import (
    DeployMode,
    DeployOptions,
    DeploySummary,
    PipelineReport,
    TargetFailure,
)
from opsfleet.application.orchestration.fanout import JobOutcome, fan_out
from opsfleet.application.use_cases.deploy_pipeline import DeploymentPipeline
from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.events.deploy_events import TargetDeployedEvent, TargetFailedEvent
from opsfleet.domain.ports.event_bus_port import EventBusPort
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.ports.remote_session_port import RemoteSessionFactoryPort
from opsfleet.domain.value_objects.node import DeployTarget

logger = logging.getLogger(__name__)


class FleetCoordinator:
    def __init__(
        self,
        pipeline: DeploymentPipeline,
        session_factory: RemoteSessionFactoryPort,
        output: OutputPort,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.pipeline = pipeline
        self.session_factory = session_factory
        self.output = output
        self.event_bus = event_bus

    async def run(
        self,
        config: AppConfig,
        targets: Sequence[DeployTarget],
        options: DeployOptions,
        mode: DeployMode = DeployMode.PARALLEL,
    ) -> DeploySummary:
        if not targets:
            return DeploySummary()

        if len(targets) == 1:
            target = targets[0]
            try:
                report = await self._run_target(config, target, options)
                outcomes = [JobOutcome(item=target, result=report)]
            except Exception as e:
                outcomes = [JobOutcome(item=target, error=e)]
        elif mode == DeployMode.ROLLING:
            self.output.step(f"Rolling deploy to {len(targets)} nodes...")
            outcomes = await fan_out(
                targets, lambda t: self._run_target(config, t, options), batch_size=1
            )
        else:
            self.output.step(f"Parallel deploy to {len(targets)} nodes...")
            concurrent_options = options.non_interactive()
            outcomes = await fan_out(
                targets, lambda t: self._run_target(config, t, concurrent_options)
            )

        summary = DeploySummary(
            succeeded=tuple(o.item for o in outcomes if o.ok),
            failed=tuple(
                TargetFailure(target=o.item, error=str(o.error))
                for o in outcomes
                if not o.ok
            ),
            reports=tuple(o.result for o in outcomes if o.ok and o.result is not None),
        )
        self._print_summary(summary)
        return summary

    async def _run_target(
        self, config: AppConfig, target: DeployTarget, options: DeployOptions
    ) -> PipelineReport:
        started = time.monotonic()
        try:
            async with self.session_factory.open(target) as session:
                report = await self.pipeline.deploy(config, target, session, options)
        except Exception as e:
            elapsed = (time.monotonic() - started) * 1000
            logger.error(
                "Deploy to %s failed: %s", target, e,
                extra={"node_id": target.node_id, "app": config.app_name},
            )
            self.output.error(f"  ✘ {target}: {e}")
            await self._publish(
                TargetFailedEvent(
                    aggregate_id=config.app_name,
                    node_id=target.node_id,
                    domain=target.domain,
                    error_message=str(e),
                    duration_ms=elapsed,
                )
            )
            raise

        elapsed = (time.monotonic() - started) * 1000
        self.output.result(f"  ✔ {target}")
        await self._publish(
            TargetDeployedEvent(
                aggregate_id=config.app_name,
                node_id=target.node_id,
                domain=target.domain,
                duration_ms=elapsed,
            )
        )
        return report

    async def _publish(self, event) -> None:
        if self.event_bus is None:
            return
        try:
            await self.event_bus.publish([event])
        except Exception as e:
            logger.warning("Event handler failed for %s: %s", type(event).__name__, e)

    def _print_summary(self, summary: DeploySummary) -> None:
        if summary.total <= 1:
            return
        self.output.result("")
        for target in summary.succeeded:
            self.output.result(f"  ✔ node {target.node_id}")
        for failure in summary.failed:
            self.output.result(f"  ✘ node {failure.target.node_id}: {failure.error}")
