"""
Deployment Pipeline

Architectural Intent:
- The fixed, ordered sequence of steps executed against one resolved target
- Runs over an already-open Remote Session owned by this execution alone
- Steps may be disabled by configuration; enabled steps never reorder

Failure Semantics:
- An error in steps 1-5 aborts the remaining steps and surfaces as PipelineError
- Health checks are informational: failures are reported, never raised
- No rollback of partially applied steps; each step re-applies its end state
"""

from __future__ import annotations
import logging
import shlex
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from opsfleet.application.dtos.deployment_dtos import (
    DeployOptions,
    HealthCheckResult,
    PipelineReport,
)
from opsfleet.application.use_cases.source_sync import sync_git, sync_push
from opsfleet.domain.entities.app_config import AppConfig, resolve_env_value
from opsfleet.domain.errors import ConfigError, PipelineError, RemoteExecutionError
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.ports.prompt_port import PromptPort
from opsfleet.domain.ports.remote_session_port import RemoteSessionPort
from opsfleet.domain.ports.route_renderer_port import RouteRendererPort
from opsfleet.domain.value_objects.node import DeployTarget

logger = logging.getLogger(__name__)

PREFLIGHT = "preflight"
SYNC_FILES = "sync_files"
SYNC_SOURCE = "sync_source"
START = "start"
ROUTING = "routing"
HEALTH = "health"

STEP_ORDER = (PREFLIGHT, SYNC_FILES, SYNC_SOURCE, START, ROUTING, HEALTH)


class PreflightDecision(Enum):
    CONTINUE = "continue"
    CLEAN = "clean"
    ABORT = "abort"


PREFLIGHT_CHOICES = (
    ("Keep running services and continue", PreflightDecision.CONTINUE),
    ("Remove existing containers, then deploy", PreflightDecision.CLEAN),
    ("Abort", PreflightDecision.ABORT),
)


def decide_preflight(
    running: Sequence[str], force: bool, choice: Optional[int] = None
) -> PreflightDecision:
    """`choice` indexes PREFLIGHT_CHOICES; None means nobody was asked."""
    if not running:
        return PreflightDecision.CONTINUE
    if force:
        return PreflightDecision.CLEAN
    if choice is None:
        return PreflightDecision.CONTINUE
    return PREFLIGHT_CHOICES[choice][1]


class DeploymentPipeline:
    def __init__(
        self,
        output: OutputPort,
        prompt: PromptPort,
        route_renderer: RouteRendererPort,
        health_attempts: int = 10,
        health_delay: float = 2.0,
    ):
        self.output = output
        self.prompt = prompt
        self.route_renderer = route_renderer
        self.health_attempts = health_attempts
        self.health_delay = health_delay

    async def deploy(
        self,
        config: AppConfig,
        target: DeployTarget,
        session: RemoteSessionPort,
        options: DeployOptions,
    ) -> PipelineReport:
        plan: list[tuple[str, bool, Callable[[], Awaitable[None]]]] = [
            (PREFLIGHT, True, lambda: self._preflight(config, target, session, options)),
            (SYNC_FILES, True, lambda: self._sync_files(config, target, session)),
            (
                SYNC_SOURCE,
                not options.restart_only,
                lambda: self._sync_source(config, target, session, options),
            ),
            (START, True, lambda: self._start(config, target, session, options)),
            (
                ROUTING,
                bool(config.routes) and not options.restart_only,
                lambda: self._update_routing(config, target, session),
            ),
        ]

        executed: list[str] = []
        for name, enabled, step in plan:
            if not enabled:
                logger.debug("Skipping step %s on %s", name, target)
                continue
            try:
                await step()
            except PipelineError:
                raise
            except Exception as e:
                logger.error(
                    "Step %s failed on %s: %s", name, target, e,
                    extra={"node_id": target.node_id, "step": name},
                )
                raise PipelineError(name, e) from e
            executed.append(name)

        health: tuple[HealthCheckResult, ...] = ()
        if config.healthchecks:
            health = await self._health_checks(config, target, session)
            executed.append(HEALTH)

        return PipelineReport(target=target, steps=tuple(executed), health=health)

    def _say(self, target: DeployTarget, message: str) -> None:
        self.output.step(f"[node {target.node_id}] {message}")

    def _compose(
        self, config: AppConfig, options: DeployOptions, subcommand: str
    ) -> str:
        env = " ".join(options.env_vars)
        services = config.select_services(options.app, options.service)
        parts = ["docker compose"]
        if config.compose_args():
            parts.append(config.compose_args())
        parts.append(subcommand)
        parts.extend(services)
        prefix = f"{env} " if env else ""
        return f"{prefix}{' '.join(parts)}"

    def _in_path(self, config: AppConfig, command: str) -> str:
        return f"cd {shlex.quote(config.deploy_path)} && {command}"

    async def _preflight(
        self,
        config: AppConfig,
        target: DeployTarget,
        session: RemoteSessionPort,
        options: DeployOptions,
    ) -> None:
        await session.run(f"mkdir -p {shlex.quote(config.deploy_path)}")

        if not config.deploy.check_existing or options.restart_only:
            return

        listing = await session.run_output(
            self._in_path(
                config,
                self._compose(config, DeployOptions(), "ps --services --filter status=running")
                + " 2>/dev/null || true",
            )
        )
        running = [line.strip() for line in listing.splitlines() if line.strip()]

        choice: Optional[int] = None
        if running and not options.force and options.interactive and self.prompt.interactive:
            self._say(target, f"Running services: {', '.join(running)}")
            choice = self.prompt.select(
                "How should existing services be handled?",
                [label for label, _ in PREFLIGHT_CHOICES],
                0,
            )

        decision = decide_preflight(running, options.force, choice)
        if decision == PreflightDecision.ABORT:
            raise PipelineError(PREFLIGHT, RuntimeError("Deployment aborted by operator"))
        if decision == PreflightDecision.CLEAN:
            self._say(target, "Removing existing containers...")
            await session.run(
                self._in_path(config, self._compose(config, DeployOptions(), "down --remove-orphans")),
                stream=True,
            )

    async def _sync_files(
        self, config: AppConfig, target: DeployTarget, session: RemoteSessionPort
    ) -> None:
        base = config.deploy_path.rstrip("/")

        env_files = [ef for ef in config.env_files if Path(ef.local).exists()]
        if env_files:
            self._say(target, "Syncing env files...")
        for ef in env_files:
            remote_path = f"{base}/{ef.remote}"
            await session.run(
                f"cat > {shlex.quote(remote_path)}", stdin=Path(ef.local).read_text()
            )
            self.output.detail(f"   {ef.local} -> {remote_path}")

        dirs = [s for s in config.sync if Path(s.local).exists()]
        if dirs:
            self._say(target, "Syncing directories...")
        for s in dirs:
            remote_path = f"{base}/{s.remote}"
            await session.push_dir(s.local, remote_path)
            self.output.detail(f"   {s.local} -> {remote_path}")

    async def _sync_source(
        self,
        config: AppConfig,
        target: DeployTarget,
        session: RemoteSessionPort,
        options: DeployOptions,
    ) -> None:
        source = config.deploy.source

        if source == "git":
            if config.deploy.git is None:
                raise ConfigError("deploy.source='git' requires [deploy.git] section")
            self._say(target, "Syncing code (git)...")
            ref = await sync_git(
                session,
                config.deploy.git,
                config.deploy_path,
                config.deploy.branch,
                config.project or config.app_name,
            )
            self.output.success(f"   Code synced (ref: {ref})")
        elif source == "push":
            self._say(target, "Syncing code (rsync)...")
            await sync_push(session, config.deploy_path)
            self.output.success("   Code synced")
        else:
            self._say(target, "Pulling images...")
            registry = config.deploy.registry
            if registry is not None:
                await session.run(
                    f"docker login {shlex.quote(registry.url)} "
                    f"-u {shlex.quote(resolve_env_value(registry.username))} --password-stdin",
                    stdin=resolve_env_value(registry.token),
                )
                self.output.success("   Registry login")
            await session.run(
                self._in_path(config, self._compose(config, options, "pull")),
                stream=True,
            )
            self.output.success("   Images pulled")

    async def _start(
        self,
        config: AppConfig,
        target: DeployTarget,
        session: RemoteSessionPort,
        options: DeployOptions,
    ) -> None:
        if options.restart_only:
            self._say(target, "Restarting services...")
            await session.run(
                self._in_path(config, self._compose(config, options, "restart")),
                stream=True,
            )
            return

        self._say(target, "Building & starting services...")
        up = self._compose(config, options, "up -d --remove-orphans")

        if config.deploy.source == "image":
            await session.run(self._in_path(config, up), stream=True)
            try:
                await session.run("docker image prune -f")
            except RemoteExecutionError as e:
                logger.debug("Image prune failed on %s: %s", target, e)
        else:
            build = self._compose(config, options, "build")
            await session.run(self._in_path(config, f"{build} && {up}"), stream=True)

    async def _update_routing(
        self, config: AppConfig, target: DeployTarget, session: RemoteSessionPort
    ) -> None:
        self._say(target, "Updating routes...")
        app_name = config.app_name
        rendered = self.route_renderer.render(app_name, config.routes)

        await session.run(
            f"cat > {self.route_renderer.config_path(app_name)}", stdin=rendered
        )
        await session.run(self.route_renderer.activate_command(app_name))
        for route in config.routes:
            self.output.detail(f"   {route.domain} -> :{route.port}")

        tls = self.route_renderer.tls_command(config.routes)
        if tls:
            await session.run(tls)

    async def _health_checks(
        self, config: AppConfig, target: DeployTarget, session: RemoteSessionPort
    ) -> tuple[HealthCheckResult, ...]:
        self._say(target, "Health checks:")
        attempts = " ".join(str(i) for i in range(1, self.health_attempts + 1))
        results = []

        for hc in config.healthchecks:
            cmd = (
                f"for i in {attempts}; do curl -sf {shlex.quote(hc.url)} > /dev/null "
                f"&& echo 'OK' && exit 0; sleep {self.health_delay:g}; done; "
                "echo 'FAIL'; exit 1"
            )
            try:
                reachable = (await session.run_output(cmd)).strip() == "OK"
            except Exception as e:
                logger.warning("Health check %s failed on %s: %s", hc.name, target, e)
                reachable = False

            if reachable:
                self.output.success(f"   ✔ {hc.name}  {hc.url}  OK")
            else:
                self.output.warn(f"   ✘ {hc.name}  {hc.url}  FAILED")
            results.append(HealthCheckResult(name=hc.name, url=hc.url, reachable=reachable))

        return tuple(results)
