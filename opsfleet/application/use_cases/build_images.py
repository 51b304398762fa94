"""
Build Images Use Case

Architectural Intent:
- Remote build on a persistent build node, then registry push
- Service images are built in fixed-width batches through the shared fan_out utility
- Parallel jobs run in the background on the node; completion is observed
  by polling a per-job exit-status marker file
- A batch with a failed build stops the run before the next batch starts

Security:
- Registry tokens are fed via --password-stdin, never on the command line
"""

from __future__ import annotations
import asyncio
import logging
import shlex
import time
from typing import Awaitable, Callable

from opsfleet.application.dtos.deployment_dtos import BuildRequest, BuildResult
from opsfleet.application.orchestration.fanout import fan_out
from opsfleet.application.use_cases.resolve_targets import pinned_target
from opsfleet.application.use_cases.source_sync import sync_git, sync_push
from opsfleet.domain.entities.app_config import (
    AppConfig,
    BuildImageSection,
    BuildSection,
    resolve_env_value,
)
from opsfleet.domain.errors import ConfigError, OpsError, RemoteExecutionError, ResolutionError
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.ports.remote_session_port import (
    RemoteSessionFactoryPort,
    RemoteSessionPort,
)
from opsfleet.domain.value_objects.node import DeployTarget
from opsfleet.domain.value_objects.target_ref import DEFAULT_ZONE, NodeIdRef

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s"
    return f"{secs // 60}m{secs % 60}s"


class BuildImages:
    def __init__(
        self,
        control_plane: ControlPlanePort,
        session_factory: RemoteSessionFactoryPort,
        output: OutputPort,
        zone: str = DEFAULT_ZONE,
        poll_interval: float = 2.0,
        job_timeout: float = 3600.0,
    ):
        self.control_plane = control_plane
        self.session_factory = session_factory
        self.output = output
        self.zone = zone
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout

    async def execute(self, request: BuildRequest) -> BuildResult:
        started = time.monotonic()
        config = AppConfig.load(request.config_path)
        build = config.build
        if build is None:
            raise ConfigError(
                "ops.toml missing [build] section. Add a [build] section to enable remote builds."
            )

        node = await self._resolve_build_node(config, build)
        self.output.step(f"Connecting to build node {node}...")

        async with self.session_factory.open(node) as session:
            await session.run(f"mkdir -p {shlex.quote(build.path)}")
            await self._sync_code(config, build, session, request)

            if build.command:
                self.output.step("Running build...")
                cmd_start = time.monotonic()
                await session.run(
                    f"cd {shlex.quote(build.path)} && {build.command}", stream=True
                )
                self.output.success(
                    f"   Build complete ({format_duration(time.monotonic() - cmd_start)})"
                )

            result = BuildResult()
            if build.image is not None:
                result = await self._build_images(build, build.image, session, request)

        self.output.result(
            f"\n[+] Build finished in {format_duration(time.monotonic() - started)}"
            if not result.failed
            else f"\n[-] Build failed for: {', '.join(result.failed)}"
        )
        return result

    async def _resolve_build_node(
        self, config: AppConfig, build: BuildSection
    ) -> DeployTarget:
        if build.node is not None:
            ref = NodeIdRef(build.node)
            return DeployTarget(node_id=build.node, domain=ref.domain(self.zone))
        if config.target:
            return pinned_target(config.target, self.zone)
        if not config.project:
            raise ConfigError(
                "Cannot resolve build node: set build.node, target, or project in ops.toml"
            )
        group = await self.control_plane.get_deploy_targets(config.project, config.app_name)
        if not group.members:
            raise ResolutionError(
                f"No nodes found for project '{config.project}'. Set build.node explicitly."
            )
        return group.primary or group.members[0]

    async def _sync_code(
        self,
        config: AppConfig,
        build: BuildSection,
        session: RemoteSessionPort,
        request: BuildRequest,
    ) -> None:
        source = config.deploy.source
        if source == "git" and config.deploy.git is not None:
            self.output.step("Syncing code (git)...")
            ref = await sync_git(
                session,
                config.deploy.git,
                build.path,
                config.deploy.branch,
                config.project or config.app_name,
                git_ref=request.git_ref,
            )
            self.output.success(f"   Code synced (ref: {ref})")
        elif source == "push":
            self.output.step("Syncing code (rsync)...")
            await sync_push(session, build.path)
            self.output.success("   Code synced")

    async def _build_images(
        self,
        build: BuildSection,
        image: BuildImageSection,
        session: RemoteSessionPort,
        request: BuildRequest,
    ) -> BuildResult:
        services = (request.service,) if request.service else image.services
        if not services:
            raise ConfigError("[build.image] lists no services")
        tag = request.tag or "latest"
        jobs = request.jobs or build.jobs

        self.output.step(
            f"Building Docker images... ({len(services)} services, tag: {tag}, jobs: {jobs})"
        )
        await session.run(
            f"docker login {shlex.quote(image.registry)} "
            f"-u {shlex.quote(resolve_env_value(image.username))} --password-stdin",
            stdin=resolve_env_value(image.token),
        )
        self.output.success("   Registry login")

        def build_cmd(svc: str) -> str:
            return (
                f"cd {shlex.quote(build.path)} && docker build -f {image.dockerfile} "
                f"--build-arg {image.binary_arg}={svc} "
                f"-t {image.prefix}/{svc}:{tag} -t {image.prefix}/{svc}:latest ."
            )

        def push_cmd(svc: str) -> str:
            return (
                f"docker push {image.prefix}/{svc}:{tag} && "
                f"docker push {image.prefix}/{svc}:latest"
            )

        img_start = time.monotonic()
        outcomes = await fan_out(
            services,
            self._job_runner(session, "build", build_cmd, background=jobs > 1),
            batch_size=jobs,
            stop_on_failure=True,
        )
        built = tuple(o.item for o in outcomes if o.ok)
        failed = tuple(o.item for o in outcomes if not o.ok)
        if failed:
            return BuildResult(built=built, failed=failed)

        pushed = False
        if not request.no_push:
            self.output.detail("   Pushing images...")
            push_outcomes = await fan_out(
                services,
                self._job_runner(session, "push", push_cmd, background=jobs > 1),
                batch_size=jobs,
                stop_on_failure=True,
            )
            push_failed = tuple(o.item for o in push_outcomes if not o.ok)
            if push_failed:
                return BuildResult(built=built, failed=push_failed)
            pushed = True
            self.output.success("   All images pushed")

        action = "built & pushed" if pushed else "built"
        self.output.success(
            f"   {len(services)} service images {action} "
            f"({format_duration(time.monotonic() - img_start)})"
        )

        try:
            await session.run("docker image prune -f 2>/dev/null")
        except RemoteExecutionError as e:
            logger.debug("Image prune failed: %s", e)

        return BuildResult(built=built, pushed=pushed)

    def _job_runner(
        self,
        session: RemoteSessionPort,
        kind: str,
        command_for: Callable[[str], str],
        background: bool,
    ) -> Callable[[str], Awaitable[int]]:
        async def run(svc: str) -> int:
            if background:
                code = await self._run_background(session, kind, svc, command_for(svc))
            else:
                self.output.detail(f"   {kind} {svc}")
                await session.run(command_for(svc), stream=True)
                code = 0
            self.output.success(f"   ✔ {kind} {svc}")
            return code

        return run

    async def _run_background(
        self, session: RemoteSessionPort, kind: str, svc: str, command: str
    ) -> int:
        marker = f"/tmp/ops_{kind}_{svc}.exit"
        log = f"/tmp/ops_{kind}_{svc}.log"
        job = f"({command}) > {log} 2>&1; echo $? > {marker}"

        await session.run(
            f"rm -f {marker}; nohup sh -c {shlex.quote(job)} > /dev/null 2>&1 &"
        )

        deadline = time.monotonic() + self.job_timeout
        while True:
            status = (await session.run_output(f"cat {marker} 2>/dev/null || true")).strip()
            if status:
                break
            if time.monotonic() > deadline:
                raise OpsError(f"Timed out waiting for {kind} of {svc}")
            await asyncio.sleep(self.poll_interval)

        code = int(status) if status.lstrip("-").isdigit() else -1
        if code != 0:
            tail = await session.run_output(f"tail -30 {log} 2>/dev/null || true")
            self.output.error(f"   ✘ {kind} {svc} (exit {code})")
            self.output.error(f"   --- {svc} {kind} log ---\n{tail}")
            raise RemoteExecutionError(command, code, tail)
        return code
