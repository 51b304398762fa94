"""
Fabric Session Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteSessionPort via Fabric/SSH
- One Connection per target, opened lazily on the first command
- Blocking Fabric and rsync calls run in the default executor so parallel
  pipelines do not stall the event loop

Security:
- Each session fetches a short-lived CI key from the control plane
- The key lives in a 0600 temp file that is removed on every exit path,
  including failures and cancellation
- Secrets passed via stdin are never logged
"""

from __future__ import annotations
import asyncio
import io
import logging
import os
import subprocess
import tempfile
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, Optional, Sequence

from fabric import Connection

from opsfleet.domain.errors import OpsError, RemoteExecutionError
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.remote_session_port import (
    RemoteSessionFactoryPort,
    RemoteSessionPort,
)
from opsfleet.domain.value_objects.node import DeployTarget

logger = logging.getLogger(__name__)

SSH_OPTIONS = "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null -o LogLevel=ERROR"


@contextmanager
def ephemeral_key_file(key: str) -> Iterator[str]:
    """Writes a private key to a 0600 temp file and removes it on exit."""
    fd, path = tempfile.mkstemp(prefix="ops_key_", suffix=".pem")
    try:
        os.chmod(path, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key if key.endswith("\n") else key + "\n")
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def rsync_command(
    local_path: str,
    destination: str,
    key_path: str,
    port: int = 22,
    excludes: Sequence[str] = (),
    delete: bool = False,
) -> list[str]:
    cmd = ["rsync", "-az"]
    if delete:
        cmd.append("--delete")
    for pattern in excludes:
        cmd.append(f"--exclude={pattern}")
    cmd += ["-e", f"ssh -i {key_path} -p {port} {SSH_OPTIONS}"]
    source = local_path
    if os.path.isdir(local_path) and not local_path.endswith("/"):
        source = local_path + "/"
    cmd += [source, destination]
    return cmd


class FabricRemoteSession(RemoteSessionPort):
    def __init__(
        self,
        target: DeployTarget,
        connection: Connection,
        key_path: str,
        user: str = "root",
        port: int = 22,
    ):
        self._target = target
        self._connection = connection
        self._key_path = key_path
        self._user = user
        self._port = port

    @property
    def target(self) -> DeployTarget:
        return self._target

    @property
    def credential_path(self) -> Optional[str]:
        return self._key_path

    def _run_sync(self, command: str, stdin: Optional[str], stream: bool):
        logger.debug("Running on %s: %s", self._target, command)
        result = self._connection.run(
            command,
            hide=not stream,
            warn=True,
            in_stream=io.StringIO(stdin) if stdin is not None else False,
        )
        if result.failed:
            raise RemoteExecutionError(command, result.return_code, result.stderr)
        return result

    async def run(
        self, command: str, stdin: Optional[str] = None, stream: bool = False
    ) -> None:
        await asyncio.get_event_loop().run_in_executor(
            None, self._run_sync, command, stdin, stream
        )

    async def run_output(self, command: str) -> str:
        result = await asyncio.get_event_loop().run_in_executor(
            None, self._run_sync, command, None, False
        )
        return result.stdout

    async def push_dir(
        self,
        local_path: str,
        remote_path: str,
        excludes: Sequence[str] = (),
        delete: bool = False,
    ) -> None:
        parent = remote_path if os.path.isdir(local_path) else os.path.dirname(remote_path)
        if parent:
            await self.run(f"mkdir -p {parent}")

        cmd = rsync_command(
            local_path,
            f"{self._user}@{self._target.domain}:{remote_path}",
            self._key_path,
            port=self._port,
            excludes=excludes,
            delete=delete,
        )

        def _rsync():
            try:
                return subprocess.run(cmd, capture_output=True, text=True)
            except FileNotFoundError:
                raise OpsError("rsync not found. Install rsync to push files.") from None

        result = await asyncio.get_event_loop().run_in_executor(None, _rsync)
        if result.returncode != 0:
            raise RemoteExecutionError(" ".join(cmd), result.returncode, result.stderr)


class FabricSessionFactory(RemoteSessionFactoryPort):
    """Opens Fabric sessions authenticated with per-target ephemeral CI keys."""

    def __init__(
        self,
        control_plane: ControlPlanePort,
        user: str = "root",
        port: int = 22,
        connect_timeout: int = 30,
    ):
        self.control_plane = control_plane
        self.user = user
        self.port = port
        self.connect_timeout = connect_timeout

    async def _fetch_key(self, target: DeployTarget) -> str:
        if target.node_id > 0:
            return await self.control_plane.get_node_ci_key(target.node_id)
        # synthetic app targets carry "<app>.<project>.<zone>"
        app, project = target.domain.split(".")[:2]
        return await self.control_plane.get_app_ci_key(project, app)

    def _connection(self, target: DeployTarget, key_path: str) -> Connection:
        return Connection(
            host=target.domain,
            user=self.user,
            port=self.port,
            connect_timeout=self.connect_timeout,
            connect_kwargs={
                "key_filename": key_path,
                "allow_agent": False,
                "look_for_keys": False,
            },
        )

    @asynccontextmanager
    async def open(self, target: DeployTarget) -> AsyncIterator[RemoteSessionPort]:
        key = await self._fetch_key(target)
        with ephemeral_key_file(key) as key_path:
            conn = self._connection(target, key_path)
            try:
                yield FabricRemoteSession(
                    target, conn, key_path, user=self.user, port=self.port
                )
            finally:
                conn.close()
