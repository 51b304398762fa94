"""
Remote Session Port

Architectural Intent:
- Port interface for an authenticated channel to exactly one deploy target
- One session amortizes the credential fetch across many commands
- Implemented by adapters (Fabric/SSH, test fakes)

Ownership:
- A session belongs to one pipeline execution and is never shared across targets
- The factory's context manager guarantees release of the session credential
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional, Sequence
from opsfleet.domain.value_objects.node import DeployTarget


class RemoteSessionPort(ABC):
    """
    Port interface for running commands and transferring files on one target.
    """

    @property
    @abstractmethod
    def target(self) -> DeployTarget:
        pass

    @abstractmethod
    async def run(
        self, command: str, stdin: Optional[str] = None, stream: bool = False
    ) -> None:
        """
        Runs a command, optionally feeding stdin or streaming output to the console.
        Raises RemoteExecutionError on a non-zero exit.
        """
        pass

    @abstractmethod
    async def run_output(self, command: str) -> str:
        """
        Runs a command and returns its stdout.
        Raises RemoteExecutionError on a non-zero exit.
        """
        pass

    @abstractmethod
    async def push_dir(
        self,
        local_path: str,
        remote_path: str,
        excludes: Sequence[str] = (),
        delete: bool = False,
    ) -> None:
        """
        Pushes a local file or directory to the target.
        """
        pass

    @property
    @abstractmethod
    def credential_path(self) -> Optional[str]:
        """
        Path of the short-lived key file backing this session, if any.
        """
        pass


class RemoteSessionFactoryPort(ABC):
    @abstractmethod
    def open(self, target: DeployTarget) -> AsyncContextManager[RemoteSessionPort]:
        """
        Opens a session for the target; the credential is released on exit.
        """
        pass
