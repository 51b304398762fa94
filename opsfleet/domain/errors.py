"""
Error Taxonomy

Architectural Intent:
- Single exception hierarchy for every failure the orchestrator reports
- Resolution and config errors are fatal before any remote I/O
- Remote and pipeline errors are isolated to one target by the coordinator
- Control-plane errors are surfaced but never fail a deploy on their own
"""

from __future__ import annotations
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from opsfleet.application.dtos.deployment_dtos import DeploySummary


class OpsError(Exception):
    """Base class for all orchestrator errors."""


class ConfigError(OpsError):
    """Malformed declarative input or CLI arguments."""


class ResolutionError(OpsError):
    """No bound or matching deploy targets."""


class RemoteExecutionError(OpsError):
    def __init__(
        self, command: str, exit_code: Optional[int] = None, stderr: str = ""
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"Remote command failed (exit {exit_code}): {command}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ControlPlaneError(OpsError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class PipelineError(OpsError):
    """A deployment step failed; remaining steps for the target were skipped."""

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


class PartialFailure(OpsError):
    """At least one target failed while others may have succeeded."""

    def __init__(self, summary: "DeploySummary") -> None:
        self.summary = summary
        super().__init__(
            f"{len(summary.failed)} of {summary.total} nodes failed to deploy"
        )
