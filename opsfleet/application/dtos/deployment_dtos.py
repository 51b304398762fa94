"""
Deployment DTOs

Architectural Intent:
- Data Transfer Objects for deployment use case boundaries
- Input validation at the application boundary
- Decouples external representation from domain model
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from opsfleet.domain.entities.deployment import DeploymentStatus
from opsfleet.domain.value_objects.node import DeployTarget


class DeployMode(Enum):
    ROLLING = "rolling"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class DeployOptions:
    """Per-run switches shared by every pipeline execution."""
    service: Optional[str] = None
    app: Optional[str] = None
    restart_only: bool = False
    env_vars: tuple[str, ...] = ()
    force: bool = False
    interactive: bool = False

    def non_interactive(self) -> "DeployOptions":
        return replace(self, interactive=False)


@dataclass(frozen=True)
class DeployRequest:
    config_path: str = "ops.toml"
    options: DeployOptions = field(default_factory=DeployOptions)
    node_id: Optional[int] = None
    region: Optional[str] = None
    rolling: bool = False

    def __post_init__(self) -> None:
        if not self.config_path:
            raise ValueError("config_path cannot be empty")
        if self.node_id is not None and self.node_id < 0:
            raise ValueError("node_id must be non-negative")


@dataclass(frozen=True)
class HealthCheckResult:
    name: str
    url: str
    reachable: bool


@dataclass(frozen=True)
class PipelineReport:
    target: DeployTarget
    steps: tuple[str, ...] = ()
    health: tuple[HealthCheckResult, ...] = ()

    @property
    def healthy(self) -> bool:
        return all(h.reachable for h in self.health)


@dataclass(frozen=True)
class TargetFailure:
    target: DeployTarget
    error: str


@dataclass(frozen=True)
class DeploySummary:
    succeeded: tuple[DeployTarget, ...] = ()
    failed: tuple[TargetFailure, ...] = ()
    reports: tuple[PipelineReport, ...] = ()
    deployment_id: Optional[int] = None

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def status(self) -> DeploymentStatus:
        return DeploymentStatus.aggregate(len(self.succeeded), len(self.failed))

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def failure_logs(self) -> Optional[str]:
        if not self.failed:
            return None
        return "\n".join(f"node {f.target.node_id}: {f.error}" for f in self.failed)


@dataclass(frozen=True)
class BuildRequest:
    config_path: str = "ops.toml"
    git_ref: Optional[str] = None
    service: Optional[str] = None
    tag: Optional[str] = None
    no_push: bool = False
    jobs: Optional[int] = None

    def __post_init__(self) -> None:
        if self.jobs is not None and self.jobs < 1:
            raise ValueError("jobs must be at least 1")


@dataclass(frozen=True)
class BuildResult:
    built: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    pushed: bool = False
