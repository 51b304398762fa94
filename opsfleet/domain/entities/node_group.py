"""
Node Group Aggregate

Architectural Intent:
- Node group (pool) is the consistency boundary for membership and drain state
- State changes produce new instances, mirroring control-plane transitions
- Draining keeps membership intact and only changes the member's status

Design Decisions:
- A group without an id represents an app still in single-node mode
- Single-to-pool promotion happens server-side on the second bind; the
  orchestrator only observes it through `is_pool`
- The prior status of a drained member is remembered so undrain can restore it
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from opsfleet.domain.errors import ResolutionError
from opsfleet.domain.value_objects.lb_strategy import LbStrategy
from opsfleet.domain.value_objects.node import DeployTarget, NodeStatus


class GroupMode(Enum):
    SINGLE = "single"
    PRIMARY_REPLICA = "primary-replica"
    POOL = "pool"

    @classmethod
    def parse(cls, value: Optional[str]) -> "GroupMode":
        try:
            return cls((value or "single").lower())
        except ValueError:
            return cls.POOL


@dataclass(frozen=True)
class HealthCheckConfig:
    check_type: str = "http"
    endpoint: str = "/health"
    interval_seconds: int = 30
    timeout_seconds: int = 5
    healthy_threshold: int = 2
    unhealthy_threshold: int = 3

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "HealthCheckConfig":
        return HealthCheckConfig(
            check_type=data.get("check_type", "http"),
            endpoint=data.get("endpoint", "/health"),
            interval_seconds=int(data.get("interval_seconds", 30)),
            timeout_seconds=int(data.get("timeout_seconds", 5)),
            healthy_threshold=int(data.get("healthy_threshold", 2)),
            unhealthy_threshold=int(data.get("unhealthy_threshold", 3)),
        )


@dataclass(frozen=True)
class NodeGroup:
    project: str
    environment: str
    name: str = ""
    id: Optional[int] = None
    lb_strategy: LbStrategy = LbStrategy.ROUND_ROBIN
    mode: GroupMode = GroupMode.SINGLE
    health_config: Optional[HealthCheckConfig] = None
    members: tuple[DeployTarget, ...] = ()
    drained_from: tuple[tuple[int, NodeStatus], ...] = field(default=(), repr=False)

    def __post_init__(self) -> None:
        if self.mode == GroupMode.PRIMARY_REPLICA:
            primaries = [m.node_id for m in self.members if m.is_primary]
            if len(primaries) > 1:
                raise ValueError(
                    f"Group {self.name or self.id} has multiple primaries: {primaries}"
                )

    @property
    def is_pool(self) -> bool:
        return self.id is not None

    @property
    def total(self) -> int:
        return len(self.members)

    @property
    def healthy_count(self) -> int:
        return sum(1 for m in self.members if m.status == NodeStatus.HEALTHY)

    @property
    def active_members(self) -> tuple[DeployTarget, ...]:
        return tuple(m for m in self.members if m.status != NodeStatus.DRAINING)

    @property
    def primary(self) -> Optional[DeployTarget]:
        return next((m for m in self.members if m.is_primary), None)

    def member(self, node_id: int) -> DeployTarget:
        for m in self.members:
            if m.node_id == node_id:
                return m
        raise ResolutionError(
            f"Node {node_id} is not bound to {self.environment}.{self.project}"
        )

    def drain(self, node_id: int) -> "NodeGroup":
        current = self.member(node_id)
        if current.status == NodeStatus.DRAINING:
            return self
        return replace(
            self,
            members=self._with_member_status(node_id, NodeStatus.DRAINING),
            drained_from=self.drained_from + ((node_id, current.status),),
        )

    def undrain(self, node_id: int) -> "NodeGroup":
        current = self.member(node_id)
        if current.status != NodeStatus.DRAINING:
            return self
        prior = dict(self.drained_from).get(node_id, NodeStatus.UNKNOWN)
        return replace(
            self,
            members=self._with_member_status(node_id, prior),
            drained_from=tuple(
                (nid, s) for nid, s in self.drained_from if nid != node_id
            ),
        )

    def with_strategy(self, strategy: LbStrategy) -> "NodeGroup":
        return replace(self, lb_strategy=strategy)

    def _with_member_status(
        self, node_id: int, status: NodeStatus
    ) -> tuple[DeployTarget, ...]:
        return tuple(
            m.with_status(status) if m.node_id == node_id else m
            for m in self.members
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "NodeGroup":
        hc = data.get("health_config")
        group_id = data.get("node_group_id", data.get("id"))
        return NodeGroup(
            project=data.get("project_name") or data.get("project") or "",
            environment=data.get("environment") or data.get("app") or "",
            name=data.get("name") or "",
            id=int(group_id) if group_id is not None else None,
            lb_strategy=LbStrategy.parse(data.get("lb_strategy") or "round-robin"),
            mode=GroupMode.parse(
                data.get("mode") or ("pool" if group_id is not None else "single")
            ),
            health_config=HealthCheckConfig.from_dict(hc) if hc else None,
            members=tuple(
                DeployTarget.from_dict(t)
                for t in data.get("targets", data.get("nodes", []))
            ),
        )
