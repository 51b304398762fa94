"""
Control Plane Port

Architectural Intent:
- Port interface for the external service of record
- Resolves bindings, issues ephemeral credentials, stores deployment records
- Owns node-group state; the orchestrator only reads and requests changes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.entities.node_group import NodeGroup
from opsfleet.domain.value_objects.lb_strategy import LbStrategy


@dataclass(frozen=True)
class RegisteredNode:
    """A node known to the control plane, bound or not."""
    id: int
    domain: str
    ip_address: str = ""
    region: Optional[str] = None
    hostname: Optional[str] = None
    bound_apps: tuple[str, ...] = field(default=())

    @property
    def is_unbound(self) -> bool:
        return not self.bound_apps

    def __str__(self) -> str:
        label = self.hostname or self.ip_address or self.domain
        return f"#{self.id} {label} [{self.region or '-'}]"


@dataclass(frozen=True)
class NodeGroupSummary:
    id: int
    name: str
    lb_strategy: str
    project_name: str = "-"
    node_count: int = 0
    healthy_count: int = 0


@dataclass(frozen=True)
class AppSyncResult:
    app_id: int
    created: bool


class ControlPlanePort(ABC):
    """
    Port interface for the control-plane API.
    """

    @abstractmethod
    async def get_deploy_targets(self, project: str, app: str) -> NodeGroup:
        """
        Returns the nodes bound to (project, app) with mode, strategy and group id.
        """
        pass

    @abstractmethod
    async def list_nodes(self) -> list[RegisteredNode]:
        pass

    @abstractmethod
    async def bind_node_by_name(
        self,
        project: str,
        app: str,
        node_id: int,
        is_primary: bool,
        weight: Optional[int] = None,
    ) -> None:
        """
        Binds a node to an app, creating the app if it does not exist.
        """
        pass

    @abstractmethod
    async def get_node_ci_key(self, node_id: int) -> str:
        pass

    @abstractmethod
    async def get_app_ci_key(self, project: str, app: str) -> str:
        pass

    @abstractmethod
    async def sync_app(self, config: AppConfig) -> AppSyncResult:
        pass

    @abstractmethod
    async def create_deployment(self, app_id: int, trigger: str) -> int:
        """
        Creates a pending deployment record and returns its id.
        """
        pass

    @abstractmethod
    async def update_deployment(
        self, deployment_id: int, status: str, logs: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def create_node_group(
        self,
        project: str,
        environment: str,
        name: Optional[str],
        strategy: LbStrategy,
    ) -> NodeGroup:
        pass

    @abstractmethod
    async def list_node_groups(
        self, project: Optional[str] = None
    ) -> list[NodeGroupSummary]:
        pass

    @abstractmethod
    async def get_node_group(self, group_id: int) -> NodeGroup:
        pass

    @abstractmethod
    async def get_nodes_in_env(self, project: str, environment: str) -> NodeGroup:
        pass

    @abstractmethod
    async def drain_node(self, group_id: int, node_id: int) -> None:
        pass

    @abstractmethod
    async def undrain_node(self, group_id: int, node_id: int) -> None:
        pass

    @abstractmethod
    async def update_node_group_strategy(
        self, group_id: int, strategy: LbStrategy
    ) -> None:
        pass
