"""
Manage Node Groups Use Case

Architectural Intent:
- Create, list and inspect node groups (pools) per project and environment
- Read-mostly: the control plane owns group state and health probing
"""

from __future__ import annotations
from typing import Optional

from opsfleet.domain.entities.node_group import NodeGroup
from opsfleet.domain.ports.control_plane_port import (
    ControlPlanePort,
    NodeGroupSummary,
)
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.value_objects.lb_strategy import LbStrategy
from opsfleet.domain.value_objects.node import DeployTarget, NodeStatus
from opsfleet.domain.value_objects.target_ref import parse_app_target

_STATUS_ICONS = {
    NodeStatus.HEALTHY: "●",
    NodeStatus.UNHEALTHY: "✘",
    NodeStatus.DRAINING: "◐",
}


def summary_icon(summary: NodeGroupSummary) -> str:
    if summary.node_count == 0:
        return "○"
    if summary.healthy_count == summary.node_count:
        return "●"
    if summary.healthy_count > 0:
        return "◐"
    return "✘"


def _node_line(node: DeployTarget) -> str:
    icon = _STATUS_ICONS.get(node.status, "○")
    return (
        f"  {icon} {node.label} ({node.ip_address or '-'}) - {node.region or '-'} "
        f"zone:{node.zone or '-'} weight:{node.weight}"
    )


class NodeGroupService:
    def __init__(self, control_plane: ControlPlanePort, output: OutputPort):
        self.control_plane = control_plane
        self.output = output

    async def create(
        self,
        project: str,
        environment: str,
        name: Optional[str] = None,
        strategy: str = "round-robin",
    ) -> NodeGroup:
        parsed = LbStrategy.parse(strategy)

        self.output.step("Creating node group...")
        self.output.detail(f"  Project:     {project}")
        self.output.detail(f"  Environment: {environment}")
        if name:
            self.output.detail(f"  Name:        {name}")
        self.output.detail(f"  Strategy:    {parsed}")

        group = await self.control_plane.create_node_group(
            project, environment, name, parsed
        )

        self.output.success(f"✔ Node group #{group.id} created")
        self._print_details(group)
        self.output.detail("")
        self.output.step("Next steps:")
        self.output.detail("  1. SSH into your server(s)")
        self.output.detail(f"  2. Run: ops set {environment}.{project} --region <region>")
        return group

    async def list_groups(self, project: Optional[str] = None) -> list[NodeGroupSummary]:
        groups = await self.control_plane.list_node_groups(project)

        if not groups:
            self.output.warn("No node groups found.")
            self.output.detail(
                "Create one with: ops node-group create --project <name> --env <environment>"
            )
            return groups

        self.output.step("Node Groups:")
        for g in groups:
            self.output.detail(
                f"  {summary_icon(g)} #{g.id} {g.name} ({g.project_name}) - "
                f"{g.node_count} nodes ({g.healthy_count} healthy) [{g.lb_strategy}]"
            )
        self.output.detail("")
        self.output.detail("Use 'ops node-group show <id>' for details")
        return groups

    async def show(self, group_id: int) -> NodeGroup:
        group = await self.control_plane.get_node_group(group_id)

        self.output.step(f"Node Group: {group.name}")
        self._print_details(group)

        hc = group.health_config
        if hc is not None:
            self.output.step("Health Check Config:")
            self.output.detail(f"  Type:      {hc.check_type}")
            self.output.detail(f"  Endpoint:  {hc.endpoint}")
            self.output.detail(f"  Interval:  {hc.interval_seconds}s")
            self.output.detail(f"  Timeout:   {hc.timeout_seconds}s")
            self.output.detail(
                f"  Thresholds: {hc.unhealthy_threshold} unhealthy / "
                f"{hc.healthy_threshold} healthy"
            )

        self.output.step(f"Nodes ({group.total}):")
        if not group.members:
            self.output.detail("  No nodes in this group.")
            self.output.detail(
                f"  Add nodes by running on your server: "
                f"ops set {group.environment}.{group.project} --region <region>"
            )
        for node in group.members:
            self.output.detail(_node_line(node))
            self.output.detail(f"      Domain: {node.domain}")
        return group

    async def nodes(self, target: str) -> NodeGroup:
        ref = parse_app_target(target)
        group = await self.control_plane.get_nodes_in_env(ref.project, ref.app)

        self.output.step(f"Node Group ({ref.domain()})")
        self.output.detail(f"  Name:     {group.name}")
        self.output.detail(f"  Strategy: {group.lb_strategy}")

        if not group.members:
            self.output.warn("No nodes found.")
            return group

        self.output.step(f"Nodes ({group.total}):")
        for node in group.members:
            self.output.detail(_node_line(node))
        return group

    def _print_details(self, group: NodeGroup) -> None:
        self.output.detail(f"  ID:          {group.id}")
        self.output.detail(f"  Name:        {group.name}")
        self.output.detail(f"  Project:     {group.project}")
        self.output.detail(f"  Environment: {group.environment}")
        self.output.detail(f"  Strategy:    {group.lb_strategy}")
