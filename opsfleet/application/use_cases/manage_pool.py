"""
Manage Pool Use Case

Architectural Intent:
- Inspects and mutates the node pool behind one app ("app.project")
- Every mutation needs a node-group id; single-node apps are rejected
- Membership is validated locally before any control-plane mutation is sent
"""

from __future__ import annotations
import logging

from opsfleet.domain.entities.node_group import NodeGroup
from opsfleet.domain.errors import ResolutionError
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.value_objects.lb_strategy import LbStrategy
from opsfleet.domain.value_objects.node import NodeStatus
from opsfleet.domain.value_objects.target_ref import AppRef, parse_app_target

logger = logging.getLogger(__name__)

_STATUS_ROW = "  {:<8} {:<28} {:<16} {:<14} {:<10} {:<8}"


class PoolService:
    def __init__(self, control_plane: ControlPlanePort, output: OutputPort):
        self.control_plane = control_plane
        self.output = output

    async def _load(self, target: str) -> tuple[AppRef, NodeGroup]:
        ref = parse_app_target(target)
        group = await self.control_plane.get_deploy_targets(ref.project, ref.app)
        return ref, group

    @staticmethod
    def _require_pool(group: NodeGroup, message: str) -> int:
        if group.id is None:
            raise ResolutionError(message)
        return group.id

    async def status(self, target: str) -> NodeGroup:
        ref, group = await self._load(target)

        self.output.step(f"Pool status for {ref}\n")
        self.output.detail(f"  Mode:     {group.mode.value}")
        self.output.detail(f"  Strategy: {group.lb_strategy}")
        if group.id is not None:
            self.output.detail(f"  Group ID: {group.id}")
        self.output.detail("")

        if not group.members:
            self.output.detail("  No nodes bound to this app.")
            return group

        self.output.detail(
            _STATUS_ROW.format("ID", "Domain", "IP", "Region", "Status", "Primary")
        )
        self.output.detail("  " + "-" * 84)
        for m in group.members:
            self.output.detail(
                _STATUS_ROW.format(
                    m.node_id,
                    m.domain,
                    m.ip_address,
                    m.region or "-",
                    m.status.value,
                    "yes" if m.is_primary else "-",
                )
            )

        self.output.result(f"\n  {group.healthy_count}/{group.total} nodes healthy")
        return group

    async def set_strategy(self, target: str, strategy: str) -> NodeGroup:
        parsed = LbStrategy.parse(strategy)
        ref, group = await self._load(target)
        group_id = self._require_pool(
            group, "App is in single-node mode. Bind a second node to enable pool mode."
        )

        self.output.step(f"Updating strategy for {ref} to {parsed}...")
        await self.control_plane.update_node_group_strategy(group_id, parsed)
        self.output.success(f"✔ Strategy updated to {parsed}")
        return group.with_strategy(parsed)

    async def drain(self, target: str, node_id: int) -> NodeGroup:
        ref, group = await self._load(target)
        group_id = self._require_pool(group, "App is in single-node mode. Cannot drain.")
        member = group.member(node_id)

        if member.status == NodeStatus.DRAINING:
            self.output.warn(f"Node {node_id} is already draining")
            return group

        self.output.step(f"Draining node {node_id} from {ref}...")
        await self.control_plane.drain_node(group_id, node_id)
        logger.info("Drained node %d from group %d", node_id, group_id)
        self.output.success(
            f"✔ Node {node_id} is now draining (no new traffic will be routed)"
        )
        return group.drain(node_id)

    async def undrain(self, target: str, node_id: int) -> NodeGroup:
        ref, group = await self._load(target)
        group_id = self._require_pool(group, "App is in single-node mode. Cannot undrain.")
        group.member(node_id)

        self.output.step(f"Restoring node {node_id} in {ref}...")
        await self.control_plane.undrain_node(group_id, node_id)
        logger.info("Undrained node %d in group %d", node_id, group_id)
        self.output.success(f"✔ Node {node_id} is back in rotation")
        return group.undrain(node_id)
