"""
Target Selection Service

Architectural Intent:
- Pure decisions over already-fetched metadata, no I/O
- Filtering by node id / region fails loudly instead of yielding an empty deploy
- Auto-allocation picks a node from a pre-made operator choice
"""

from __future__ import annotations
from typing import Optional, Sequence

from opsfleet.domain.errors import ResolutionError
from opsfleet.domain.ports.control_plane_port import RegisteredNode
from opsfleet.domain.value_objects.node import DeployTarget, NodeStatus


def filter_targets(
    targets: Sequence[DeployTarget],
    node_id: Optional[int] = None,
    region: Optional[str] = None,
) -> list[DeployTarget]:
    """Applies exact-match node and region filters, preserving order."""
    selected = list(targets)
    if node_id is not None:
        selected = [t for t in selected if t.node_id == node_id]
        if not selected:
            raise ResolutionError(f"Node {node_id} is not bound to this app")
    if region is not None:
        selected = [t for t in selected if t.region == region]
        if not selected:
            raise ResolutionError(f"No nodes in region '{region}' bound to this app")
    return selected


def allocation_candidates(nodes: Sequence[RegisteredNode]) -> list[RegisteredNode]:
    return [n for n in nodes if n.is_unbound]


def choose_allocation(
    candidates: Sequence[RegisteredNode], choice: Optional[int]
) -> RegisteredNode:
    """
    Returns the candidate at a zero-based index. None means the operator declined.
    """
    if not candidates:
        raise ResolutionError("No available nodes to allocate. Register one with `ops init`.")
    if choice is None:
        raise ResolutionError("Auto-allocation cancelled")
    if not (0 <= choice < len(candidates)):
        raise ResolutionError(
            f"Invalid choice {choice + 1}; pick 1-{len(candidates)}"
        )
    return candidates[choice]


def allocated_target(node: RegisteredNode) -> DeployTarget:
    """The deploy target for a node that was just bound as primary."""
    return DeployTarget(
        node_id=node.id,
        domain=node.domain,
        ip_address=node.ip_address,
        hostname=node.hostname,
        region=node.region,
        is_primary=True,
        status=NodeStatus.UNKNOWN,
    )
