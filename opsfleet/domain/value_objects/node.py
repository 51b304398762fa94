"""
Deploy Target Value Object

Architectural Intent:
- Immutable value object representing one deployable node for a deploy run
- Built from control-plane node-binding records, read-only to the orchestrator
- Validates the routable domain (DNS, IPv4, IPv6)
- Stores the advisory weight as the control plane reports it
"""

from __future__ import annotations
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

# RFC 1123 hostname: labels of alnum/hyphens, dot-separated
_HOSTNAME_RE = re.compile(
    r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$"
)

_IPV4_RE = re.compile(
    r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$"
)

_IPV6_RE = re.compile(r"^[0-9a-fA-F:]+$")


def _is_valid_hostname(host: str) -> bool:
    """Validate hostname as DNS name, IPv4, or IPv6."""
    if not host:
        return False

    m = _IPV4_RE.match(host)
    if m:
        return all(0 <= int(g) <= 255 for g in m.groups())

    if _IPV6_RE.match(host) and ":" in host:
        return True

    if _HOSTNAME_RE.match(host) and len(host) <= 253:
        return True

    return False


class NodeStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DRAINING = "draining"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "NodeStatus":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class DeployTarget:
    """
    One resolved node instance. `weight` is stored as reported and shown only;
    load balancing is enforced by the control plane.
    """
    node_id: int
    domain: str
    ip_address: str = ""
    hostname: Optional[str] = None
    region: Optional[str] = None
    zone: Optional[str] = None
    weight: int = 100
    is_primary: bool = False
    status: NodeStatus = NodeStatus.UNKNOWN

    def __post_init__(self) -> None:
        if self.node_id < 0:
            raise ValueError(f"Node id must be non-negative, got {self.node_id}")
        if not _is_valid_hostname(self.domain):
            raise ValueError(f"Invalid domain: {self.domain!r}")

    def __str__(self) -> str:
        return f"node {self.node_id} ({self.domain})"

    @property
    def label(self) -> str:
        return self.hostname or self.ip_address or self.domain

    def with_status(self, status: NodeStatus) -> "DeployTarget":
        return replace(self, status=status)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DeployTarget":
        weight = data.get("weight")
        return DeployTarget(
            node_id=int(data.get("node_id", data.get("id", 0))),
            domain=data["domain"],
            ip_address=data.get("ip_address") or "",
            hostname=data.get("hostname"),
            region=data.get("region"),
            zone=data.get("zone"),
            weight=int(weight) if weight is not None else 100,
            is_primary=bool(data.get("is_primary", False)),
            status=NodeStatus.parse(data.get("status")),
        )
