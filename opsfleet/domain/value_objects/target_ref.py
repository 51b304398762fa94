"""
Target Reference Value Object

Architectural Intent:
- Formal grammar for the target strings accepted on the command line and in ops.toml
- Two variants: a numeric node id ("12345") or an app target ("api.RedQ")
- Either form may carry a ":/remote/path" suffix
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

from opsfleet.domain.errors import ConfigError

DEFAULT_ZONE = "ops.autos"


@dataclass(frozen=True)
class NodeIdRef:
    node_id: int
    path: Optional[str] = None

    def domain(self, zone: str = DEFAULT_ZONE) -> str:
        return f"{self.node_id}.node.{zone}"

    def __str__(self) -> str:
        return f"{self.node_id}:{self.path}" if self.path else str(self.node_id)


@dataclass(frozen=True)
class AppRef:
    app: str
    project: str
    path: Optional[str] = None

    def domain(self, zone: str = DEFAULT_ZONE) -> str:
        return f"{self.app}.{self.project}.{zone}"

    def __str__(self) -> str:
        base = f"{self.app}.{self.project}"
        return f"{base}:{self.path}" if self.path else base


TargetRef = Union[NodeIdRef, AppRef]


def parse_target(text: str) -> TargetRef:
    """
    Parses 'ID', 'ID:/path', 'app.project' or 'app.project:/path'.
    """
    raw = text.strip()
    server, sep, path = raw.partition(":")
    path_part = path if sep else None

    if server.isdigit():
        return NodeIdRef(node_id=int(server), path=path_part)

    parts = server.split(".")
    if len(parts) != 2 or not all(parts):
        raise ConfigError(
            f"Invalid target {text!r}. Expected 'app.project' (e.g. api.RedQ) "
            "or a node ID (e.g. 12345)"
        )
    return AppRef(app=parts[0], project=parts[1], path=path_part)


def parse_app_target(text: str) -> AppRef:
    """Like parse_target, but rejects node ids."""
    ref = parse_target(text)
    if isinstance(ref, NodeIdRef):
        raise ConfigError(
            f"Expected app.project format (e.g. api.RedQ), not a node ID: {text!r}"
        )
    return ref
