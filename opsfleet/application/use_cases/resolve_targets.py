"""
Target Resolver

Architectural Intent:
- Turns a logical deploy request into a concrete, ordered list of targets
- Pure metadata lookup: never opens a remote connection
- Filters that match nothing fail before any SSH cost is paid

Resolution Order:
1. A target pinned in ops.toml yields a single synthetic target
2. Otherwise the control plane lists the nodes bound to (project, app)
3. If nothing is bound, an interactive operator may allocate an unbound node;
   non-interactive runs fail with an explicit error
"""

import logging
from typing import Optional

from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.errors import ConfigError, ResolutionError
from opsfleet.domain.ports.control_plane_port import ControlPlanePort
from opsfleet.domain.ports.output_port import OutputPort
from opsfleet.domain.ports.prompt_port import PromptPort
from opsfleet.domain.services.target_selection import (
    allocated_target,
    allocation_candidates,
    choose_allocation,
    filter_targets,
)
from opsfleet.domain.value_objects.node import DeployTarget
from opsfleet.domain.value_objects.target_ref import (
    DEFAULT_ZONE,
    NodeIdRef,
    parse_target,
)

logger = logging.getLogger(__name__)


def pinned_target(text: str, zone: str = DEFAULT_ZONE) -> DeployTarget:
    """Synthetic target for a literal `target` in ops.toml."""
    ref = parse_target(text)
    if isinstance(ref, NodeIdRef):
        return DeployTarget(node_id=ref.node_id, domain=ref.domain(zone), is_primary=True)
    return DeployTarget(node_id=0, domain=ref.domain(zone), is_primary=True)


class TargetResolver:
    def __init__(
        self,
        control_plane: ControlPlanePort,
        prompt: PromptPort,
        output: OutputPort,
        zone: str = DEFAULT_ZONE,
    ):
        self.control_plane = control_plane
        self.prompt = prompt
        self.output = output
        self.zone = zone

    async def resolve(
        self,
        config: AppConfig,
        app: Optional[str] = None,
        node_id: Optional[int] = None,
        region: Optional[str] = None,
    ) -> list[DeployTarget]:
        targets = await self._resolve_bound(config, app)
        selected = filter_targets(targets, node_id=node_id, region=region)
        logger.info(
            "Resolved %d target(s): %s",
            len(selected),
            ", ".join(str(t.node_id) for t in selected),
        )
        return selected

    async def _resolve_bound(
        self, config: AppConfig, app: Optional[str]
    ) -> list[DeployTarget]:
        if config.target:
            return [pinned_target(config.target, self.zone)]

        if not config.project:
            raise ConfigError("ops.toml must have 'target' or 'project'")

        app_name = app or config.app_name
        group = await self.control_plane.get_deploy_targets(config.project, app_name)
        if group.members:
            return list(group.members)

        return [await self._auto_allocate(config.project, app_name)]

    async def _auto_allocate(self, project: str, app: str) -> DeployTarget:
        if not self.prompt.interactive:
            raise ResolutionError(
                f"No nodes bound to '{app}.{project}'. "
                f"Bind one with `ops set {app}.{project} --node <id>` or run interactively."
            )

        candidates = allocation_candidates(await self.control_plane.list_nodes())
        choice: Optional[int] = None
        if candidates:
            self.output.step(f"No nodes bound to {app}.{project}. Available nodes:")
            choice = self.prompt.select(
                "Select a node to bind as primary", [str(c) for c in candidates], 0
            )

        node = choose_allocation(candidates, choice)
        await self.control_plane.bind_node_by_name(project, app, node.id, is_primary=True)
        self.output.success(f"Bound node {node.id} to {app}.{project} as primary")
        return allocated_target(node)
