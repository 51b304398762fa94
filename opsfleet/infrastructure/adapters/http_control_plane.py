"""
HTTP Control Plane Adapter

Architectural Intent:
- Implements ControlPlanePort against the ops.autos REST API
- Uses stdlib urllib for the HTTP layer (no external dependencies)
- Blocking requests run in the default executor

Design Decisions:
- Bearer-token auth on every call; a missing token fails before any request
- Error bodies of the form {"error": "..."} become ControlPlaneError messages,
  anything else is surfaced as raw text with the HTTP status
"""

from __future__ import annotations
import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional

from opsfleet.domain.entities.app_config import AppConfig
from opsfleet.domain.entities.node_group import NodeGroup
from opsfleet.domain.errors import ConfigError, ControlPlaneError
from opsfleet.domain.ports.control_plane_port import (
    AppSyncResult,
    ControlPlanePort,
    NodeGroupSummary,
    RegisteredNode,
)
from opsfleet.domain.value_objects.lb_strategy import LbStrategy

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.ops.autos"


def extract_github_repo(url: str) -> Optional[str]:
    """Returns "owner/repo" for GitHub SSH or HTTPS clone URLs."""
    if "github.com" not in url:
        return None
    repo = (
        url.replace("git@github.com:", "")
        .replace("https://github.com/", "")
        .removesuffix(".git")
    )
    return repo if "/" in repo else None


def parse_error_body(body: str, status: Optional[int] = None) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return body.strip() or f"HTTP Error: {status}"


def bound_app_label(app: Any) -> str:
    """Bound-app records arrive as {"name", "project_name", ...} or plain strings."""
    if isinstance(app, dict):
        name = app.get("name") or app.get("app_name") or ""
        project = app.get("project_name") or app.get("project") or ""
        return f"{name}.{project}" if project else name
    return str(app)


class HttpControlPlane(ControlPlanePort):
    def __init__(
        self,
        token: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _request_sync(
        self, method: str, path: str, body: Optional[dict[str, Any]] = None
    ) -> Any:
        if not self._token:
            raise ControlPlaneError("You are not logged in. Please run `ops login` first.")

        data = json.dumps(body).encode() if body is not None else None
        req = urllib.request.Request(
            f"{self._base_url}{path}",
            data=data,
            method=method,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        logger.debug("%s %s", method, path)

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read().decode()
        except urllib.error.HTTPError as e:
            text = e.read().decode(errors="replace")
            raise ControlPlaneError(parse_error_body(text, e.code), status=e.code) from None
        except urllib.error.URLError as e:
            raise ControlPlaneError(f"Control plane unreachable: {e.reason}") from None

        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            raise ControlPlaneError(f"Failed to parse response from {path}") from None

    async def _request(
        self, method: str, path: str, body: Optional[dict[str, Any]] = None
    ) -> Any:
        return await asyncio.get_event_loop().run_in_executor(
            None, self._request_sync, method, path, body
        )

    @staticmethod
    def _q(value: str) -> str:
        return urllib.parse.quote(value, safe="")

    async def get_deploy_targets(self, project: str, app: str) -> NodeGroup:
        data = await self._request(
            "GET", f"/apps/{self._q(project)}/{self._q(app)}/deploy-targets"
        )
        data.setdefault("project_name", project)
        data.setdefault("environment", app)
        return NodeGroup.from_dict(data)

    async def list_nodes(self) -> list[RegisteredNode]:
        data = await self._request("GET", "/nodes-v2")
        return [
            RegisteredNode(
                id=int(n["id"]),
                domain=n["domain"],
                ip_address=n.get("ip_address") or "",
                region=n.get("region"),
                hostname=n.get("hostname"),
                bound_apps=tuple(
                    bound_app_label(a) for a in (n.get("bound_apps") or n.get("apps") or ())
                ),
            )
            for n in data.get("nodes", [])
        ]

    async def bind_node_by_name(
        self,
        project: str,
        app: str,
        node_id: int,
        is_primary: bool,
        weight: Optional[int] = None,
    ) -> None:
        body: dict[str, Any] = {
            "project": project,
            "app": app,
            "node_id": node_id,
            "is_primary": is_primary,
        }
        if weight is not None:
            if not 1 <= weight <= 100:
                raise ConfigError(f"Weight must be 1-100, got {weight}")
            body["weight"] = weight
        await self._request("POST", "/apps/bind-by-name", body)

    async def get_node_ci_key(self, node_id: int) -> str:
        data = await self._request("GET", f"/nodes-v2/{node_id}/ci-key")
        return data["private_key"]

    async def get_app_ci_key(self, project: str, app: str) -> str:
        data = await self._request(
            "GET", f"/apps/{self._q(project)}/{self._q(app)}/ci-key"
        )
        return data["private_key"]

    async def sync_app(self, config: AppConfig) -> AppSyncResult:
        git = config.deploy.git
        body = {
            "target": config.target,
            "project": config.project,
            "name": config.app_name,
            "deploy_path": config.deploy_path,
            "github_repo": extract_github_repo(git.repo) if git else None,
            "github_branch": config.deploy.branch,
            "routes": [
                {"domain": r.domain, "port": r.port, "ssl": r.ssl} for r in config.routes
            ],
        }
        data = await self._request("PUT", "/apps/sync", body)
        return AppSyncResult(
            app_id=int(data.get("app_id", data.get("id"))),
            created=bool(data.get("created", False)),
        )

    async def create_deployment(self, app_id: int, trigger: str) -> int:
        data = await self._request(
            "POST", f"/apps/{app_id}/deployments", {"trigger": trigger}
        )
        return int(data.get("deployment_id", data.get("id")))

    async def update_deployment(
        self, deployment_id: int, status: str, logs: Optional[str] = None
    ) -> None:
        await self._request(
            "PATCH",
            f"/apps/deployments/{deployment_id}",
            {"status": status, "logs": logs},
        )

    async def create_node_group(
        self,
        project: str,
        environment: str,
        name: Optional[str],
        strategy: LbStrategy,
    ) -> NodeGroup:
        body: dict[str, Any] = {
            "project": project,
            "environment": environment,
            "lb_strategy": strategy.value,
        }
        if name:
            body["name"] = name
        data = await self._request("POST", "/node-groups", body)
        group = data.get("node_group", data)
        group.setdefault("project_name", project)
        return NodeGroup.from_dict(group)

    async def list_node_groups(
        self, project: Optional[str] = None
    ) -> list[NodeGroupSummary]:
        path = "/node-groups"
        if project:
            path += "?" + urllib.parse.urlencode({"project": project})
        data = await self._request("GET", path)
        return [
            NodeGroupSummary(
                id=int(g["id"]),
                name=g.get("name") or "",
                lb_strategy=g.get("lb_strategy") or "round-robin",
                project_name=g.get("project_name") or "-",
                node_count=int(g.get("node_count") or 0),
                healthy_count=int(g.get("healthy_count") or 0),
            )
            for g in data.get("node_groups", [])
        ]

    async def get_node_group(self, group_id: int) -> NodeGroup:
        data = await self._request("GET", f"/node-groups/{group_id}")
        return NodeGroup.from_dict(data)

    async def get_nodes_in_env(self, project: str, environment: str) -> NodeGroup:
        data = await self._request(
            "GET", f"/nodes/{self._q(project)}/{self._q(environment)}"
        )
        group = dict(data.get("node_group", {}))
        group.setdefault("project_name", project)
        group.setdefault("environment", environment)
        group["nodes"] = data.get("nodes", [])
        return NodeGroup.from_dict(group)

    async def drain_node(self, group_id: int, node_id: int) -> None:
        await self._request("POST", f"/node-groups/{group_id}/nodes/{node_id}/drain")

    async def undrain_node(self, group_id: int, node_id: int) -> None:
        await self._request("POST", f"/node-groups/{group_id}/nodes/{node_id}/undrain")

    async def update_node_group_strategy(
        self, group_id: int, strategy: LbStrategy
    ) -> None:
        await self._request(
            "PATCH", f"/node-groups/{group_id}", {"lb_strategy": strategy.value}
        )
