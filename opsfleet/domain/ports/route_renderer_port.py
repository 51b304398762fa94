from typing import Protocol, Sequence, runtime_checkable
from opsfleet.domain.entities.app_config import RouteDef


@runtime_checkable
class RouteRendererPort(Protocol):
    """Renders edge-proxy configuration and its install/reload commands."""

    def render(self, app_name: str, routes: Sequence[RouteDef]) -> str: ...

    def config_path(self, app_name: str) -> str: ...

    def activate_command(self, app_name: str) -> str: ...

    def tls_command(self, routes: Sequence[RouteDef]) -> str | None: ...
