"""
App Config Entity

Architectural Intent:
- Immutable, parsed form of the declarative ops.toml for one deploy run
- Parsing validates structure up front so bad input fails before resolution
- Helpers derive compose arguments and service selections without side effects

Design Decisions:
- Uses stdlib tomllib for TOML
- Nested sections map to frozen sub-dataclasses, unknown keys are ignored
- "$NAME" values are resolved from the environment lazily, at use time
"""

from __future__ import annotations
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from opsfleet.domain.errors import ConfigError

DEPLOY_SOURCES = ("git", "push", "image")


def resolve_env_value(value: str) -> str:
    """Returns the environment value for "$NAME", or the literal otherwise."""
    if value.startswith("$"):
        name = value[1:]
        resolved = os.environ.get(name)
        if resolved is None:
            raise ConfigError(f"Environment variable {name} not set")
        return resolved
    return value


def parse_env_assignments(pairs: list[str]) -> tuple[str, ...]:
    """Validates repeated --set KEY=VALUE arguments."""
    for pair in pairs:
        key, sep, _ = pair.partition("=")
        if not sep or not key:
            raise ConfigError(f"Invalid --set value {pair!r}, expected KEY=VALUE")
    return tuple(pairs)


@dataclass(frozen=True)
class GitSource:
    repo: str
    ssh_key: Optional[str] = None
    token: Optional[str] = None


@dataclass(frozen=True)
class RegistryAuth:
    url: str
    username: str
    token: str


@dataclass(frozen=True)
class DeploySection:
    source: str = "git"
    branch: str = "main"
    git: Optional[GitSource] = None
    registry: Optional[RegistryAuth] = None
    compose_files: tuple[str, ...] = ()
    check_existing: bool = True


@dataclass(frozen=True)
class FileMapping:
    local: str
    remote: str


@dataclass(frozen=True)
class RouteDef:
    domain: str
    port: int
    ssl: bool = False


@dataclass(frozen=True)
class HealthCheckDef:
    name: str
    url: str


@dataclass(frozen=True)
class AppGroup:
    name: str
    services: tuple[str, ...] = ()


@dataclass(frozen=True)
class BuildImageSection:
    registry: str
    username: str
    token: str
    prefix: str
    services: tuple[str, ...]
    dockerfile: str = "Dockerfile"
    binary_arg: str = "BINARY"


@dataclass(frozen=True)
class BuildSection:
    path: str
    node: Optional[int] = None
    command: Optional[str] = None
    jobs: int = 1
    image: Optional[BuildImageSection] = None


@dataclass(frozen=True)
class AppConfig:
    deploy_path: str
    project: Optional[str] = None
    app: Optional[str] = None
    target: Optional[str] = None
    deploy: DeploySection = field(default_factory=DeploySection)
    env_files: tuple[FileMapping, ...] = ()
    sync: tuple[FileMapping, ...] = ()
    routes: tuple[RouteDef, ...] = ()
    healthchecks: tuple[HealthCheckDef, ...] = ()
    apps: tuple[AppGroup, ...] = ()
    build: Optional[BuildSection] = None

    def __post_init__(self) -> None:
        if not self.deploy_path:
            raise ConfigError("ops.toml must set 'deploy_path'")
        if not (self.app or self.project):
            raise ConfigError("ops.toml must have 'app' or 'project'")
        if self.deploy.source not in DEPLOY_SOURCES:
            raise ConfigError(f"Unknown deploy source: {self.deploy.source}")

    @property
    def app_name(self) -> str:
        name = self.app or self.project
        if not name:
            raise ConfigError("ops.toml must have 'app' or 'project'")
        return name

    def compose_args(self) -> str:
        return " ".join(f"-f {f}" for f in self.deploy.compose_files)

    def select_services(
        self, app: Optional[str] = None, service: Optional[str] = None
    ) -> tuple[str, ...]:
        """An empty result means every service in the compose project."""
        if service:
            return (service,)
        if app:
            for group in self.apps:
                if group.name == app:
                    return group.services
        return ()

    @staticmethod
    def load(path: str | Path) -> "AppConfig":
        p = Path(path)
        try:
            with open(p, "rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Cannot read {p}") from None
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid ops.toml format in {p}: {e}") from None
        return AppConfig.from_dict(data)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AppConfig":
        try:
            return AppConfig(
                deploy_path=data.get("deploy_path", ""),
                project=data.get("project"),
                app=data.get("app"),
                target=data.get("target"),
                deploy=_parse_deploy(data.get("deploy", {})),
                env_files=tuple(_mapping(m) for m in data.get("env_files", [])),
                sync=tuple(_mapping(m) for m in data.get("sync", [])),
                routes=tuple(
                    RouteDef(
                        domain=r["domain"],
                        port=int(r["port"]),
                        ssl=bool(r.get("ssl", False)),
                    )
                    for r in data.get("routes", [])
                ),
                healthchecks=tuple(
                    HealthCheckDef(name=h["name"], url=h["url"])
                    for h in data.get("healthchecks", [])
                ),
                apps=tuple(
                    AppGroup(name=a["name"], services=tuple(a.get("services", [])))
                    for a in data.get("apps", [])
                ),
                build=_parse_build(data["build"]) if "build" in data else None,
            )
        except KeyError as e:
            raise ConfigError(f"Missing required key in ops.toml: {e.args[0]}") from None
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in ops.toml: {e}") from None


def _mapping(data: dict[str, Any]) -> FileMapping:
    return FileMapping(local=data["local"], remote=data["remote"])


def _parse_deploy(data: dict[str, Any]) -> DeploySection:
    git = data.get("git")
    registry = data.get("registry")
    return DeploySection(
        source=data.get("source", "git"),
        branch=data.get("branch", "main"),
        git=GitSource(
            repo=git["repo"], ssh_key=git.get("ssh_key"), token=git.get("token")
        ) if git else None,
        registry=RegistryAuth(
            url=registry["url"],
            username=registry["username"],
            token=registry["token"],
        ) if registry else None,
        compose_files=tuple(data.get("compose_files", [])),
        check_existing=bool(data.get("check_existing", True)),
    )


def _parse_build(data: dict[str, Any]) -> BuildSection:
    image = data.get("image")
    return BuildSection(
        path=data["path"],
        node=int(data["node"]) if data.get("node") is not None else None,
        command=data.get("command"),
        jobs=max(1, int(data.get("jobs", 1))),
        image=BuildImageSection(
            registry=image["registry"],
            username=image["username"],
            token=image["token"],
            prefix=image["prefix"],
            services=tuple(image.get("services", [])),
            dockerfile=image.get("dockerfile", "Dockerfile"),
            binary_arg=image.get("binary_arg", "BINARY"),
        ) if image else None,
    )
