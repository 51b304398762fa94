"""
Configuration Module

Architectural Intent:
- Centralized loading of CLI settings from ~/.config/ops/config.json
- Provides typed access to API, deploy and telemetry settings
- Falls back to sensible defaults when the config file is absent
- Environment variables override file-based config

Design Decisions:
- Settings are frozen dataclasses, nested sections map to sub-dataclasses
- The API token comes from OPS_TOKEN, else credentials.json next to the config
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "ops"
_TOP_LEVEL_KEYS = ("log_level", "token", "zone")


@dataclass(frozen=True)
class ApiSettings:
    """Control-plane API settings."""
    base_url: str = "https://api.ops.autos"
    timeout: float = 30.0


@dataclass(frozen=True)
class SshSettings:
    """SSH connection settings for deploy targets."""
    user: str = "root"
    port: int = 22
    connect_timeout: int = 30


@dataclass(frozen=True)
class DeploySettings:
    """Pipeline timing knobs."""
    health_attempts: int = 10
    health_delay: float = 2.0
    build_poll_interval: float = 2.0


@dataclass(frozen=True)
class TelemetrySettings:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class OpsSettings:
    """Root settings for the ops CLI."""
    api: ApiSettings = field(default_factory=ApiSettings)
    ssh: SshSettings = field(default_factory=SshSettings)
    deploy: DeploySettings = field(default_factory=DeploySettings)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)
    log_level: str = "WARNING"
    zone: str = "ops.autos"
    token: Optional[str] = None


def _env_override(data: dict, prefix: str = "OPS") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern OPS_SECTION_KEY.
    For example: OPS_API_BASE_URL=http://localhost:8080, OPS_DEPLOY_HEALTH_ATTEMPTS=5
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name in _TOP_LEVEL_KEYS:
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            section_data = data.get(section)
            if not isinstance(section_data, dict):
                section_data = data[section] = {}
            section_data[field_name] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Convert strings from the environment to the declared field type
    for f in dataclasses.fields(cls):
        if f.name in filtered and isinstance(filtered[f.name], str):
            if f.type == "int":
                filtered[f.name] = int(filtered[f.name])
            elif f.type == "float":
                filtered[f.name] = float(filtered[f.name])
            elif f.type == "bool":
                filtered[f.name] = filtered[f.name].lower() in ("true", "1", "yes")

    return cls(**filtered)


def load_token(config_dir: Path = CONFIG_DIR) -> Optional[str]:
    """Reads the saved API token from credentials.json, if any."""
    data = _parse_config_file(config_dir / "credentials.json")
    token = data.get("token") if isinstance(data, dict) else None
    return token or None


def load_settings(
    path: Optional[str] = None,
    env_prefix: str = "OPS",
) -> OpsSettings:
    """Load settings from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (OPS_SECTION_KEY, OPS_TOKEN)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to ~/.config/ops/config.json.
        env_prefix: Environment variable prefix. Defaults to OPS.
    """
    config_path = Path(path) if path else CONFIG_DIR / "config.json"
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    token = data.get("token") or load_token(config_path.parent)

    return OpsSettings(
        api=_build_sub_config(ApiSettings, data.get("api", {})),
        ssh=_build_sub_config(SshSettings, data.get("ssh", {})),
        deploy=_build_sub_config(DeploySettings, data.get("deploy", {})),
        telemetry=_build_sub_config(TelemetrySettings, data.get("telemetry", {})),
        log_level=data.get("log_level", "WARNING"),
        zone=data.get("zone", "ops.autos"),
        token=token,
    )
