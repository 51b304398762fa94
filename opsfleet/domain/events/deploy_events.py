from dataclasses import dataclass
from typing import Any

from opsfleet.domain.events.event_base import DomainEvent


@dataclass(frozen=True)
class TargetDeployedEvent(DomainEvent):
    node_id: int = 0
    domain: str = ""
    duration_ms: float = 0.0


@dataclass(frozen=True)
class TargetFailedEvent(DomainEvent):
    node_id: int = 0
    domain: str = ""
    error_message: str = ""
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["error_message"] = self.error_message
        return data


@dataclass(frozen=True)
class DeploymentFinishedEvent(DomainEvent):
    status: str = ""
    succeeded: int = 0
    failed: int = 0
    duration_ms: float = 0.0
