"""
Deployment Record

Architectural Intent:
- Local mirror of the control plane's deployment audit record
- Lifecycle: PENDING, then exactly one terminal transition
- Terminal status is derived from the per-target outcome counts
- State changes produce new instances; terminal records are never mutated again
"""

from __future__ import annotations
from enum import Enum
from typing import Optional


class DeploymentStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"

    @property
    def is_terminal(self) -> bool:
        return self != DeploymentStatus.PENDING

    @staticmethod
    def aggregate(succeeded: int, failed: int) -> "DeploymentStatus":
        if failed == 0:
            return DeploymentStatus.SUCCESS
        if succeeded == 0:
            return DeploymentStatus.FAILED
        return DeploymentStatus.PARTIAL


class DeploymentRecord:
    __slots__ = ("_id", "_app_id", "_status", "_logs")

    def __init__(
        self,
        id: Optional[int],
        app_id: Optional[int],
        status: DeploymentStatus = DeploymentStatus.PENDING,
        logs: Optional[str] = None,
    ):
        self._id = id
        self._app_id = app_id
        self._status = status
        self._logs = logs

    @property
    def id(self) -> Optional[int]:
        return self._id

    @property
    def app_id(self) -> Optional[int]:
        return self._app_id

    @property
    def status(self) -> DeploymentStatus:
        return self._status

    @property
    def logs(self) -> Optional[str]:
        return self._logs

    @property
    def is_tracked(self) -> bool:
        """False when the control plane could not create the record."""
        return self._id is not None

    def finish(self, succeeded: int, failed: int, logs: Optional[str] = None) -> "DeploymentRecord":
        if self._status.is_terminal:
            raise ValueError("Deployment record already finished")
        return DeploymentRecord(
            id=self._id,
            app_id=self._app_id,
            status=DeploymentStatus.aggregate(succeeded, failed),
            logs=logs,
        )

    def __repr__(self) -> str:
        return (
            f"DeploymentRecord(id={self._id}, app_id={self._app_id}, "
            f"status={self._status})"
        )
