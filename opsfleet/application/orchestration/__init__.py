"""
Application Orchestration Package

Architectural Intent:
- Contains fan-out/fan-in execution components
- Batched concurrent jobs with per-job outcome collection
- Fleet coordination of the per-target deployment pipeline
"""

from opsfleet.application.orchestration.fanout import (
    JobOutcome,
    chunked,
    fan_out,
)
from opsfleet.application.orchestration.coordinator import FleetCoordinator

__all__ = ["JobOutcome", "chunked", "fan_out", "FleetCoordinator"]
