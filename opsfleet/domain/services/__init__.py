"""
Domain Services Package

Architectural Intent:
- Stateless domain logic that does not belong to a single entity
- Pure functions over metadata, testable without adapters
"""

from opsfleet.domain.services.target_selection import (
    filter_targets,
    allocation_candidates,
    choose_allocation,
    allocated_target,
)

__all__ = [
    "filter_targets",
    "allocation_candidates",
    "choose_allocation",
    "allocated_target",
]
