"""
Output Port

Architectural Intent:
- Explicit, injectable channel for user-facing progress output
- Replaces a process-wide verbosity setting so use cases stay testable
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class OutputPort(Protocol):
    def step(self, message: str) -> None: ...

    def detail(self, message: str) -> None: ...

    def success(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def debug(self, message: str) -> None: ...

    def result(self, message: str) -> None: ...
