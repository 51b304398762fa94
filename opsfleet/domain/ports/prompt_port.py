"""
Prompt Port

Architectural Intent:
- Isolates operator interaction from decision logic
- Resolver and pipeline receive answers, never read a terminal themselves
"""

from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class PromptPort(Protocol):
    @property
    def interactive(self) -> bool: ...

    def select(self, prompt: str, options: Sequence[str], default_index: int = 0) -> int: ...

    def confirm(self, prompt: str, default: bool = False) -> bool: ...
