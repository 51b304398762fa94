"""
Console Prompt Adapter

Architectural Intent:
- Implements PromptPort on a terminal
- Non-interactive mode never reads stdin and always answers with the default
- Invalid or empty input falls back to the default answer
"""

from typing import Callable, Sequence


class ConsolePrompt:
    def __init__(
        self,
        interactive: bool = True,
        input_fn: Callable[[str], str] = input,
        print_fn: Callable[[str], None] = print,
    ):
        self._interactive = interactive
        self._input = input_fn
        self._print = print_fn

    @property
    def interactive(self) -> bool:
        return self._interactive

    def select(self, prompt: str, options: Sequence[str], default_index: int = 0) -> int:
        if not self._interactive:
            return default_index
        for i, option in enumerate(options, start=1):
            self._print(f"   {i}) {option}")
        choice = self._input(f"\n   {prompt} [{default_index + 1}]: ").strip()
        if not choice:
            return default_index
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            return int(choice) - 1
        return default_index

    def confirm(self, prompt: str, default: bool = False) -> bool:
        if not self._interactive:
            return default
        hint = "[Y/n]" if default else "[y/N]"
        answer = self._input(f"  {prompt} {hint}: ").strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")
