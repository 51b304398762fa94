"""
Console Output

Architectural Intent:
- Implements OutputPort for a terminal
- Verbosity is instance state passed in by the composition root, never a global
- Results and errors are always shown; progress is hidden by --quiet
"""

import sys
from enum import IntEnum
from typing import Optional, TextIO


class Verbosity(IntEnum):
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2


class Console:
    def __init__(
        self,
        verbosity: Verbosity = Verbosity.NORMAL,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        self.verbosity = verbosity
        self._out = out
        self._err = err

    def _write(self, message: str, to_err: bool = False) -> None:
        # resolved per call so pytest's capsys sees the output
        if to_err:
            stream = self._err or sys.stderr
        else:
            stream = self._out or sys.stdout
        print(message, file=stream, flush=True)

    def step(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._write(message)

    def detail(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._write(message)

    def success(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._write(message)

    def warn(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._write(message, to_err=True)

    def error(self, message: str) -> None:
        self._write(message, to_err=True)

    def debug(self, message: str) -> None:
        if self.verbosity >= Verbosity.VERBOSE:
            self._write(message)

    def result(self, message: str) -> None:
        self._write(message)
