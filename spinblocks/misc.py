"""Miscellaneous utility functions."""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any, Optional, TextIO


class Stopwatch:
    """A simple stopwatch for timing code execution.

    Args:
        name: Name printed with the elapsed time when the stopwatch stops. If `None`, nothing is
            printed.
        stdout: Stream to print to.
    """

    def __init__(self, name: Optional[str] = None, stdout: Optional[TextIO] = None):
        """Initialise the object."""
        self._name = name
        self._stdout = stdout if stdout is not None else sys.stdout
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> Stopwatch:
        """Start the stopwatch."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        """Stop the stopwatch."""
        self._end = time.perf_counter()
        if self._name is not None:
            print(f"{self._name}: {self.elapsed:.3f} s", file=self._stdout, flush=True)

    @property
    def elapsed(self) -> float:
        """Return the elapsed time in seconds."""
        if self._start is None:
            raise RuntimeError("Stopwatch has not been started")
        start = self._start
        if self._end is None:
            end = time.perf_counter()
        else:
            end = self._end
        return end - start
