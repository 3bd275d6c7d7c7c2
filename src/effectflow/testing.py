"""
Deterministic time and id sources for tests and reproducible runs.

Inject them into the driver::

    driver = ProcessDriver(
        InMemoryEffectStore(),
        agent_runner,
        clock=FixedClock(),
        id_factory=DeterministicIds(prefix="run"),
    )
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

DEFAULT_START = datetime(2025, 1, 1, tzinfo=UTC)
DEFAULT_STEP = timedelta(seconds=1)


class FixedClock:
    """Clock returning preset instants, or ticking by a fixed step.

    With ``sequence`` the instants are returned in order and the last one
    repeats once the sequence is used up. Otherwise each call returns
    ``start``, ``start + step``, ``start + 2 * step`` and so on.
    """

    def __init__(
        self,
        start: datetime = DEFAULT_START,
        step: timedelta = DEFAULT_STEP,
        sequence: Iterable[datetime] | None = None,
    ):
        self._sequence = list(sequence) if sequence is not None else None
        if self._sequence is not None and not self._sequence:
            raise ValueError("sequence must contain at least one instant")
        self._start = start
        self._step = step
        self._calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            index = self._calls
            self._calls += 1
        if self._sequence is not None:
            return self._sequence[min(index, len(self._sequence) - 1)]
        return self._start + self._step * index

    @property
    def calls(self) -> int:
        return self._calls

    def peek(self) -> datetime:
        """The instant the next call will return, without advancing."""
        if self._sequence is not None:
            return self._sequence[min(self._calls, len(self._sequence) - 1)]
        return self._start + self._step * self._calls


class DeterministicIds:
    """Run id factory: preset ids first, then ``{prefix}-{n:06d}``."""

    def __init__(self, preset: Iterable[str] = (), prefix: str = "run"):
        self._preset = list(preset)
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            if self._preset:
                return self._preset.pop(0)
            return f"{self._prefix}-{next(self._counter):06d}"
