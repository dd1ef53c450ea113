"""
Bounded FIFO windows over recent outcomes and rewards.

Only aggregates are consumed. Buffers live in memory and are never
persisted; they start empty after every restart.
"""
from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, List

from .algorithms import mean_and_std


class RollingBuffer:
    """
    Fixed-capacity window of numeric samples.

    Appending to a full buffer drops the oldest sample.
    """

    def __init__(self, max_size: int = 100):
        self.max_size = max(1, int(max_size))
        self._items: Deque[float] = deque(maxlen=self.max_size)

    def append(self, value: float) -> None:
        self._items.append(float(value))

    def clear(self) -> None:
        self._items.clear()

    def values(self) -> List[float]:
        return list(self._items)

    def mean(self, default: float = 0.0) -> float:
        if not self._items:
            return default
        return sum(self._items) / len(self._items)

    def std(self) -> float:
        return mean_and_std(self._items)[1]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[float]:
        return iter(self._items)


class OutcomeBuffer(RollingBuffer):
    """Rolling window of success (1) / failure (0) outcomes."""

    def record(self, success: bool) -> None:
        self.append(1.0 if success else 0.0)

    def success_rate(self) -> float:
        """Fraction of successes; 0.5 when nothing has been recorded."""
        return self.mean(default=0.5)
