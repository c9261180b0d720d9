"""Bucketed rolling counters used for breaker trip decisions."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Literal

Outcome = Literal["fires", "successes", "failures", "timeouts", "rejects"]


@dataclass
class WindowCounts:
    fires: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejects: int = 0

    @property
    def total(self) -> int:
        """Calls that settled. Timeouts are already counted as failures."""
        return self.successes + self.failures

    @property
    def error_percentage(self) -> float:
        if not self.total:
            return 0.0
        return self.failures * 100.0 / self.total

    def merge(self, other: WindowCounts) -> None:
        self.fires += other.fires
        self.successes += other.successes
        self.failures += other.failures
        self.timeouts += other.timeouts
        self.rejects += other.rejects

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class RollingWindow:
    """Counts over the last ``window_s`` seconds, split into ``buckets`` slots.

    Expired buckets are dropped lazily on every read or write, so no timer is
    needed and an injected clock fully controls aging.
    """

    def __init__(
        self,
        window_s: float,
        buckets: int,
        clock: Callable[[], float],
    ) -> None:
        self.window_s = window_s
        self.buckets = max(1, buckets)
        self._bucket_s = window_s / self.buckets
        self._clock = clock
        self._slots: deque[tuple[int, WindowCounts]] = deque()

    def record(self, outcome: Outcome) -> None:
        counts = self._current()
        setattr(counts, outcome, getattr(counts, outcome) + 1)

    def snapshot(self) -> WindowCounts:
        self._prune(self._slot_index())
        total = WindowCounts()
        for _, counts in self._slots:
            total.merge(counts)
        return total

    def reset(self) -> None:
        self._slots.clear()

    def _slot_index(self) -> int:
        return int(self._clock() // self._bucket_s)

    def _prune(self, slot: int) -> None:
        oldest_live = slot - self.buckets + 1
        while self._slots and self._slots[0][0] < oldest_live:
            self._slots.popleft()

    def _current(self) -> WindowCounts:
        slot = self._slot_index()
        self._prune(slot)
        if not self._slots or self._slots[-1][0] != slot:
            self._slots.append((slot, WindowCounts()))
        return self._slots[-1][1]
