"""One breaker per external dependency, created from config."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any

from chanproxy.breaker.breaker import CircuitBreaker
from chanproxy.config import BreakersConfig


class BreakerRegistry:
    """Owns the per-dependency breakers so health endpoints can list them."""

    def __init__(
        self,
        config: BreakersConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or BreakersConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use."""
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                self.config.for_dependency(name),
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def health(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_health_status() for name, breaker in self._breakers.items()}

    def __iter__(self) -> Iterator[CircuitBreaker]:
        return iter(self._breakers.values())

    def __len__(self) -> int:
        return len(self._breakers)
