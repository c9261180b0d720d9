"""Circuit breaker wrapping outbound calls to one external dependency."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from chanproxy.breaker import state as transitions
from chanproxy.breaker.errors import BreakerOpenError, BreakerTimeoutError
from chanproxy.breaker.state import BreakerPhase, BreakerState
from chanproxy.breaker.window import RollingWindow
from chanproxy.config import BreakerSettings

logger = structlog.get_logger()


class CircuitBreaker:
    """Fast-fails calls once the rolling failure ratio crosses a threshold.

    The breaker never retries and never swallows errors: the action's own
    exception is re-raised unchanged, and only the open-circuit and timeout
    cases raise breaker-specific errors.
    """

    def __init__(
        self,
        name: str = "default",
        settings: BreakerSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.settings = settings or BreakerSettings()
        self._clock = clock
        self._state: BreakerState = transitions.CLOSED
        self._window = RollingWindow(
            self.settings.rolling_window_s,
            self.settings.rolling_buckets,
            clock,
        )
        self.opened_count = 0
        self.last_opened_at: str | None = None

    @property
    def state(self) -> BreakerPhase:
        return self._state.phase

    @property
    def is_open(self) -> bool:
        return self._state.phase is BreakerPhase.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state.phase is BreakerPhase.HALF_OPEN

    async def execute(self, action: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke ``action(*args, **kwargs)`` under breaker control."""
        previous = self._state.phase
        self._state, allowed = transitions.before_call(
            self._state,
            self._clock(),
            self.settings.reset_timeout_s,
        )
        if not allowed:
            self._window.record("rejects")
            logger.info("breaker.rejected", breaker=self.name, state=self._state.phase.value)
            raise BreakerOpenError(self.name, retry_after_s=self._retry_after())

        probe = self._state.phase is BreakerPhase.HALF_OPEN
        if probe and previous is BreakerPhase.OPEN:
            logger.info("breaker.half_opened", breaker=self.name)

        self._window.record("fires")
        deadline: asyncio.Timeout | None = None
        try:
            async with asyncio.timeout(self.settings.timeout_s) as deadline:
                result = await self._invoke(action, args, kwargs)
        except asyncio.CancelledError:
            if probe:
                self._state = transitions.after_abandon(self._state)
            raise
        except TimeoutError as exc:
            if deadline is not None and deadline.expired():
                self._record_failure(exc, probe=probe, timed_out=True)
                raise BreakerTimeoutError(self.name, self.settings.timeout_s) from exc
            self._record_failure(exc, probe=probe)
            raise
        except Exception as exc:
            self._record_failure(exc, probe=probe)
            raise

        self._record_success(probe=probe)
        return result

    def get_health_status(self) -> dict[str, Any]:
        """State flags and rolling statistics for observability endpoints."""
        counts = self._window.snapshot()
        return {
            "isOpen": self.is_open,
            "isHalfOpen": self.is_half_open,
            "stats": {
                **counts.as_dict(),
                "state": self._state.phase.value,
                "errorPercentage": round(counts.error_percentage, 2),
                "openedCount": self.opened_count,
                "lastOpenedAt": self.last_opened_at,
            },
        }

    def reset(self) -> None:
        """Force the breaker closed and forget the rolling statistics."""
        self._state = transitions.CLOSED
        self._window.reset()
        logger.info("breaker.reset", breaker=self.name)

    @staticmethod
    async def _invoke(action: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        if inspect.iscoroutinefunction(action):
            return await action(*args, **kwargs)
        result = await asyncio.to_thread(action, *args, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    def _record_success(self, *, probe: bool) -> None:
        self._window.record("successes")
        if probe and self._state.phase is BreakerPhase.HALF_OPEN:
            self._state = transitions.after_success(self._state)
            self._window.reset()
            logger.info("breaker.closed", breaker=self.name)
            return
        self._maybe_trip()

    def _record_failure(self, error: BaseException, *, probe: bool, timed_out: bool = False) -> None:
        self._window.record("failures")
        if timed_out:
            self._window.record("timeouts")
        logger.warning(
            "breaker.failure",
            breaker=self.name,
            timed_out=timed_out,
            error=str(error) or type(error).__name__,
        )
        if probe:
            self._state = transitions.after_failure(self._state, self._clock())
            if self._state.phase is BreakerPhase.OPEN:
                self._mark_opened()
                return
        self._maybe_trip()

    def _maybe_trip(self) -> None:
        if self._state.phase is not BreakerPhase.CLOSED:
            return
        counts = self._window.snapshot()
        if transitions.should_trip(
            counts,
            volume_threshold=self.settings.volume_threshold,
            error_threshold_percentage=self.settings.error_threshold_percentage,
        ):
            self._state = transitions.opened(self._clock())
            self._mark_opened(counts.as_dict())

    def _mark_opened(self, counts: dict[str, int] | None = None) -> None:
        self.opened_count += 1
        self.last_opened_at = datetime.now(UTC).isoformat()
        logger.warning(
            "breaker.opened",
            breaker=self.name,
            opened_count=self.opened_count,
            reset_timeout_s=self.settings.reset_timeout_s,
            **(counts or {}),
        )

    def _retry_after(self) -> float | None:
        if self._state.opened_at is None:
            return None
        elapsed = self._clock() - self._state.opened_at
        return max(0.0, self.settings.reset_timeout_s - elapsed)
