"""Errors raised by circuit breakers instead of the wrapped action's own."""

from __future__ import annotations


class BreakerError(Exception):
    """Base class for failures produced by the breaker itself."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class BreakerOpenError(BreakerError):
    """The circuit is open; the action was not invoked."""

    def __init__(self, name: str, retry_after_s: float | None = None) -> None:
        super().__init__(name, f"Circuit breaker '{name}' is open")
        self.retry_after_s = retry_after_s


class BreakerTimeoutError(BreakerError, TimeoutError):
    """The action did not settle within the breaker's timeout."""

    def __init__(self, name: str, timeout_s: float) -> None:
        super().__init__(name, f"Circuit breaker '{name}' timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s
