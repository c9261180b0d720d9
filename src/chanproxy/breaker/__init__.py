"""Circuit breakers isolating the proxy from flaky third-party APIs."""

from chanproxy.breaker.breaker import CircuitBreaker
from chanproxy.breaker.errors import BreakerError, BreakerOpenError, BreakerTimeoutError
from chanproxy.breaker.registry import BreakerRegistry
from chanproxy.breaker.state import BreakerPhase, BreakerState

__all__ = [
    "BreakerError",
    "BreakerOpenError",
    "BreakerPhase",
    "BreakerRegistry",
    "BreakerState",
    "BreakerTimeoutError",
    "CircuitBreaker",
]
