"""Breaker state machine as pure functions of (state, event, now).

closed    --trip-->          open
open      --reset elapsed--> half_open (on the next call attempt)
half_open --probe ok-->      closed
half_open --probe failed-->  open
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from chanproxy.breaker.window import WindowCounts


class BreakerPhase(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerState:
    phase: BreakerPhase = BreakerPhase.CLOSED
    opened_at: float | None = None
    probe_in_flight: bool = False


CLOSED = BreakerState()


def opened(now: float) -> BreakerState:
    return BreakerState(phase=BreakerPhase.OPEN, opened_at=now)


def before_call(
    state: BreakerState,
    now: float,
    reset_timeout_s: float,
) -> tuple[BreakerState, bool]:
    """Decide whether a call may proceed; returns (next state, allowed)."""
    if state.phase is BreakerPhase.CLOSED:
        return state, True

    if state.phase is BreakerPhase.OPEN:
        opened_at = state.opened_at if state.opened_at is not None else now
        if now - opened_at < reset_timeout_s:
            return state, False
        return replace(state, phase=BreakerPhase.HALF_OPEN, probe_in_flight=True), True

    # half_open: only one probe at a time
    if state.probe_in_flight:
        return state, False
    return replace(state, probe_in_flight=True), True


def after_success(state: BreakerState) -> BreakerState:
    if state.phase is BreakerPhase.HALF_OPEN:
        return CLOSED
    return state


def after_failure(state: BreakerState, now: float) -> BreakerState:
    if state.phase is BreakerPhase.HALF_OPEN:
        return opened(now)
    return state


def after_abandon(state: BreakerState) -> BreakerState:
    """A probe was cancelled before settling; the next call may probe again."""
    if state.phase is BreakerPhase.HALF_OPEN:
        return BreakerState(phase=BreakerPhase.OPEN, opened_at=state.opened_at)
    return state


def should_trip(
    counts: WindowCounts,
    *,
    volume_threshold: int,
    error_threshold_percentage: float,
) -> bool:
    total = counts.total
    if total < volume_threshold or total == 0:
        return False
    return counts.error_percentage >= error_threshold_percentage
