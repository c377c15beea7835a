"""Circuit breaker pattern for per-source fault tolerance.

Prevents cascading failures by failing fast when a source keeps failing.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Failing fast, calls rejected with CircuitOpenError
    HALF_OPEN: Limited trial calls test whether the source recovered

Transitions::

    CLOSED --[threshold consecutive failures]--> OPEN
    OPEN --[cooldown elapsed, next call]--> HALF_OPEN
    HALF_OPEN --[half_open_threshold successes]--> CLOSED
    HALF_OPEN --[any failure]--> OPEN

Example:
    >>> from feedspine.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker("binance", threshold=5, cooldown=60.0)
    >>> price = await breaker.execute(lambda: client.get_price("BTC"))
"""

from __future__ import annotations

import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from feedspine.core.errors import CircuitOpenError
from feedspine.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"          # Normal operation
    OPEN = "OPEN"              # Rejecting calls
    HALF_OPEN = "HALF_OPEN"    # Testing recovery


@dataclass(frozen=True)
class CircuitSnapshot:
    """Observable breaker state. Times are readings of the breaker's clock."""

    state: CircuitState
    failure_count: int
    success_count: int
    since: float
    last_failure_at: float | None


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


StateChangeCallback = Callable[[str, CircuitState, CircuitState], None]


@dataclass
class CircuitBreaker:
    """Circuit breaker guarding one source.

    Attributes:
        name: Source this circuit protects
        threshold: Consecutive failures before opening
        cooldown: Seconds to stay open before allowing a trial call
        half_open_threshold: Trial successes needed to close; also the cap on
            concurrent trial calls while half-open
        clock: Monotonic time source (seconds)
        on_state_change: Called with ``(name, old, new)`` on every transition
    """

    name: str = "default"
    threshold: int = 5
    cooldown: float = 60.0
    half_open_threshold: int = 3
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    on_state_change: StateChangeCallback | None = field(default=None, repr=False)

    # Internal state
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _half_open_in_flight: int = field(default=0, init=False)
    _last_failure_at: float | None = field(default=None, init=False)
    _last_transition_at: float = field(default=0.0, init=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    def __post_init__(self) -> None:
        self._last_transition_at = self.clock()

    @property
    def stats(self) -> CircuitStats:
        """Get circuit statistics."""
        return self._stats

    def state(self) -> CircuitSnapshot:
        """Return the current state and counters."""
        return CircuitSnapshot(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            since=self._last_transition_at,
            last_failure_at=self._last_failure_at,
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` under circuit protection.

        Raises:
            CircuitOpenError: If the circuit is open (``fn`` is not called)
            Exception: Whatever ``fn`` raised, after recording the failure
        """
        trial = self._admit()
        try:
            result = await fn()
        except Exception:
            self._record_failure()
            raise
        else:
            self._record_success()
            return result
        finally:
            if trial:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)

    def reset(self) -> None:
        """Force the circuit closed and clear its counters."""
        self._transition_to(CircuitState.CLOSED)
        self._last_failure_at = None

    def _admit(self) -> bool:
        """Decide whether a call may proceed. Returns True for a half-open trial."""
        self._stats.total_requests += 1

        if self._state is CircuitState.OPEN:
            elapsed = self.clock() - (self._last_failure_at or 0.0)
            if elapsed < self.cooldown:
                self._stats.rejected_requests += 1
                raise CircuitOpenError(
                    self.name, retry_after=math.ceil(self.cooldown - elapsed)
                )
            self._transition_to(CircuitState.HALF_OPEN)

        if self._state is CircuitState.HALF_OPEN:
            if self._half_open_in_flight >= self.half_open_threshold:
                self._stats.rejected_requests += 1
                # trial slots free up as soon as one trial settles
                raise CircuitOpenError(self.name, retry_after=1)
            self._half_open_in_flight += 1
            return True

        return False

    def _record_success(self) -> None:
        self._stats.successful_requests += 1
        self._failure_count = 0

        if self._state is CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.half_open_threshold:
                self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        self._stats.failed_requests += 1
        self._last_failure_at = self.clock()

        if self._state is CircuitState.HALF_OPEN:
            # a failed trial restarts the cooldown with a clean count
            self._failure_count = 0
            self._transition_to(CircuitState.OPEN)
            return

        self._failure_count += 1
        if self._state is CircuitState.CLOSED and self._failure_count >= self.threshold:
            self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_transition_at = self.clock()
        self._stats.state_changes += 1

        if new_state is CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
        elif new_state is CircuitState.OPEN:
            self._success_count = 0
        elif new_state is CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_in_flight = 0

        logger.info(
            "circuit.state_change",
            source=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
            failures=self._failure_count,
        )

        if self.on_state_change is not None and old_state is not new_state:
            try:
                self.on_state_change(self.name, old_state, new_state)
            except Exception as exc:
                logger.warning("circuit.state_change_callback_failed", source=self.name, error=str(exc))


__all__ = [
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "CircuitStats",
]
