"""
Circuit Breaker Module

Stops sending prompts to a persistently failing backend.

Policy:
- Every failed backend attempt (original or session retry) increments the
  consecutive-failure counter; any success resets it and closes the circuit.
- The circuit opens once the counter reaches the threshold.
- While open and within the cooldown window, calls are rejected without
  touching the backend.
- After the cooldown the next call is admitted as a trial. Its success
  closes the circuit; its failure re-opens it with a fresh timestamp.
- Counters never decay with time; only success or `reset()` clears them.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from app.common.errors import CircuitOpenError
from app.common.time import utc_now

logger = logging.getLogger(__name__)


class CircuitPhase(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass(frozen=True)
class CircuitState:
    """Snapshot of the circuit"""

    phase: CircuitPhase
    consecutive_failures: int
    last_error: Optional[str]
    opened_at: Optional[datetime]


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker

    Not thread-safe; the session bridge only touches it from its queue worker.
    """

    def __init__(
        self,
        failure_threshold: int = 2,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize breaker

        Args:
            failure_threshold: Consecutive failures that open the circuit
            cooldown_seconds: Time the circuit stays open before a trial call
            clock: Monotonic clock, replaceable in tests
        """
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._phase = CircuitPhase.CLOSED
        self._failures = 0
        self._last_error: Optional[str] = None
        self._opened_at: Optional[datetime] = None
        self._opened_tick: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return CircuitState(
            phase=self._phase,
            consecutive_failures=self._failures,
            last_error=self._last_error,
            opened_at=self._opened_at,
        )

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def is_open(self) -> bool:
        """True while open and still inside the cooldown window"""
        if self._phase != CircuitPhase.OPEN:
            return False
        return (self._clock() - (self._opened_tick or 0.0)) < self.cooldown_seconds

    def before_call(self) -> None:
        """
        Admission check

        Raises:
            CircuitOpenError: Circuit open and cooldown not yet elapsed
        """
        if self.is_open():
            raise CircuitOpenError(
                last_error=self._last_error,
                details={"consecutive_failures": self._failures},
            )
        if self._phase == CircuitPhase.OPEN:
            logger.info(
                "Circuit cooldown elapsed, admitting trial call: failures=%d",
                self._failures,
            )

    def record_success(self) -> None:
        if self._phase == CircuitPhase.OPEN:
            logger.info("Circuit closed after successful trial call")
        self._phase = CircuitPhase.CLOSED
        self._failures = 0
        self._opened_at = None
        self._opened_tick = None

    def record_failure(self, error: BaseException) -> None:
        self._failures += 1
        self._last_error = str(error) or type(error).__name__
        if self._failures >= self.failure_threshold:
            self._phase = CircuitPhase.OPEN
            self._opened_at = utc_now()
            self._opened_tick = self._clock()
            logger.warning(
                "Circuit opened: consecutive_failures=%d, cooldown=%.0fs, last_error=%s",
                self._failures,
                self.cooldown_seconds,
                self._last_error,
            )

    def reset(self) -> None:
        """Close the circuit and clear all failure state"""
        self._phase = CircuitPhase.CLOSED
        self._failures = 0
        self._last_error = None
        self._opened_at = None
        self._opened_tick = None
