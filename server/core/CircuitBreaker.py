import threading
import time
from enum import Enum
from typing import Callable

from shared.helper.HelperConfig import HelperConfig


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """Per-provider circuit breaker.

    closed -> open after failure_threshold consecutive failures within
    failure_window seconds; open -> half-open after cooldown seconds, letting
    exactly one trial call through; half-open -> closed on success, open on
    failure. A cancelled trial releases its slot without changing the state.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        failure_window: float = 120.0,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.failure_window = failure_window
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()

        self._state = BreakerState.CLOSED
        self._failure_count = 0
        self._window_start: float | None = None
        self._opened_at: float | None = None
        self._trial_in_flight = False

    def _advance(self, now: float) -> None:
        if self._state == BreakerState.OPEN and self._opened_at is not None and now - self._opened_at >= self.cooldown:
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_state(self) -> BreakerState:
        with self._lock:
            self._advance(self._clock())
            return self._state

    def get_snapshot(self) -> dict:
        with self._lock:
            self._advance(self._clock())
            return {
                "state": self._state.value,
                "failureCount": self._failure_count,
                "windowStart": self._window_start,
            }

    ##########################################
    ############### TRANSITIONS ##############
    ##########################################

    def allow_request(self) -> bool:
        """Ask for permission to call the provider. Claims the trial slot when half-open."""
        with self._lock:
            self._advance(self._clock())
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._failure_count = 0
            self._window_start = None
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == BreakerState.HALF_OPEN:
                self._open(now)
                return
            if self._window_start is None or now - self._window_start > self.failure_window:
                self._window_start = now
                self._failure_count = 0
            self._failure_count += 1
            if self._failure_count >= self.failure_threshold:
                self._open(now)

    def release(self) -> None:
        """Give back a claimed trial slot without counting the call (cancelled calls)."""
        with self._lock:
            self._trial_in_flight = False

    def _open(self, now: float) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = now
        self._trial_in_flight = False


class CircuitBreakerRegistry:
    """Process-wide breakers, one per provider name."""

    def __init__(self, helper_config: HelperConfig, clock: Callable[[], float] = time.monotonic) -> None:
        self._failure_threshold = int(helper_config.get_number_val("BREAKER_FAILURE_THRESHOLD", default=5))
        self._failure_window = float(helper_config.get_number_val("BREAKER_FAILURE_WINDOW", default=120))
        self._cooldown = float(helper_config.get_number_val("BREAKER_COOLDOWN", default=30))
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name,
                    failure_threshold=self._failure_threshold,
                    failure_window=self._failure_window,
                    cooldown=self._cooldown,
                    clock=self._clock,
                )
            return self._breakers[name]

    def get_snapshots(self) -> dict[str, dict]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.get_snapshot() for b in breakers}
