"""Circuit breaker for calls to external timestamp authorities.

An authority that keeps failing is skipped for a cool-down period so a signing
request does not pay its timeout on every attempt.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Too many failures, calls fail fast without attempting operation
- HALF_OPEN: Testing if service recovered, limited calls allowed

See: https://martinfowler.com/bliki/CircuitBreaker.html
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal, TypeVar

T = TypeVar("T")


class CircuitBreakerOpen(Exception):
    """Raised when circuit breaker is in OPEN state and rejects calls."""

    pass


@dataclass
class CircuitBreaker:
    """Thread-safe circuit breaker.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=3, timeout_seconds=60)
        >>> try:
        >>>     record = breaker.call(lambda: authority.request(digest, timeout=5))
        >>> except CircuitBreakerOpen:
        >>>     record = local_fallback()
    """

    failure_threshold: int = 3
    """Number of consecutive failures before opening circuit"""

    timeout_seconds: float = 60.0
    """Seconds to wait before attempting recovery (OPEN -> HALF_OPEN)"""

    half_open_max_calls: int = 1
    """Successful calls required in HALF_OPEN state before fully closing"""

    current_failures: int = field(default=0, init=False)
    state: Literal["CLOSED", "OPEN", "HALF_OPEN"] = field(default="CLOSED", init=False)
    last_failure_time: float | None = field(default=None, init=False)
    half_open_calls: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def call(self, fn: Callable[[], T]) -> T:
        """Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If circuit is OPEN and not ready to retry
            Exception: Any exception raised by fn() (will increment failure count)
        """
        with self._lock:
            if self.state == "OPEN":
                if self._should_attempt_reset():
                    self.state = "HALF_OPEN"
                    self.half_open_calls = 0
                else:
                    raise CircuitBreakerOpen(
                        f"Circuit breaker is OPEN (failed {self.current_failures} times). "
                        f"Retry after {self.timeout_seconds}s timeout."
                    )

        try:
            result = fn()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        with self._lock:
            if self.state == "HALF_OPEN":
                self.half_open_calls += 1
                if self.half_open_calls >= self.half_open_max_calls:
                    self.state = "CLOSED"
                    self.current_failures = 0
                    self.last_failure_time = None
            elif self.state == "CLOSED":
                self.current_failures = 0
                self.last_failure_time = None

    def _on_failure(self) -> None:
        with self._lock:
            self.current_failures += 1
            self.last_failure_time = time.monotonic()

            if self.state == "HALF_OPEN" or self.current_failures >= self.failure_threshold:
                self.state = "OPEN"

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True

        elapsed = time.monotonic() - self.last_failure_time
        return elapsed >= self.timeout_seconds

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            self.state = "CLOSED"
            self.current_failures = 0
            self.last_failure_time = None
            self.half_open_calls = 0

    def get_state(self) -> dict[str, str | int | float | None]:
        """Get current circuit breaker state for monitoring/debugging."""
        return {
            "state": self.state,
            "failures": self.current_failures,
            "last_failure": self.last_failure_time,
            "threshold": self.failure_threshold,
        }
