"""
Reliability Utilities.

Circuit breaker guarding calls to the external HOS service so that an
outage fails fast instead of stalling every commit.
"""

import logging
import time
from typing import Callable, Any

logger = logging.getLogger("tourfleet")


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Circuit breaker for one downstream service.

    After 'failure_threshold' consecutive failures the circuit opens and
    rejects calls for 'reset_timeout' seconds. The first call after that is
    a trial: success closes the circuit, failure opens it again.
    """
    def __init__(self, name: str = "downstream", failure_threshold: int = 5, reset_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.opened_at = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    @property
    def is_open(self) -> bool:
        return self.state == "OPEN" and time.time() - self.opened_at <= self.reset_timeout

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if self.is_open:
                raise CircuitOpenError(f"Circuit for {self.name} is OPEN")
            self.state = "HALF_OPEN"

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            self.state = "OPEN"
            self.opened_at = time.time()
            logger.warning("Circuit opened", extra={"circuit": self.name, "failures": self.failures})

    def reset_state(self):
        if self.state != "CLOSED":
            logger.info("Circuit closed", extra={"circuit": self.name})
        self.failures = 0
        self.state = "CLOSED"


# Shared instance for the HOS / trip-distance service
hos_circuit_breaker = CircuitBreaker("hos_service", failure_threshold=3, reset_timeout=30)
