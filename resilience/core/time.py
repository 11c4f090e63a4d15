"""Deadlines and fixed-interval polling.

Every wait in the framework goes through ``poll_until``. A ``Deadline`` built
from ``None`` never expires, which keeps the unbounded waits of test setup
available while letting callers bound them explicitly.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import DeadlineExceededError
from .log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Deadline:
    """Point in time after which a wait gives up."""

    started: float
    timeout: Optional[float] = None

    @classmethod
    def after(cls, timeout: Optional[float]) -> "Deadline":
        """Deadline ``timeout`` seconds from now (``None`` = never)."""
        if timeout is not None and timeout < 0:
            raise ValueError(f"timeout must not be negative, got {timeout}")
        return cls(started=time.monotonic(), timeout=timeout)

    @property
    def is_bounded(self) -> bool:
        return self.timeout is not None

    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def remaining(self) -> Optional[float]:
        """Seconds left, or ``None`` for an unbounded deadline."""
        if self.timeout is None:
            return None
        return max(0.0, self.timeout - self.elapsed())

    def expired(self) -> bool:
        return self.timeout is not None and self.elapsed() >= self.timeout

    def check(self, operation: str) -> None:
        """Raise DeadlineExceededError if the deadline has passed."""
        if self.expired():
            raise DeadlineExceededError(
                f"{operation} did not complete within {self.timeout}s",
                timeout=self.timeout,
                elapsed=self.elapsed(),
            )


def poll_until(
    predicate: Callable[[], Optional[T]],
    interval: float,
    deadline: Optional[Deadline] = None,
    operation: str = "operation",
) -> T:
    """Call ``predicate`` until it returns a truthy value and return that value.

    Sleeps ``interval`` seconds between attempts, never past the deadline.

    Raises:
        DeadlineExceededError: If the deadline expires first
    """
    deadline = deadline or Deadline.after(None)
    attempts = 0
    while True:
        attempts += 1
        result = predicate()
        if result:
            if attempts > 1:
                logger.debug(
                    "%s completed after %d attempts (%.2fs)",
                    operation,
                    attempts,
                    deadline.elapsed(),
                )
            return result
        deadline.check(operation)
        remaining = deadline.remaining()
        time.sleep(interval if remaining is None else min(interval, remaining))
