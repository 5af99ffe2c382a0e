"""Bounded retry with a fixed delay between attempts."""

import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

from sqlrenamer.errors import RenamerError

T = TypeVar("T")


class RetryExhausted(RenamerError):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, description: str, attempts: int, last_error: Exception):
        super().__init__(f"{description} failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay: float = 5.0
    retry_on: Tuple[Type[Exception], ...] = (RenamerError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def call(self, func: Callable[[], T], description: str, logger) -> T:
        """Runs ``func`` until it succeeds or the attempts run out.

        Sleeps ``delay`` between attempts, never after the last one. Exceptions not
        listed in ``retry_on`` propagate immediately.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    raise RetryExhausted(description, attempt, exc) from exc
                logger.warning(
                    "%s failed on attempt %s/%s. Retrying in %.1fs: %s",
                    description,
                    attempt,
                    self.max_attempts,
                    self.delay,
                    exc,
                )
                self.sleep(self.delay)

        raise RenamerError(f"{description} failed after retries.")
