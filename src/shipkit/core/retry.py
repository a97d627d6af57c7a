"""Bounded retries for operations that fail transiently.

Purging a scratch directory on a build agent fails now and then because an
indexer or virus scanner still holds a handle below it. ``RetryContext``
repeats such an operation a fixed number of times before letting the last
error through.

Example:
    >>> from shipkit.core.retry import ConstantBackoff, RetryContext
    >>> RetryContext(ConstantBackoff(max_retries=3, delay=0.5)).run(lambda: "done")
    'done'
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class RetryStrategy(ABC):
    """Decides whether a failed attempt is repeated, and after what pause."""

    @abstractmethod
    def pause_after(self, attempt: int) -> float:
        """Seconds to wait after the ``attempt``-th failure (1-based)."""

    @abstractmethod
    def allows(self, attempt: int, error: Exception) -> bool:
        """True if another attempt may follow the ``attempt``-th failure."""


@dataclass
class ConstantBackoff(RetryStrategy):
    """Same pause every time, only for ``retryable_errors``.

    ``max_retries`` is the total number of attempts: ``ConstantBackoff(3)``
    runs the operation at most three times.
    """

    max_retries: int = 3
    delay: float = 1.0
    retryable_errors: tuple[type[Exception], ...] = (OSError,)

    def pause_after(self, attempt: int) -> float:
        return self.delay

    def allows(self, attempt: int, error: Exception) -> bool:
        return attempt < self.max_retries and isinstance(error, self.retryable_errors)


@dataclass
class RetryContext:
    """Runs one operation under a strategy and remembers what went wrong.

    ``on_retry(attempt, error, pause)`` is called before each pause.
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    sleep: Callable[[float], None] = time.sleep
    attempts: int = field(default=0, init=False)
    failures: list[Exception] = field(default_factory=list, init=False)

    @property
    def last_error(self) -> Exception | None:
        return self.failures[-1] if self.failures else None

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` until it returns or the strategy gives up.

        Raises:
            The error of the final attempt.
        """
        while True:
            self.attempts += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self.failures.append(e)
                if not self.strategy.allows(self.attempts, e):
                    raise
                pause = self.strategy.pause_after(self.attempts)
                if self.on_retry is not None:
                    self.on_retry(self.attempts, e, pause)
                self.sleep(pause)
