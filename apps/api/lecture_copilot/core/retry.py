from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Iterator


@dataclass(frozen=True)
class Attempt:
    number: int  # 1-based
    timeout_sec: float
    is_last: bool


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded-attempt policy shared by index submission and text generation.

    Usage:
        for attempt in policy.attempts():
            try:
                return call(timeout=attempt.timeout_sec)
            except TransientError:
                continue

    The iterator stops after max_attempts or once total_timeout_sec has elapsed,
    whichever comes first. Backoff grows as backoff_sec * factor ** (n - 1).
    """

    max_attempts: int = 3
    attempt_timeout_sec: float = 60.0
    total_timeout_sec: float | None = None
    backoff_sec: float = 0.0
    backoff_factor: float = 2.0
    clock: Callable[[], float] = field(default=time.monotonic, compare=False, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def attempts(self) -> Iterator[Attempt]:
        started = self.clock()
        total = max(1, int(self.max_attempts))

        for n in range(1, total + 1):
            if n > 1:
                delay = self.backoff_sec * (self.backoff_factor ** (n - 2))
                if delay > 0:
                    if self.total_timeout_sec is not None:
                        delay = min(delay, max(0.0, self.total_timeout_sec - (self.clock() - started)))
                    self.sleep(delay)

            timeout = self.attempt_timeout_sec
            if self.total_timeout_sec is not None:
                remaining = self.total_timeout_sec - (self.clock() - started)
                # first attempt always runs; later ones need budget left
                if remaining <= 0 and n > 1:
                    return
                timeout = max(0.001, min(timeout, remaining)) if remaining > 0 else timeout

            yield Attempt(number=n, timeout_sec=timeout, is_last=(n == total))

