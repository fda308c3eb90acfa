"""Bounded retry policy with exponential backoff."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from proof_params.errors import TransientTransferError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many transfer attempts to make and how long to wait between them.

    Attributes:
        max_attempts: Total attempts per file, including the first
        backoff_base: Delay in seconds before the second attempt
        backoff_max: Upper bound on any single delay
        sleep: Called with the delay; replaced in tests
    """

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1; got {self.max_attempts}")

    def delay(self, attempt: int) -> float:
        """Delay before the attempt following attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def wait(self, attempt: int) -> None:
        delay = self.delay(attempt)
        if delay > 0:
            self.sleep(delay)

    def call(self, fn: Callable[[], T]) -> T:
        """Call ``fn`` until it succeeds, retrying TransientTransferError.

        The last TransientTransferError propagates once attempts run out;
        any other exception propagates immediately.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except TransientTransferError:
                if self.exhausted(attempt):
                    raise
                self.wait(attempt)
