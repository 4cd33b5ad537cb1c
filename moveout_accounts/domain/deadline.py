from __future__ import annotations

import time
from typing import Callable

from .errors import DeadlineExceeded


class Deadline:
    """Overall time budget for one operation, checked between remote calls."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def check(self, step: str) -> None:
        """Raise :class:`DeadlineExceeded` if the budget ran out before ``step``."""
        if self._clock() >= self._expires_at:
            raise DeadlineExceeded(f"deadline exceeded before {step}")
