"""Retry backoff policy applied by a worker after a job failure."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Linear backoff with a hard ceiling.

    The delay throttles the failing worker only. It is not stored on the job
    row, so another idle worker may pick the requeued job up sooner.
    """

    base_seconds: float = 2.5
    cap_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.base_seconds < 0:
            raise ValueError("base_seconds must be >= 0")
        if self.cap_seconds < 0:
            raise ValueError("cap_seconds must be >= 0")

    def delay(self, attempts: int) -> float:
        """Seconds to wait after the attempt counter reached ``attempts``."""

        return min(self.cap_seconds, max(1, attempts) * self.base_seconds)
