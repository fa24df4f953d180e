import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from recordvault.config.settings import Settings
from recordvault.logging.logger import Log

T = TypeVar("T")


class Deadline:
    """Per-invocation time budget on a monotonic clock."""

    def __init__(
        self,
        seconds: float | None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float | None:
        """Seconds left, or None for an unbounded invocation."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


class DeadlineExpired(Exception):
    """Raised by call_with_retry when the deadline runs out before success."""

    def __init__(self, last_error: Exception | None) -> None:
        super().__init__(
            f"deadline expired (last error: {last_error})" if last_error else "deadline expired"
        )
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: base * 2**(attempt-1), capped."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    cap_seconds: float = 8.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        return min(self.cap_seconds, self.base_delay_seconds * 2 ** (attempt - 1))

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_backoff_base_seconds,
            cap_seconds=settings.retry_backoff_cap_seconds,
        )


def call_with_retry(
    operation: Callable[[float | None], T],
    *,
    policy: RetryPolicy,
    deadline: Deadline,
    retry_on: tuple[type[Exception], ...],
    description: str,
    before_retry: Callable[[Exception], T | None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run operation(remaining_seconds), retrying on the given exceptions.

    ``before_retry`` runs after each backoff and before the next attempt; a
    non-None result is returned instead of retrying.

    Raises:
        DeadlineExpired: if the deadline elapses before or between attempts.
        The last retryable exception once max_attempts is reached, and any
        non-retryable exception immediately.
    """
    last_error: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        if deadline.expired():
            raise DeadlineExpired(last_error)
        try:
            return operation(deadline.remaining())
        except retry_on as exc:
            last_error = exc
            if attempt == policy.max_attempts:
                Log.error(f"{description} failed after {attempt} attempts: {exc}")
                raise

            delay = policy.delay_for(attempt)
            remaining = deadline.remaining()
            if remaining is not None and delay >= remaining:
                raise DeadlineExpired(exc) from exc
            Log.warning(
                f"{description} failed (attempt {attempt}/{policy.max_attempts}), "
                f"retrying in {delay:.2f}s: {exc}"
            )
            sleep(delay)

            if before_retry is not None:
                recovered = before_retry(exc)
                if recovered is not None:
                    return recovered
    raise AssertionError("unreachable")  # pragma: no cover
