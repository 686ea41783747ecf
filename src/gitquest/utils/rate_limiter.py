"""Rate limit handling for GitHub API requests.

Two pieces live here:

* ``RateLimitState`` mirrors the ``x-ratelimit-*`` headers GitHub sends back so
  callers can report the remaining quota.
* ``RateLimitExecutor`` wraps a single remote call and retries it with
  exponential backoff when, and only when, the failure is a rate limit.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from gitquest.exceptions import is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def format_time_remaining(seconds: float) -> str:
    """Format seconds into a human-friendly string."""
    if seconds <= 0:
        return "now"

    seconds = int(seconds)

    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        if secs > 0:
            return f"{minutes} min {secs} sec"
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        if minutes > 0:
            return f"{hours} hr {minutes} min"
        return f"{hours} hour{'s' if hours != 1 else ''}"


def format_reset_time(reset_timestamp: float) -> str:
    """Format reset timestamp to a human-readable local time."""
    reset_dt = datetime.fromtimestamp(reset_timestamp)
    return reset_dt.strftime("%H:%M:%S")


@dataclass
class RateLimitState:
    """Track rate limit state for an API as reported by response headers."""

    limit: int | None = None
    remaining: int | None = None
    reset_time: float | None = None  # Unix timestamp

    @property
    def is_exhausted(self) -> bool:
        """Check if rate limit is exhausted."""
        return self.remaining is not None and self.remaining <= 0

    @property
    def seconds_until_reset(self) -> float:
        """Get seconds until rate limit resets."""
        if self.reset_time is None:
            return 0.0
        return max(0.0, self.reset_time - time.time())

    def update_from_headers(self, headers: dict) -> None:
        """Update state from GitHub API response headers."""
        headers = {k.lower(): v for k, v in headers.items()}
        if "x-ratelimit-limit" in headers:
            self.limit = int(headers["x-ratelimit-limit"])
        if "x-ratelimit-remaining" in headers:
            self.remaining = int(headers["x-ratelimit-remaining"])
        if "x-ratelimit-reset" in headers:
            self.reset_time = float(headers["x-ratelimit-reset"])

    def as_dict(self) -> dict:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time,
            "reset_in": self.seconds_until_reset,
        }


class RateLimitExecutor:
    """Run remote calls, retrying rate limited ones with exponential backoff.

    The delay starts at ``base_delay`` and doubles on every retry, never
    exceeding ``max_delay``. After ``max_retries`` retries the original error
    is re-raised. Any other error propagates immediately.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _log_retry(self, label: str) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            wait = state.next_action.sleep if state.next_action else 0
            reset_time = getattr(error, "reset_time", None)
            reset_hint = (
                f" (quota resets in {format_time_remaining(reset_time - time.time())})"
                if reset_time
                else ""
            )
            logger.warning(
                "Rate limit hit on %s, waiting %.1fs before retry %d/%d%s",
                label,
                wait,
                state.attempt_number,
                self.max_retries,
                reset_hint,
            )

        return before_sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "request",
    ) -> T:
        """Execute ``operation`` with rate limit retries.

        Args:
            operation: Zero-argument callable returning an awaitable
            label: Description used in log messages

        Returns:
            Whatever the operation returns
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_rate_limit_error),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.base_delay, min=self.base_delay, max=self.max_delay
            ),
            before_sleep=self._log_retry(label),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await operation()
        return result
