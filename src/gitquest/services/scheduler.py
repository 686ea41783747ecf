"""Bounded-concurrency scheduler for per-repository work."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from gitquest.exceptions import is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ItemProgress = Callable[[int, int, str], None]


@dataclass
class ScheduleOutcome(Generic[R]):
    """Results of a scheduler run.

    ``results`` is in completion order, not submission order. ``failed``
    holds the labels of items dropped after exhausting their retries.
    """

    results: list[R] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results) + len(self.failed)


class BoundedScheduler:
    """Run items through a fixed-size worker pool.

    Items are taken in batches of ``batch_size``. Within a batch at most
    ``max_concurrency`` workers pull from a shared queue, so no more than that
    many items are ever in flight. Between batches the scheduler pauses for
    ``batch_delay`` seconds to ease sustained rate-limit pressure.

    Each item is retried up to ``max_retries`` times with exponential backoff:
    rate limit failures start from ``rate_limit_delay``, other failures from
    ``retry_delay``. An item that still fails is dropped and logged.
    """

    def __init__(
        self,
        max_concurrency: int = 10,
        batch_size: int = 20,
        batch_delay: float = 1.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        rate_limit_delay: float = 5.0,
        max_retry_delay: float = 60.0,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.max_concurrency = max_concurrency
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.rate_limit_delay = rate_limit_delay
        self.max_retry_delay = max_retry_delay

    def _backoff(self, state: RetryCallState) -> float:
        error = state.outcome.exception() if state.outcome else None
        base = self.rate_limit_delay if is_rate_limit_error(error) else self.retry_delay
        return min(base * 2 ** (state.attempt_number - 1), self.max_retry_delay)

    async def _process_with_retry(
        self,
        item: T,
        process: Callable[[T], Awaitable[R]],
        label: str,
    ) -> R:
        def before_sleep(state: RetryCallState) -> None:
            logger.debug(
                "Retrying %s (attempt %d/%d) after error: %s",
                label,
                state.attempt_number,
                self.max_retries,
                state.outcome.exception() if state.outcome else None,
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._backoff,
            before_sleep=before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await process(item)
        return result

    async def run(
        self,
        items: Sequence[T],
        process: Callable[[T], Awaitable[R]],
        label: Callable[[T], str] = str,
        on_progress: ItemProgress | None = None,
    ) -> ScheduleOutcome[R]:
        """Process every item with bounded concurrency.

        Args:
            items: Items to process
            process: Coroutine function handling one item
            label: Describes an item for progress and logs
            on_progress: Called after every finished item with
                (completed, total, label), whether it succeeded or not

        Returns:
            ScheduleOutcome with successful results and failed labels
        """
        outcome: ScheduleOutcome[R] = ScheduleOutcome()
        total = len(items)
        completed = 0

        async def worker(queue: "asyncio.Queue[T]") -> None:
            nonlocal completed
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                item_label = label(item)
                try:
                    outcome.results.append(
                        await self._process_with_retry(item, process, item_label)
                    )
                except Exception as e:
                    logger.warning(
                        "Giving up on %s after %d retries: %s",
                        item_label,
                        self.max_retries,
                        e,
                    )
                    outcome.failed.append(item_label)

                completed += 1
                if on_progress:
                    try:
                        on_progress(completed, total, item_label)
                    except Exception as e:
                        # The worker must keep draining its queue
                        logger.warning("Progress callback failed for %s: %s", item_label, e)

        for start in range(0, total, self.batch_size):
            batch = items[start : start + self.batch_size]
            queue: asyncio.Queue[T] = asyncio.Queue()
            for item in batch:
                queue.put_nowait(item)

            workers = min(self.max_concurrency, len(batch))
            await asyncio.gather(*(worker(queue) for _ in range(workers)))

            # Pause between batches to avoid sustained rate limit pressure
            if start + self.batch_size < total and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return outcome
