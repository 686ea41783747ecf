"""Tests for the bounded concurrency scheduler."""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from gitquest.exceptions import GitHubAPIError, GitHubRateLimitError
from gitquest.services.scheduler import BoundedScheduler


def _scheduler(**overrides) -> BoundedScheduler:
    settings = dict(
        max_concurrency=3,
        batch_size=10,
        batch_delay=0,
        max_retries=2,
        retry_delay=0,
        rate_limit_delay=0,
        max_retry_delay=0,
    )
    settings.update(overrides)
    return BoundedScheduler(**settings)


class TestBoundedScheduler:
    """Tests for running items through the worker pool."""

    @pytest.mark.asyncio
    async def test_never_exceeds_concurrency(self):
        """Test at most max_concurrency items are in flight at once."""
        in_flight = 0
        peak = 0

        async def process(item: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return item * 2

        outcome = await _scheduler().run(list(range(25)), process)

        assert peak <= 3
        assert sorted(outcome.results) == [i * 2 for i in range(25)]
        assert outcome.failed == []

    @pytest.mark.asyncio
    async def test_failing_item_is_dropped(self):
        """Test a permanently failing item is skipped and progress still completes."""
        progress = MagicMock()

        async def process(item: int) -> int:
            if item == 3:
                raise GitHubAPIError("Server error: 502", status_code=502)
            return item

        outcome = await _scheduler().run(
            list(range(10)), process, label=lambda i: f"repo-{i}", on_progress=progress
        )

        assert sorted(outcome.results) == [0, 1, 2, 4, 5, 6, 7, 8, 9]
        assert outcome.failed == ["repo-3"]
        assert outcome.processed == 10
        assert progress.call_count == 10
        assert progress.call_args_list[-1].args[:2] == (10, 10)

    @pytest.mark.asyncio
    async def test_item_is_retried(self):
        """Test an item that fails transiently succeeds on retry."""
        attempts: dict[int, int] = {}

        async def process(item: int) -> int:
            attempts[item] = attempts.get(item, 0) + 1
            if item == 1 and attempts[item] < 3:
                raise GitHubRateLimitError("quota")
            return item

        outcome = await _scheduler(max_retries=3).run([0, 1, 2], process)

        assert sorted(outcome.results) == [0, 1, 2]
        assert attempts[1] == 3
        assert attempts[0] == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self):
        attempts = 0

        async def process(item: int) -> int:
            nonlocal attempts
            attempts += 1
            raise ValueError("boom")

        outcome = await _scheduler(max_retries=2).run([1], process)

        assert attempts == 3
        assert outcome.failed == ["1"]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        progress = MagicMock()

        outcome = await _scheduler().run([], MagicMock(), on_progress=progress)

        assert outcome.results == []
        assert outcome.processed == 0
        progress.assert_not_called()

    @pytest.mark.asyncio
    async def test_pauses_between_batches(self):
        """Test the batch delay applies between batches only."""

        async def process(item: int) -> int:
            return item

        scheduler = _scheduler(batch_size=2, batch_delay=0.05)
        started = time.monotonic()
        outcome = await scheduler.run([1, 2, 3, 4, 5], process)
        elapsed = time.monotonic() - started

        assert len(outcome.results) == 5
        # Three batches, two pauses
        assert elapsed >= 0.09

    def test_backoff_depends_on_error_kind(self):
        """Test rate limits back off from the longer base delay."""
        scheduler = _scheduler(retry_delay=1, rate_limit_delay=5, max_retry_delay=60)
        state = MagicMock()
        state.attempt_number = 2

        state.outcome.exception.return_value = GitHubRateLimitError("quota")
        assert scheduler._backoff(state) == 10

        state.outcome.exception.return_value = ValueError("boom")
        assert scheduler._backoff(state) == 2

    def test_backoff_is_capped(self):
        scheduler = _scheduler(retry_delay=1, rate_limit_delay=5, max_retry_delay=8)
        state = MagicMock()
        state.attempt_number = 5
        state.outcome.exception.return_value = GitHubRateLimitError("quota")

        assert scheduler._backoff(state) == 8

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            BoundedScheduler(max_concurrency=0)

    @pytest.mark.asyncio
    async def test_raising_progress_callback(self):
        """Test a broken progress callback does not stop the workers."""

        def on_progress(completed: int, total: int, label: str) -> None:
            raise RuntimeError("display closed")

        async def process(item: int) -> int:
            return item

        outcome = await _scheduler(max_concurrency=2).run(
            list(range(6)), process, on_progress=on_progress
        )

        assert sorted(outcome.results) == list(range(6))
        assert outcome.failed == []
