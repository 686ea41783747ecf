"""Contribution calendar and streak collector service."""

import logging
from datetime import date, datetime, time, timedelta, timezone

from gitquest.models.streak import StreakState, active_days_from_calendar
from gitquest.services.github_graphql_client import GitHubGraphQLClient
from gitquest.utils.rate_limiter import RateLimitExecutor

logger = logging.getLogger(__name__)


class StreakCollector:
    """Computes activity streaks from the GraphQL contribution calendar."""

    def __init__(
        self,
        graphql_client: GitHubGraphQLClient | None,
        executor: RateLimitExecutor,
        lookback_days: int = 365,
    ):
        self.graphql_client = graphql_client
        self.executor = executor
        # The calendar API rejects ranges longer than a year
        self.lookback_days = min(lookback_days, 365)

    async def collect_streak(self, username: str, today: date | None = None) -> StreakState:
        """Collect streak state for a user.

        Args:
            username: GitHub username
            today: The day the current streak must end on (defaults to UTC today)

        Returns:
            StreakState; empty when the calendar cannot be fetched
        """
        today = today or datetime.now(timezone.utc).date()
        if not self.graphql_client:
            logger.info("GraphQL client not available, skipping streak calculation")
            return StreakState.empty()

        start = datetime.combine(today - timedelta(days=self.lookback_days), time.min, timezone.utc)
        end = datetime.combine(today, time.max, timezone.utc)
        logger.debug("Fetching contribution calendar for %s from %s", username, start.date())

        try:
            calendar = await self.executor.run(
                lambda: self.graphql_client.get_contribution_calendar(username, start, end),
                f"contribution calendar of {username}",
            )
        except Exception as e:
            logger.warning("Failed to fetch contribution calendar for %s: %s", username, e)
            return StreakState.empty()

        streak = StreakState.from_active_days(active_days_from_calendar(calendar), today)
        logger.debug(
            "Streak for %s: current=%d longest=%d over %d active days",
            username,
            streak.current_streak,
            streak.longest_streak,
            streak.active_day_count,
        )
        return streak
