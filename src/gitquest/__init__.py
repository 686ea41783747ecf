"""GitQuest - gamified stats from GitHub contribution history.

Discovers the repositories a user works in, collects commits, pull requests
and reviews from each with bounded concurrency and rate-limit backoff, and
rolls them up into dashboard stats, streaks and achievements.

Example usage:
    ```python
    from gitquest import StatsAggregator

    async with StatsAggregator(token="ghp_xxx") as aggregator:
        result = await aggregator.aggregate("octocat", "week")
        print(f"Commits this week: {result.stats.commits}")
    ```
"""

from gitquest.achievements import ACHIEVEMENTS, Achievement, evaluate_achievements, level_for_points
from gitquest.aggregator import AggregationResult, StatsAggregator, TokenReport, refresh_user_stats
from gitquest.config import Config
from gitquest.exceptions import (
    AggregationError,
    AggregationTimeoutError,
    AuthenticationError,
    GitHubAPIError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitQuestError,
    UserNotFoundError,
)
from gitquest.models import (
    ActivityItem,
    AggregateStats,
    RepoMetrics,
    Repository,
    StreakState,
)
from gitquest.progress import ProgressEvent, ProgressReporter, ProgressStore, Stage
from gitquest.timerange import TimeRange

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "StatsAggregator",
    "AggregationResult",
    "TokenReport",
    "refresh_user_stats",
    # Configuration
    "Config",
    "TimeRange",
    # Progress
    "ProgressEvent",
    "ProgressReporter",
    "ProgressStore",
    "Stage",
    # Achievements
    "ACHIEVEMENTS",
    "Achievement",
    "evaluate_achievements",
    "level_for_points",
    # Exceptions
    "GitQuestError",
    "GitHubAPIError",
    "GitHubRateLimitError",
    "GitHubNotFoundError",
    "GitHubGraphQLError",
    "AggregationError",
    "AggregationTimeoutError",
    "UserNotFoundError",
    "AuthenticationError",
    # Models
    "Repository",
    "RepoMetrics",
    "AggregateStats",
    "StreakState",
    "ActivityItem",
]
