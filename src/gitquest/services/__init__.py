"""Services for GitHub data collection."""

from gitquest.services.activity_collector import ActivityCollector
from gitquest.services.github_graphql_client import GitHubGraphQLClient
from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.services.metrics_collector import MetricsCollector
from gitquest.services.org_collector import OrgCollector
from gitquest.services.repo_collector import RepoCollector
from gitquest.services.scheduler import BoundedScheduler, ScheduleOutcome
from gitquest.services.streak_collector import StreakCollector

__all__ = [
    "GitHubRestClient",
    "GitHubGraphQLClient",
    "BoundedScheduler",
    "ScheduleOutcome",
    "OrgCollector",
    "RepoCollector",
    "MetricsCollector",
    "StreakCollector",
    "ActivityCollector",
]
