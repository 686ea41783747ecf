"""Data models for gitquest."""

from gitquest.models.activity import ActivityItem, CommitSample, PullRequest, Review
from gitquest.models.repository import Repository
from gitquest.models.stats import AggregateStats, RepoMetrics
from gitquest.models.streak import ContributionDay, StreakState

__all__ = [
    "Repository",
    "CommitSample",
    "PullRequest",
    "Review",
    "ActivityItem",
    "RepoMetrics",
    "AggregateStats",
    "ContributionDay",
    "StreakState",
]
