"""Per-repository metrics and aggregate stats models."""

from collections.abc import Iterable
from datetime import date, datetime, timezone

from pydantic import BaseModel, Field

from gitquest.models.repository import Repository
from gitquest.models.streak import StreakState
from gitquest.timerange import TimeRange


class RepoMetrics(BaseModel):
    """Contribution metrics for one repository.

    ``estimated_lines_changed`` is extrapolated from a sample of commits and
    is not an exact count.
    """

    repo: str
    commits: int = 0
    estimated_lines_changed: int = 0
    sampled_commits: int = 0
    pull_requests: int = 0
    open_pull_requests: int = 0
    merged_pull_requests: int = 0
    reviews: int = 0

    @property
    def contributions(self) -> int:
        return self.commits + self.pull_requests + self.reviews

    @property
    def has_contributions(self) -> bool:
        return self.contributions > 0


class AggregateStats(BaseModel):
    """Totals for one user over one time range."""

    username: str = ""
    time_range: TimeRange = TimeRange.ALL
    commits: int = 0
    pull_requests: int = 0
    open_pull_requests: int = 0
    merged_pull_requests: int = 0
    reviews: int = 0
    stars: int = 0
    repos: int = 0
    private_repos: int = 0
    public_repos: int = 0
    estimated_lines_changed: int = 0
    lines_changed_is_estimate: bool = True
    current_streak: int = 0
    longest_streak: int = 0
    active_days: int = 0
    contributions: int = 0
    repositories_impacted: int = 0
    last_activity: date | None = None
    impact_by_repo: dict[str, int] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def streak(self) -> int:
        """Headline streak shown on the dashboard."""
        return self.current_streak

    @classmethod
    def zero(cls, username: str = "", time_range: TimeRange = TimeRange.ALL) -> "AggregateStats":
        """A zero-valued result for the given user and range."""
        return cls(username=username, time_range=time_range)

    @classmethod
    def rollup(
        cls,
        username: str,
        time_range: TimeRange,
        repositories: Iterable[Repository],
        metrics: Iterable[RepoMetrics],
        streak: StreakState | None = None,
    ) -> "AggregateStats":
        """Sum per-repository metrics into totals.

        Stars and repository counts cover every discovered repository, while
        commit, PR and review totals cover the repositories that were
        processed. Summation order does not matter.
        """
        repositories = list(repositories)
        streak = streak or StreakState.empty()
        stats = cls(
            username=username,
            time_range=time_range,
            stars=sum(repo.stargazers_count for repo in repositories),
            repos=len(repositories),
            private_repos=sum(1 for repo in repositories if repo.is_private),
            public_repos=sum(1 for repo in repositories if not repo.is_private),
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            active_days=streak.active_day_count,
            last_activity=streak.last_active_date,
        )

        for item in metrics:
            stats.commits += item.commits
            stats.pull_requests += item.pull_requests
            stats.open_pull_requests += item.open_pull_requests
            stats.merged_pull_requests += item.merged_pull_requests
            stats.reviews += item.reviews
            stats.estimated_lines_changed += item.estimated_lines_changed
            stats.contributions += item.contributions
            if item.has_contributions:
                stats.repositories_impacted += 1
            if item.estimated_lines_changed:
                stats.impact_by_repo[item.repo] = item.estimated_lines_changed

        return stats
