"""GitQuest aggregator - high-level API for computing a user's GitHub stats."""

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from gitquest.achievements import evaluate_achievements, level_for_points
from gitquest.config import Config, get_config
from gitquest.exceptions import (
    AggregationError,
    AggregationTimeoutError,
    AuthenticationError,
    GitHubAPIError,
    GitHubNotFoundError,
    GitQuestError,
    UserNotFoundError,
)
from gitquest.models.activity import ActivityItem, same_login
from gitquest.models.repository import Repository
from gitquest.models.stats import AggregateStats
from gitquest.progress import ProgressEvent, ProgressReporter, Stage
from gitquest.services.activity_collector import ActivityCollector
from gitquest.services.github_graphql_client import GitHubGraphQLClient
from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.services.metrics_collector import MetricsCollector
from gitquest.services.org_collector import OrgCollector
from gitquest.services.repo_collector import RepoCollector
from gitquest.services.scheduler import BoundedScheduler
from gitquest.services.streak_collector import StreakCollector
from gitquest.stores import CredentialResolver, StatsStore
from gitquest.timerange import DateWindow, TimeRange, resolve_window
from gitquest.utils.rate_limiter import RateLimitExecutor, RateLimitState

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """Outcome of a stats run.

    A failed run carries the error. Under ``zero_fallback`` it also carries a
    zero-valued ``stats`` record for callers that expect one.
    """

    stats: AggregateStats | None = None
    error: AggregationError | None = None
    failed_repos: list[str] = field(default_factory=list)
    awarded: list[str] = field(default_factory=list)
    level: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, AggregationTimeoutError)


class TokenReport(BaseModel):
    """What a token can see."""

    login: str
    name: str | None = None
    repositories: list[str] = Field(default_factory=list)
    has_private_repos: bool = False
    organizations: list[str] = Field(default_factory=list)
    rate_limit: dict = Field(default_factory=dict)


class StatsAggregator:
    """Computes dashboard stats for GitHub users.

    Example usage:
        ```python
        from gitquest import StatsAggregator

        async with StatsAggregator(token="ghp_xxx") as aggregator:
            result = await aggregator.aggregate("octocat", "month")
            if result.ok:
                print(result.stats.commits)
        ```

    Args:
        token: GitHub token. Overrides the token in ``config``.
        config: Settings; defaults to the environment configuration
    """

    def __init__(self, token: str | None = None, config: Config | None = None):
        config = config or get_config()
        self._config = dataclasses.replace(config, github_token=token) if token else config
        self._rest_client: GitHubRestClient | None = None
        self._graphql_client: GitHubGraphQLClient | None = None
        self._executor: RateLimitExecutor | None = None
        self._initialized = False

        self.org_collector: OrgCollector | None = None
        self.repo_collector: RepoCollector | None = None
        self.metrics_collector: MetricsCollector | None = None
        self.streak_collector: StreakCollector | None = None
        self.activity_collector: ActivityCollector | None = None
        self.scheduler: BoundedScheduler | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def is_authenticated(self) -> bool:
        return self._config.is_authenticated

    async def __aenter__(self) -> "StatsAggregator":
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize(self) -> None:
        """Create clients and collectors."""
        if self._initialized:
            return

        config = self._config
        self._rest_client = GitHubRestClient(config)
        if config.is_authenticated:
            self._graphql_client = GitHubGraphQLClient(config)

        executor = self._executor = RateLimitExecutor(
            max_retries=config.rate_limit_max_retries,
            base_delay=config.rate_limit_base_delay,
            max_delay=config.rate_limit_max_delay,
        )
        self.org_collector = OrgCollector(
            self._rest_client, executor, config.known_organizations
        )
        self.repo_collector = RepoCollector(
            self._rest_client,
            executor,
            self._graphql_client,
            max_org_pages=config.max_org_pages,
            per_page=config.per_page,
            graphql_timeout=config.graphql_timeout,
        )
        self.metrics_collector = MetricsCollector(
            self._rest_client,
            executor,
            max_commit_pages=config.max_commit_pages,
            max_pr_pages=config.max_pr_pages,
            review_sample_size=config.review_sample_size,
            per_page=config.per_page,
        )
        self.streak_collector = StreakCollector(
            self._graphql_client, executor, config.streak_lookback_days
        )
        self.activity_collector = ActivityCollector(self._rest_client, executor)
        self.scheduler = BoundedScheduler(
            max_concurrency=config.max_concurrency,
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
            max_retries=config.item_max_retries,
            retry_delay=config.item_retry_delay,
            rate_limit_delay=config.item_rate_limit_delay,
            max_retry_delay=config.rate_limit_max_delay,
        )

        self._initialized = True
        logger.debug("StatsAggregator initialized (authenticated=%s)", self.is_authenticated)

    async def close(self) -> None:
        """Close all HTTP connections."""
        if self._rest_client:
            await self._rest_client.close()
        if self._graphql_client:
            await self._graphql_client.close()
        self._initialized = False
        logger.debug("StatsAggregator closed")

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise GitQuestError(
                "Aggregator not initialized. Use 'async with StatsAggregator(...) as aggregator:'"
            )

    def select_repositories(self, repositories: list[Repository]) -> list[Repository]:
        """The most recently active repositories, up to the per-run cap."""
        ordered = sorted(repositories, key=lambda r: r.last_activity_at, reverse=True)
        return ordered[: self._config.max_repos]

    async def _check_user(self, username: str) -> None:
        """Make sure the handle exists before discovery swallows the 404s."""
        try:
            await self._executor.run(
                lambda: self._rest_client.get_user(username), f"user {username}"
            )
        except GitHubNotFoundError as e:
            raise UserNotFoundError(username) from e

    async def _collect(
        self,
        username: str,
        window: DateWindow,
        reporter: ProgressReporter,
        emit_complete: bool,
    ) -> AggregationResult:
        reporter.emit(Stage.INITIALIZING, 0, 100, f"Starting stats for {username}")
        await self._check_user(username)

        reporter.emit(Stage.DISCOVERING_REPOS, 0, 0, "Discovering organizations")
        organizations = await self.org_collector.collect_organizations(username)
        reporter.emit(
            Stage.DISCOVERING_REPOS,
            0,
            0,
            f"Found {len(organizations)} organizations, discovering repositories",
        )
        repositories = await self.repo_collector.collect_repositories(username, organizations)

        selected = self.select_repositories(repositories)
        by_name = {repo.full_name: repo for repo in selected}
        logger.info(
            "Processing %d of %d repositories for %s",
            len(selected),
            len(repositories),
            username,
        )
        reporter.emit(
            Stage.PROCESSING_REPOS,
            0,
            len(selected),
            f"Processing {len(selected)} of {len(repositories)} repositories",
        )

        def on_repo_done(completed: int, total: int, label: str) -> None:
            repo = by_name.get(label)
            reporter.emit(
                Stage.PROCESSING_REPOS,
                completed,
                total,
                f"Processed {label}",
                organization=repo.owner if repo and repo.is_organization else None,
            )

        outcome = await self.scheduler.run(
            selected,
            lambda repo: self.metrics_collector.collect(repo, username, window),
            label=lambda repo: repo.full_name,
            on_progress=on_repo_done,
        )

        reporter.emit(Stage.CALCULATING_STREAK, 0, 1, "Calculating contribution streak")
        streak = await self.streak_collector.collect_streak(username)

        reporter.emit(Stage.CALCULATING_IMPACT, 0, 1, "Totalling contributions")
        stats = AggregateStats.rollup(
            username, window.time_range, repositories, outcome.results, streak
        )

        reporter.emit(Stage.FINALIZING, 1, 1, "Finalizing stats")
        logger.info(
            "Stats for %s (%s): %d commits, %d PRs, %d reviews across %d repositories",
            username,
            window.time_range.value,
            stats.commits,
            stats.pull_requests,
            stats.reviews,
            stats.repos,
        )
        if outcome.failed:
            logger.warning(
                "%d repositories were skipped for %s: %s",
                len(outcome.failed),
                username,
                ", ".join(outcome.failed),
            )
        if emit_complete:
            reporter.emit(Stage.COMPLETE, 100, 100, "Stats updated")
        return AggregationResult(stats=stats, failed_repos=outcome.failed)

    def _failure(
        self,
        username: str,
        time_range: TimeRange,
        error: AggregationError,
    ) -> AggregationResult:
        stats = AggregateStats.zero(username, time_range) if self._config.zero_fallback else None
        return AggregationResult(stats=stats, error=error)

    async def aggregate(
        self,
        username: str,
        time_range: TimeRange | str = TimeRange.ALL,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        reporter: ProgressReporter | None = None,
        emit_complete: bool = True,
    ) -> AggregationResult:
        """Compute stats for a user over a time range.

        The whole run is bounded by ``config.aggregation_timeout``. Errors are
        never raised; they come back as a failed result.

        Args:
            username: GitHub username
            time_range: One of today, week, month, year, all
            on_progress: Called with every progress event
            reporter: Progress context to use instead of ``on_progress``
            emit_complete: Whether to finish with a ``complete`` event

        Returns:
            AggregationResult
        """
        self._ensure_initialized()
        time_range = TimeRange.parse(time_range)
        reporter = reporter or ProgressReporter.from_callback(on_progress)
        window = resolve_window(time_range)
        timeout = self._config.aggregation_timeout

        logger.info("Aggregating stats for %s (range=%s)", username, time_range.value)
        try:
            return await asyncio.wait_for(
                self._collect(username, window, reporter, emit_complete),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            stage = reporter.stage.value if reporter.stage else None
            error = AggregationTimeoutError(timeout, stage=stage)
            logger.error("Stats for %s timed out during %s", username, stage)
            reporter.emit(Stage.TIMED_OUT, detail=str(error))
            return self._failure(username, time_range, error)
        except Exception as e:
            stage = reporter.stage.value if reporter.stage else None
            error = AggregationError(f"Failed to aggregate stats for {username}: {e}", stage)
            error.__cause__ = e
            logger.error("Stats for %s failed during %s: %s", username, stage, e, exc_info=True)
            reporter.emit(Stage.FAILED, detail=str(e))
            return self._failure(username, time_range, error)

    async def _token_owns(self, username: str) -> bool:
        """Whether the configured token belongs to ``username``."""
        if not self.is_authenticated:
            return False
        try:
            user = await self._rest_client.get_authenticated_user()
        except GitHubAPIError as e:
            logger.warning("Could not identify the token owner: %s", e)
            return False
        return same_login(user.get("login"), username)

    async def recent_activity(
        self,
        username: str,
        time_range: TimeRange | str = TimeRange.ALL,
        limit: int = 20,
    ) -> list[ActivityItem]:
        """Latest commits and pull requests of a user, newest first."""
        self._ensure_initialized()
        window = resolve_window(time_range)
        own_token = await self._token_owns(username)
        logger.info(
            "Fetching recent activity for %s (range=%s, own token=%s)",
            username,
            window.time_range.value,
            own_token,
        )
        return await self.activity_collector.collect_recent_activity(
            username, window, limit=limit, own_token=own_token
        )

    async def verify_token(self) -> TokenReport:
        """Check the configured token and report what it can see.

        Raises:
            AuthenticationError: If no token is configured or GitHub rejects it
        """
        self._ensure_initialized()
        if not self.is_authenticated:
            raise AuthenticationError("No GitHub token configured")

        try:
            user = await self._rest_client.get_authenticated_user()
        except GitHubAPIError as e:
            if e.status_code == 401:
                raise AuthenticationError(f"GitHub rejected the token: {e}") from e
            raise

        repos = [
            Repository.from_api(r)
            for r in await self._rest_client.list_authenticated_repos(per_page=5)
        ]
        orgs = await self._rest_client.list_authenticated_orgs()
        core = (await self._rest_client.get_rate_limit())["core"]
        quota = RateLimitState(
            limit=core.get("limit"),
            remaining=core.get("remaining"),
            reset_time=core.get("reset"),
        )
        report = TokenReport(
            login=user.get("login", ""),
            name=user.get("name"),
            repositories=[repo.full_name for repo in repos],
            has_private_repos=any(repo.is_private for repo in repos),
            organizations=[org["login"] for org in orgs if org.get("login")],
            rate_limit=quota.as_dict(),
        )
        logger.info(
            "Token belongs to %s (%d organizations visible)", report.login, len(report.organizations)
        )
        return report


async def refresh_user_stats(
    user_id: str,
    store: StatsStore,
    credentials: CredentialResolver,
    time_range: TimeRange | str = TimeRange.ALL,
    reporter: ProgressReporter | None = None,
    config: Config | None = None,
) -> AggregationResult:
    """Refresh a dashboard user's stats.

    All-time runs are saved and followed by achievement evaluation; runs for
    shorter ranges are only returned.

    Raises:
        UserNotFoundError: If the store has no such user
        AuthenticationError: If the user has not connected a GitHub account
    """
    time_range = TimeRange.parse(time_range)
    reporter = reporter or ProgressReporter()

    record = await store.get_user(user_id)
    if record is None:
        raise UserNotFoundError(user_id)
    if not record.github_username:
        raise AuthenticationError(f"GitHub not connected for user {user_id}")

    credential = await credentials.resolve(user_id)
    persist = time_range is TimeRange.ALL

    async with StatsAggregator(token=credential.token, config=config) as aggregator:
        result = await aggregator.aggregate(
            record.github_username,
            time_range,
            reporter=reporter,
            emit_complete=not persist,
        )

    if not persist or not result.ok:
        return result

    reporter.emit(Stage.SAVING, 0, 100, "Saving stats")
    await store.upsert_stats(user_id, result.stats)

    reporter.emit(Stage.SAVING, 50, 100, "Checking for achievements")
    for achievement in evaluate_achievements(
        result.stats, record.achievements, record.social_connected
    ):
        if await store.award_achievement(user_id, achievement):
            result.awarded.append(achievement.name)

    # Level follows the stored point total, carried-forward points included
    record = await store.get_user(user_id)
    result.level = level_for_points(record.points)
    await store.set_level(user_id, result.level)

    reporter.emit(Stage.COMPLETE, 100, 100, "Stats updated")
    return result
