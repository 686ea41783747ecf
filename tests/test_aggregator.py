"""Tests for the StatsAggregator orchestrator and the refresh workflow."""

import asyncio
import dataclasses
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gitquest.aggregator import AggregationResult, StatsAggregator, refresh_user_stats
from gitquest.config import Config
from gitquest.exceptions import (
    AggregationError,
    AuthenticationError,
    GitHubAPIError,
    GitHubNotFoundError,
    GitQuestError,
    UserNotFoundError,
)
from gitquest.models.stats import AggregateStats
from gitquest.models.streak import StreakState
from gitquest.progress import ProgressReporter, ProgressStore, Stage
from gitquest.services.metrics_collector import MetricsCollector
from gitquest.services.org_collector import OrgCollector
from gitquest.services.repo_collector import RepoCollector
from gitquest.services.streak_collector import StreakCollector
from gitquest.stores import Credential, InMemoryStatsStore, StaticCredentialResolver
from gitquest.timerange import TimeRange
from gitquest.utils.rate_limiter import RateLimitExecutor


def _fake_rest(repo_payload, commit_payload, repos=None, commits_per_repo=10):
    """REST client double serving a fixed set of repositories and commits."""
    rest = MagicMock()
    rest.get_user = AsyncMock(return_value={"login": "alice"})
    rest.close = AsyncMock()
    rest.list_authenticated_orgs = AsyncMock(return_value=[])
    rest.list_user_orgs = AsyncMock(return_value=[])
    rest.list_org_memberships = AsyncMock(return_value=[])
    rest.list_authenticated_repos = AsyncMock(
        return_value=repos
        if repos is not None
        else [
            repo_payload("alice/one", updated_at="2024-06-03T00:00:00Z"),
            repo_payload("alice/two", updated_at="2024-06-02T00:00:00Z"),
            repo_payload("alice/three", updated_at="2024-06-01T00:00:00Z"),
        ]
    )
    rest.list_user_repos = AsyncMock(return_value=[])
    rest.search_repositories = AsyncMock(return_value=[])

    async def list_commits(owner, repo, author=None, since=None, until=None, page=1, per_page=100):
        if page > 1:
            return []
        return [commit_payload(f"{repo}-{i}") for i in range(commits_per_repo)]

    async def get_commit(owner, repo, sha):
        return commit_payload(sha, additions=8, deletions=2)

    rest.list_commits = AsyncMock(side_effect=list_commits)
    rest.get_commit = AsyncMock(side_effect=get_commit)
    rest.list_pulls = AsyncMock(return_value=[])
    rest.list_reviews = AsyncMock(return_value=[])
    return rest


def _wire(aggregator: StatsAggregator, rest) -> None:
    """Point the aggregator's collectors at a fake REST client."""
    executor = RateLimitExecutor(max_retries=1, base_delay=0, max_delay=0)
    aggregator._rest_client = rest
    config = aggregator.config
    aggregator.org_collector = OrgCollector(rest, executor)
    aggregator.repo_collector = RepoCollector(rest, executor, None, per_page=config.per_page)
    aggregator.metrics_collector = MetricsCollector(rest, executor, per_page=config.per_page)
    aggregator.streak_collector = StreakCollector(None, executor)


def _stages(events) -> list[str]:
    """Stage sequence with consecutive repeats collapsed."""
    stages: list[str] = []
    for event in events:
        if not stages or stages[-1] != event.stage.value:
            stages.append(event.stage.value)
    return stages


class TestStatsAggregatorInit:
    """Tests for aggregator setup."""

    def test_token_overrides_config(self, test_config):
        aggregator = StatsAggregator(token="ghp_other", config=test_config)
        assert aggregator.config.github_token == "ghp_other"
        assert test_config.github_token == "test_token"

    @pytest.mark.asyncio
    async def test_context_manager(self, test_config):
        aggregator = StatsAggregator(config=test_config)
        async with aggregator:
            assert aggregator._initialized is True
            assert aggregator._graphql_client is not None
            assert aggregator.scheduler.max_concurrency == test_config.max_concurrency
        assert aggregator._initialized is False

    @pytest.mark.asyncio
    async def test_unauthenticated_has_no_graphql(self):
        async with StatsAggregator(config=Config()) as aggregator:
            assert aggregator._graphql_client is None

    @pytest.mark.asyncio
    async def test_requires_initialization(self, test_config):
        with pytest.raises(GitQuestError, match="not initialized"):
            await StatsAggregator(config=test_config).aggregate("alice")


class TestAggregate:
    """End-to-end aggregation with fake GitHub responses."""

    @pytest.mark.asyncio
    async def test_alice_scenario(self, test_config, repo_payload, commit_payload):
        """Test three repositories with ten commits each."""
        events = []
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            result = await aggregator.aggregate("alice", "all", on_progress=events.append)

        assert result.ok is True
        assert result.timed_out is False
        stats = result.stats
        assert stats.username == "alice"
        assert stats.commits == 30
        assert stats.contributions == 30
        assert stats.repos == 3
        assert stats.stars == 0
        assert stats.pull_requests == 0
        assert stats.repositories_impacted == 3
        assert stats.estimated_lines_changed == 300
        assert stats.lines_changed_is_estimate is True
        assert result.failed_repos == []

    @pytest.mark.asyncio
    async def test_progress_stages(self, test_config, repo_payload, commit_payload):
        events = []
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            await aggregator.aggregate("alice", on_progress=events.append)

        assert _stages(events) == [
            "initializing",
            "discovering-repos",
            "processing-repos",
            "calculating-streak",
            "calculating-impact",
            "finalizing",
            "complete",
        ]
        processing = [e for e in events if e.stage is Stage.PROCESSING_REPOS]
        assert [e.completed for e in processing] == [0, 1, 2, 3]
        assert all(e.total == 3 for e in processing)

    @pytest.mark.asyncio
    async def test_processes_most_recent_repositories(self, test_config, repo_payload, commit_payload):
        """Test only the newest repositories are processed while all are counted."""
        config = dataclasses.replace(test_config, max_repos=2)
        rest = _fake_rest(repo_payload, commit_payload)
        async with StatsAggregator(config=config) as aggregator:
            _wire(aggregator, rest)
            result = await aggregator.aggregate("alice")

        processed = {call.args[1] for call in rest.list_commits.await_args_list}
        assert processed == {"one", "two"}
        assert result.stats.repos == 3
        assert result.stats.commits == 20

    @pytest.mark.asyncio
    async def test_failing_repository_is_skipped(self, test_config, repo_payload, commit_payload):
        rest = _fake_rest(repo_payload, commit_payload)
        healthy = rest.list_commits.side_effect

        async def list_commits(owner, repo, **kwargs):
            if repo == "two":
                raise GitHubAPIError("Server error: 502", status_code=502)
            return await healthy(owner, repo, **kwargs)

        rest.list_commits = AsyncMock(side_effect=list_commits)
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, rest)
            result = await aggregator.aggregate("alice")

        assert result.ok is True
        assert result.failed_repos == ["alice/two"]
        assert result.stats.commits == 20
        assert result.stats.repos == 3

    @pytest.mark.asyncio
    async def test_streak_is_merged(self, test_config, repo_payload, commit_payload):
        streak = StreakState(current_streak=4, longest_streak=9, active_days={"2024-06-01": 1})
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            aggregator.streak_collector = MagicMock()
            aggregator.streak_collector.collect_streak = AsyncMock(return_value=streak)
            result = await aggregator.aggregate("alice")

        assert result.stats.streak == 4
        assert result.stats.longest_streak == 9

    @pytest.mark.asyncio
    async def test_time_range_is_applied(self, test_config, repo_payload, commit_payload):
        rest = _fake_rest(repo_payload, commit_payload)
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, rest)
            result = await aggregator.aggregate("alice", "week")

        assert result.stats.time_range is TimeRange.WEEK
        assert rest.list_commits.await_args.kwargs["since"] is not None


class TestAggregateFailures:
    """Tests for timeouts and unexpected errors."""

    @pytest.mark.asyncio
    async def test_hanging_collector_times_out(self, test_config, repo_payload, commit_payload):
        """Test the global ceiling turns a hang into a timed-out result."""
        config = dataclasses.replace(test_config, aggregation_timeout=0.05)

        async def hang(username, organizations=None):
            await asyncio.sleep(5)
            return []

        events = []
        async with StatsAggregator(config=config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            aggregator.repo_collector.collect_repositories = AsyncMock(side_effect=hang)
            result = await asyncio.wait_for(
                aggregator.aggregate("alice", on_progress=events.append), timeout=2
            )

        assert result.ok is False
        assert result.timed_out is True
        assert result.stats is None
        assert result.error.stage == "discovering-repos"
        assert "timed out" in str(result.error)
        assert events[-1].stage is Stage.TIMED_OUT

    @pytest.mark.asyncio
    async def test_zero_fallback(self, test_config, repo_payload, commit_payload):
        """Test callers can opt into a zero-valued record on failure."""
        config = dataclasses.replace(test_config, aggregation_timeout=0.05, zero_fallback=True)

        async def hang(username, organizations=None):
            await asyncio.sleep(5)
            return []

        async with StatsAggregator(config=config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            aggregator.repo_collector.collect_repositories = AsyncMock(side_effect=hang)
            result = await aggregator.aggregate("alice", "month")

        assert result.timed_out is True
        assert result.stats.commits == 0
        assert result.stats.time_range is TimeRange.MONTH

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failure(self, test_config, repo_payload, commit_payload):
        events = []
        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, _fake_rest(repo_payload, commit_payload))
            aggregator.org_collector.collect_organizations = AsyncMock(
                side_effect=RuntimeError("boom")
            )
            result = await aggregator.aggregate("alice", on_progress=events.append)

        assert result.ok is False
        assert result.timed_out is False
        assert isinstance(result.error, AggregationError)
        assert isinstance(result.error.__cause__, RuntimeError)
        assert result.error.stage == "discovering-repos"
        assert events[-1].stage is Stage.FAILED

    @pytest.mark.asyncio
    async def test_unknown_user_fails(self, test_config, repo_payload, commit_payload):
        """Test a missing handle is a failure, not a verified zero."""
        rest = _fake_rest(repo_payload, commit_payload)
        rest.get_user = AsyncMock(side_effect=GitHubNotFoundError("Not Found"))
        events = []

        async with StatsAggregator(config=test_config) as aggregator:
            _wire(aggregator, rest)
            result = await aggregator.aggregate("no-such-user", on_progress=events.append)

        assert result.ok is False
        assert result.stats is None
        assert isinstance(result.error.__cause__, UserNotFoundError)
        assert result.error.stage == "initializing"
        assert events[-1].stage is Stage.FAILED
        rest.list_authenticated_repos.assert_not_awaited()


class TestTokenAndActivity:
    """Tests for verify_token and recent_activity."""

    @pytest.mark.asyncio
    async def test_verify_token(self, test_config, repo_payload):
        rest = MagicMock()
        rest.get_authenticated_user = AsyncMock(return_value={"login": "alice", "name": "Alice"})
        rest.list_authenticated_repos = AsyncMock(
            return_value=[repo_payload("alice/secret", private=True), repo_payload("alice/x")]
        )
        rest.list_authenticated_orgs = AsyncMock(return_value=[{"login": "acme"}])
        rest.get_rate_limit = AsyncMock(
            return_value={"core": {"limit": 5000, "remaining": 4999, "reset": 4102444800}, "search": {}}
        )
        rest.close = AsyncMock()

        async with StatsAggregator(config=test_config) as aggregator:
            aggregator._rest_client = rest
            report = await aggregator.verify_token()

        assert report.login == "alice"
        assert report.has_private_repos is True
        assert report.repositories == ["alice/secret", "alice/x"]
        assert report.organizations == ["acme"]
        assert report.rate_limit["remaining"] == 4999
        assert report.rate_limit["limit"] == 5000
        assert report.rate_limit["reset_time"] == 4102444800
        assert report.rate_limit["reset_in"] > 0
        rest.list_authenticated_repos.assert_awaited_once_with(per_page=5)

    @pytest.mark.asyncio
    async def test_verify_token_rejected(self, test_config):
        rest = MagicMock()
        rest.get_authenticated_user = AsyncMock(
            side_effect=GitHubAPIError("Bad credentials", status_code=401)
        )
        rest.close = AsyncMock()

        async with StatsAggregator(config=test_config) as aggregator:
            aggregator._rest_client = rest
            with pytest.raises(AuthenticationError):
                await aggregator.verify_token()

    @pytest.mark.asyncio
    async def test_verify_token_requires_token(self):
        async with StatsAggregator(config=Config()) as aggregator:
            with pytest.raises(AuthenticationError):
                await aggregator.verify_token()

    @pytest.mark.asyncio
    async def test_recent_activity_uses_own_repos_for_token_owner(self, test_config):
        rest = MagicMock()
        rest.get_authenticated_user = AsyncMock(return_value={"login": "Alice"})
        rest.close = AsyncMock()

        async with StatsAggregator(config=test_config) as aggregator:
            aggregator._rest_client = rest
            aggregator.activity_collector = MagicMock()
            aggregator.activity_collector.collect_recent_activity = AsyncMock(return_value=[])
            await aggregator.recent_activity("alice", "week", limit=5)

        call = aggregator.activity_collector.collect_recent_activity.await_args
        assert call.kwargs["own_token"] is True
        assert call.kwargs["limit"] == 5
        assert call.args[1].time_range is TimeRange.WEEK


class TestRefreshUserStats:
    """Tests for the persist-and-award workflow."""

    def _result(self, **totals) -> AggregationResult:
        return AggregationResult(stats=AggregateStats(username="alice", **totals))

    @pytest.fixture
    def store(self):
        store = InMemoryStatsStore()
        store.add_user("u1", github_username="alice")
        return store

    @pytest.fixture
    def credentials(self):
        return StaticCredentialResolver(
            {"u1": Credential(token="ghp_user", scopes=("read:user", "user:email", "repo", "read:org"))}
        )

    @pytest.mark.asyncio
    async def test_all_time_refresh_saves_and_awards(self, test_config, store, credentials):
        progress = ProgressStore()
        progress.start("u1")
        result = self._result(commits=120, repos=6, stars=3)

        with patch.object(StatsAggregator, "aggregate", new=AsyncMock(return_value=result)) as run:
            outcome = await refresh_user_stats(
                "u1",
                store,
                credentials,
                reporter=ProgressReporter(progress.sink_for("u1")),
                config=test_config,
            )

        assert outcome.ok is True
        assert sorted(outcome.awarded) == ["Century Club", "First Blood", "Repo Collector"]
        record = await store.get_user("u1")
        assert record.stats.commits == 120
        assert record.points == 10 + 200 + 75
        assert record.level == 3
        assert outcome.level == 3
        assert progress.get("u1").stage is Stage.COMPLETE
        assert run.await_args.args[0] == "alice"

    @pytest.mark.asyncio
    async def test_refresh_does_not_award_twice(self, test_config, store, credentials):
        result = self._result(commits=5)

        with patch.object(StatsAggregator, "aggregate", new=AsyncMock(return_value=result)):
            await refresh_user_stats("u1", store, credentials, config=test_config)
            second = await refresh_user_stats("u1", store, credentials, config=test_config)

        record = await store.get_user("u1")
        assert second.awarded == []
        assert record.achievements == ["First Blood"]
        assert record.points == 10

    @pytest.mark.asyncio
    async def test_level_counts_prior_points(self, test_config, credentials):
        store = InMemoryStatsStore()
        store.add_user("u1", github_username="alice", points=95)
        result = self._result(commits=1)

        with patch.object(StatsAggregator, "aggregate", new=AsyncMock(return_value=result)):
            outcome = await refresh_user_stats("u1", store, credentials, config=test_config)

        record = await store.get_user("u1")
        assert record.points == 105
        assert record.level == 2
        assert outcome.level == 2

    @pytest.mark.asyncio
    async def test_short_range_is_not_saved(self, test_config, store, credentials):
        result = self._result(commits=5)

        with patch.object(StatsAggregator, "aggregate", new=AsyncMock(return_value=result)):
            outcome = await refresh_user_stats(
                "u1", store, credentials, time_range="week", config=test_config
            )

        record = await store.get_user("u1")
        assert outcome.stats.commits == 5
        assert record.stats is None
        assert record.points == 0

    @pytest.mark.asyncio
    async def test_failed_run_is_not_saved(self, test_config, store, credentials):
        failed = AggregationResult(error=AggregationError("boom", stage="processing-repos"))

        with patch.object(StatsAggregator, "aggregate", new=AsyncMock(return_value=failed)):
            outcome = await refresh_user_stats("u1", store, credentials, config=test_config)

        assert outcome.ok is False
        assert (await store.get_user("u1")).stats is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, test_config, credentials):
        with pytest.raises(UserNotFoundError):
            await refresh_user_stats("nobody", InMemoryStatsStore(), credentials, config=test_config)

    @pytest.mark.asyncio
    async def test_github_not_connected(self, test_config, credentials):
        store = InMemoryStatsStore()
        store.add_user("u2")

        with pytest.raises(AuthenticationError):
            await refresh_user_stats("u2", store, credentials, config=test_config)
