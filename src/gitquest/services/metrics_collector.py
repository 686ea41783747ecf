"""Per-repository contribution metrics.

Line counts are estimates. Fetching stats for every commit costs one request
per commit, so only a sample is fetched and the mean change size of the sample
is multiplied by the total commit count.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from gitquest.exceptions import GitHubAPIError, is_rate_limit_error
from gitquest.models.activity import CommitSample, PullRequest, Review, same_login
from gitquest.models.repository import Repository
from gitquest.models.stats import RepoMetrics
from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.timerange import DateWindow
from gitquest.utils.pagination import collect_pages
from gitquest.utils.rate_limiter import RateLimitExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

SMALL_REPO_COMMITS = 10
MEDIUM_REPO_COMMITS = 100


def is_empty_source(error: BaseException) -> bool:
    """Client errors other than rate limits mean "nothing here for this actor".

    Covers 404s, permission 403s, and GitHub's 409 for empty repositories.
    """
    if not isinstance(error, GitHubAPIError) or is_rate_limit_error(error):
        return False
    return error.status_code is not None and 400 <= error.status_code < 500


def sample_size(commit_count: int) -> int:
    """How many commits to fetch detailed stats for.

    Small repositories are sampled in full, medium ones at 25% (at least 10)
    and large ones at 10% (at least 15).
    """
    if commit_count <= SMALL_REPO_COMMITS:
        return commit_count
    if commit_count <= MEDIUM_REPO_COMMITS:
        return max(10, int(commit_count * 0.25))
    return max(15, int(commit_count * 0.10))


def select_sample(commits: list[CommitSample], size: int) -> list[CommitSample]:
    """Pick ``size`` commits spread evenly through the history."""
    count = len(commits)
    if count == 0 or size <= 0:
        return []
    step = count / size
    return [commits[min(int(i * step), count - 1)] for i in range(size)]


def _log_skipped(error: BaseException, what: str, *args: Any) -> None:
    if is_empty_source(error):
        logger.debug("Skipping " + what + ": %s", *args, error)
    else:
        logger.warning("Skipping " + what + ": %s", *args, error)


async def _or_default(step: Awaitable[T], default: T, label: str) -> T:
    """Await one metric step, falling back to ``default`` if it fails."""
    try:
        return await step
    except Exception as e:
        logger.warning("Failed to collect %s, counting it as zero: %s", label, e)
        return default


def extrapolate_lines_changed(sampled_changes: list[int], total_commits: int) -> int:
    """Scale the sample's mean change size to the full commit count."""
    if not sampled_changes:
        return 0
    average = sum(sampled_changes) / len(sampled_changes)
    return round(average * total_commits)


class MetricsCollector:
    """Collects commits, estimated line changes, PRs and reviews for one repository."""

    def __init__(
        self,
        rest_client: GitHubRestClient,
        executor: RateLimitExecutor,
        max_commit_pages: int = 3,
        max_pr_pages: int = 2,
        review_sample_size: int = 20,
        per_page: int = 100,
    ):
        self.rest_client = rest_client
        self.executor = executor
        self.max_commit_pages = max_commit_pages
        self.max_pr_pages = max_pr_pages
        self.review_sample_size = review_sample_size
        self.per_page = per_page

    async def _paginate(
        self,
        fetch: Callable[[int], Awaitable[list[dict[str, Any]]]],
        max_pages: int,
        label: str,
    ) -> list[dict[str, Any]]:
        """Collect pages through the executor, stopping at an empty source."""

        async def fetch_page(page: int) -> list[dict[str, Any]]:
            try:
                return await self.executor.run(lambda: fetch(page), f"{label} page {page}")
            except GitHubAPIError as e:
                if not is_empty_source(e):
                    raise
                logger.debug("No %s on page %d: %s", label, page, e)
                return []

        return await collect_pages(fetch_page, max_pages, self.per_page)

    async def collect_commits(
        self,
        repo: Repository,
        username: str,
        window: DateWindow,
    ) -> list[CommitSample]:
        """List the user's commits in the window, up to the page cap."""
        data = await self._paginate(
            lambda page: self.rest_client.list_commits(
                repo.owner,
                repo.name,
                author=username,
                since=window.since_param(),
                until=window.until_param(),
                page=page,
                per_page=self.per_page,
            ),
            self.max_commit_pages,
            f"commits in {repo.full_name}",
        )
        commits = [CommitSample.from_api(c, repo.full_name) for c in data]
        logger.debug("Found %d commits in %s", len(commits), repo.full_name)
        return commits

    async def estimate_lines_changed(
        self,
        repo: Repository,
        commits: list[CommitSample],
    ) -> tuple[int, int]:
        """Estimate lines changed across ``commits`` from a sample.

        Returns:
            (estimated lines changed, number of commits analyzed)
        """
        sampled_changes: list[int] = []
        for commit in select_sample(commits, sample_size(len(commits))):
            try:
                data = await self.executor.run(
                    lambda: self.rest_client.get_commit(repo.owner, repo.name, commit.sha),
                    f"commit {commit.sha[:7]} in {repo.full_name}",
                )
            except Exception as e:
                _log_skipped(e, "stats for commit %s in %s", commit.sha[:7], repo.full_name)
                continue

            detailed = CommitSample.from_api(data, repo.full_name)
            if detailed.has_stats:
                sampled_changes.append(detailed.lines_changed)

        estimate = extrapolate_lines_changed(sampled_changes, len(commits))
        if sampled_changes:
            logger.debug(
                "Estimated %d lines changed in %s from %d of %d commits",
                estimate,
                repo.full_name,
                len(sampled_changes),
                len(commits),
            )
        return estimate, len(sampled_changes)

    async def collect_pull_requests(
        self,
        repo: Repository,
        username: str,
        window: DateWindow,
    ) -> tuple[list[PullRequest], list[PullRequest]]:
        """List pull requests in the repository.

        Returns:
            (PRs authored by the user inside the window, the most recent PRs
            in the repository for review sampling)
        """
        data = await self._paginate(
            lambda page: self.rest_client.list_pulls(
                repo.owner, repo.name, state="all", page=page, per_page=self.per_page
            ),
            self.max_pr_pages,
            f"pull requests in {repo.full_name}",
        )
        pulls = [PullRequest.from_api(p, repo.full_name) for p in data]
        authored = [
            pr for pr in pulls if same_login(pr.author, username) and window.contains(pr.created_at)
        ]
        logger.debug("Found %d PRs by %s in %s", len(authored), username, repo.full_name)
        return authored, pulls[: self.review_sample_size]

    async def count_reviews(
        self,
        repo: Repository,
        pulls: list[PullRequest],
        username: str,
        window: DateWindow,
    ) -> int:
        """Count the user's reviews on a sample of pull requests.

        One request per PR, so only a small sample is checked.
        """
        total = 0
        for pr in pulls:
            try:
                data = await self.executor.run(
                    lambda: self.rest_client.list_reviews(repo.owner, repo.name, pr.number),
                    f"reviews on {repo.full_name}#{pr.number}",
                )
            except Exception as e:
                _log_skipped(e, "reviews on %s#%d", repo.full_name, pr.number)
                continue

            reviews = [Review.from_api(r) for r in data]
            total += sum(
                1
                for review in reviews
                if same_login(review.reviewer, username) and window.contains(review.submitted_at)
            )
        logger.debug("Found %d reviews by %s in %s", total, username, repo.full_name)
        return total

    async def collect(
        self,
        repo: Repository,
        username: str,
        window: DateWindow,
    ) -> RepoMetrics:
        """Collect all metrics for one repository.

        Client errors (missing repository, no permission) zero out the
        affected metric. Rate limits and transient failures while listing
        commits propagate so the scheduler can retry the whole repository;
        once commits are in, a later failing step only zeroes its own metric.
        """
        logger.debug("Processing %s (private=%s)", repo.full_name, repo.is_private)

        commits = await self.collect_commits(repo, username, window)
        estimated_lines, sampled = await _or_default(
            self.estimate_lines_changed(repo, commits),
            (0, 0),
            f"line changes in {repo.full_name}",
        )
        authored, recent = await _or_default(
            self.collect_pull_requests(repo, username, window),
            ([], []),
            f"pull requests in {repo.full_name}",
        )
        reviews = await _or_default(
            self.count_reviews(repo, recent, username, window),
            0,
            f"reviews in {repo.full_name}",
        )

        return RepoMetrics(
            repo=repo.full_name,
            commits=len(commits),
            estimated_lines_changed=estimated_lines,
            sampled_commits=sampled,
            pull_requests=len(authored),
            open_pull_requests=sum(1 for pr in authored if pr.is_open),
            merged_pull_requests=sum(1 for pr in authored if pr.is_merged),
            reviews=reviews,
        )
