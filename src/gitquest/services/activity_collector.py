"""Recent activity timeline collector service."""

import asyncio
import logging

from gitquest.models.activity import ActivityItem, CommitSample, PullRequest, same_login
from gitquest.models.repository import Repository, merge_repositories
from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.timerange import DateWindow
from gitquest.utils.rate_limiter import RateLimitExecutor

logger = logging.getLogger(__name__)


class ActivityCollector:
    """Builds a timeline of a user's latest commits and pull requests.

    Only the most recently updated repositories are scanned, so the timeline
    is a cheap preview rather than a complete history.
    """

    def __init__(
        self,
        rest_client: GitHubRestClient,
        executor: RateLimitExecutor,
        commit_repos: int = 5,
        commits_per_repo: int = 10,
        pr_repos: int = 10,
    ):
        self.rest_client = rest_client
        self.executor = executor
        self.commit_repos = commit_repos
        self.commits_per_repo = commits_per_repo
        self.pr_repos = pr_repos

    async def _own_repos(self) -> list[Repository]:
        """Authenticated repositories plus those of the token's organizations."""
        repos = await self.executor.run(
            self.rest_client.list_authenticated_repos, "authenticated repos"
        )
        groups = [[Repository.from_api(r) for r in repos]]

        try:
            orgs = await self.executor.run(
                self.rest_client.list_authenticated_orgs, "authenticated orgs"
            )
        except Exception as e:
            logger.warning("Failed to list organizations for activity: %s", e)
            orgs = []

        for org in orgs:
            login = org.get("login")
            if not login:
                continue
            try:
                data = await self.executor.run(
                    lambda: self.rest_client.list_org_repos(login), f"repos of {login}"
                )
            except Exception as e:
                logger.warning("Failed to list repositories of %s: %s", login, e)
                continue
            groups.append([Repository.from_api(r) for r in data])

        return list(merge_repositories(*groups).values())

    async def _candidate_repos(self, username: str, own_token: bool) -> list[Repository]:
        if own_token:
            repos = await self._own_repos()
        else:
            data = await self.executor.run(
                lambda: self.rest_client.list_user_repos(username), f"repos of {username}"
            )
            repos = [Repository.from_api(r) for r in data]
        return sorted(repos, key=lambda r: r.last_activity_at, reverse=True)

    async def _recent_commits(
        self, repo: Repository, username: str, window: DateWindow
    ) -> list[ActivityItem]:
        try:
            data = await self.executor.run(
                lambda: self.rest_client.list_commits(
                    repo.owner,
                    repo.name,
                    author=username,
                    since=window.since_param(),
                    until=window.until_param(),
                    per_page=self.commits_per_repo,
                ),
                f"recent commits in {repo.full_name}",
            )
        except Exception as e:
            logger.warning("Failed to fetch recent commits for %s: %s", repo.full_name, e)
            return []
        return [ActivityItem.from_commit(CommitSample.from_api(c, repo.full_name)) for c in data]

    async def _recent_pulls(
        self, repo: Repository, username: str, window: DateWindow
    ) -> list[ActivityItem]:
        try:
            data = await self.executor.run(
                lambda: self.rest_client.list_pulls(repo.owner, repo.name, state="all"),
                f"recent pull requests in {repo.full_name}",
            )
        except Exception as e:
            logger.warning("Failed to fetch recent PRs for %s: %s", repo.full_name, e)
            return []
        pulls = [PullRequest.from_api(p, repo.full_name) for p in data]
        return [
            ActivityItem.from_pull_request(pr)
            for pr in pulls
            if same_login(pr.author, username) and window.contains(pr.created_at)
        ]

    async def collect_recent_activity(
        self,
        username: str,
        window: DateWindow,
        limit: int = 20,
        own_token: bool = False,
    ) -> list[ActivityItem]:
        """Collect the latest commits and pull requests of a user.

        Args:
            username: GitHub username
            window: Only activity inside this window is returned
            limit: Maximum number of items
            own_token: The token belongs to ``username``, so private and
                organization repositories can be scanned

        Returns:
            Activity items, newest first
        """
        repos = await self._candidate_repos(username, own_token)
        logger.debug("Scanning %d repositories for recent activity of %s", len(repos), username)

        commit_groups = await asyncio.gather(
            *(self._recent_commits(r, username, window) for r in repos[: self.commit_repos])
        )
        pull_groups = await asyncio.gather(
            *(self._recent_pulls(r, username, window) for r in repos[: self.pr_repos])
        )

        items = [item for group in (*commit_groups, *pull_groups) for item in group]
        items.sort(key=lambda item: item.date, reverse=True)
        return items[:limit]
