"""Repository discovery service."""

import asyncio
import logging
from typing import Any

from gitquest.models.repository import Repository, merge_repositories
from gitquest.services.github_graphql_client import GitHubGraphQLClient
from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.utils.pagination import collect_pages
from gitquest.utils.rate_limiter import RateLimitExecutor

logger = logging.getLogger(__name__)


# GitHub rejects longer search queries with a 422
MAX_QUERY_LENGTH = 256


def _org_queries(organizations: list[str]) -> list[str]:
    """Pack `org:` qualifiers into as few queries as fit the length limit."""
    queries: list[str] = []
    current = ""
    for org in organizations:
        term = f"org:{org}"
        candidate = f"{current} {term}" if current else term
        if current and len(candidate) > MAX_QUERY_LENGTH:
            queries.append(current)
            current = term
        else:
            current = candidate
    if current:
        queries.append(current)
    return queries


def build_search_queries(username: str, organizations: list[str]) -> list[str]:
    """Search API queries used to find repositories tied to a user."""
    queries = [f"user:{username}"]
    queries.extend(_org_queries(organizations))
    queries.extend(
        [
            f"involves:{username}",
            f"author:{username}",
            f"committer:{username}",
        ]
    )
    return queries


class RepoCollector:
    """Discovers every repository a user can reasonably have contributed to.

    Each strategy runs independently; a failing strategy is logged and
    contributes nothing. Results are merged by full name, later strategies
    overwriting earlier ones.
    """

    def __init__(
        self,
        rest_client: GitHubRestClient,
        executor: RateLimitExecutor,
        graphql_client: GitHubGraphQLClient | None = None,
        max_org_pages: int = 10,
        per_page: int = 100,
        graphql_timeout: float = 30.0,
    ):
        self.rest_client = rest_client
        self.executor = executor
        self.graphql_client = graphql_client
        self.max_org_pages = max_org_pages
        self.per_page = per_page
        self.graphql_timeout = graphql_timeout

    async def _authenticated_repos(self) -> list[Repository]:
        """Repositories the token can see, private ones included."""
        try:
            data = await self.executor.run(
                lambda: self.rest_client.list_authenticated_repos(per_page=self.per_page),
                "authenticated repos",
            )
        except Exception as e:
            logger.warning("Failed to list authenticated repositories: %s", e)
            return []
        logger.debug("Found %d repositories for authenticated user", len(data))
        return [Repository.from_api(r) for r in data]

    async def _user_repos(self, username: str) -> list[Repository]:
        try:
            data = await self.executor.run(
                lambda: self.rest_client.list_user_repos(username, per_page=self.per_page),
                f"repos of {username}",
            )
        except Exception as e:
            logger.warning("Failed to list repositories for %s: %s", username, e)
            return []
        logger.debug("Found %d repositories for user %s", len(data), username)
        return [Repository.from_api(r) for r in data]

    async def collect_org_repos(self, org: str) -> list[Repository]:
        """Page through an organization's repositories up to the page cap.

        A failing page ends pagination; pages already fetched are kept.
        """

        async def fetch_page(page: int) -> list[dict[str, Any]]:
            try:
                return await self.executor.run(
                    lambda: self.rest_client.list_org_repos(
                        org, page=page, per_page=self.per_page
                    ),
                    f"repos of {org} page {page}",
                )
            except Exception as e:
                logger.warning("Failed to fetch repos for org %s, page %d: %s", org, page, e)
                return []

        data = await collect_pages(fetch_page, self.max_org_pages, self.per_page)
        logger.debug("Found %d repositories for organization %s", len(data), org)
        return [Repository.from_api(r) for r in data]

    async def _search_repos(self, username: str, organizations: list[str]) -> list[Repository]:
        repos: list[Repository] = []
        # Sequential: the search API has its own, much smaller quota
        for query in build_search_queries(username, organizations):
            try:
                items = await self.executor.run(
                    lambda: self.rest_client.search_repositories(query, per_page=self.per_page),
                    f"search {query!r}",
                )
            except Exception as e:
                logger.warning("Repository search %r failed: %s", query, e)
                continue
            logger.debug("Found %d repositories with query %r", len(items), query)
            repos.extend(Repository.from_api(r) for r in items)
        return repos

    async def _resolve_reference(self, reference: dict[str, Any]) -> Repository:
        """Fetch the full record for a GraphQL repository reference."""
        owner, _, name = reference["nameWithOwner"].partition("/")
        try:
            data = await self.executor.run(
                lambda: self.rest_client.get_repo(owner, name),
                f"repo {reference['nameWithOwner']}",
            )
        except Exception as e:
            logger.debug(
                "Using minimal record for %s: %s", reference["nameWithOwner"], e
            )
            return Repository.from_graphql(reference)
        return Repository.from_api(data)

    async def _contributed_repos(
        self, username: str, known: set[str]
    ) -> list[Repository]:
        """Repositories from the contributions graph that no other strategy found."""
        if not self.graphql_client:
            logger.info("GraphQL client not available, skipping contribution scan")
            return []

        try:
            references = await asyncio.wait_for(
                self.executor.run(
                    lambda: self.graphql_client.get_contributed_repositories(username),
                    "contribution repositories",
                ),
                timeout=self.graphql_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Contribution repository query timed out after %ss", self.graphql_timeout
            )
            return []
        except Exception as e:
            logger.warning("Failed to query contributed repositories: %s", e)
            return []

        unknown: dict[str, dict[str, Any]] = {}
        for reference in references:
            full_name = reference["nameWithOwner"]
            if full_name not in known and full_name not in unknown:
                unknown[full_name] = reference

        repos = [await self._resolve_reference(ref) for ref in unknown.values()]
        logger.debug("Found %d additional repositories via contributions", len(repos))
        return repos

    async def collect_repositories(
        self,
        username: str,
        organizations: list[str] | None = None,
    ) -> list[Repository]:
        """Discover repositories for a user.

        Args:
            username: GitHub username
            organizations: Organization logins whose repositories to include

        Returns:
            Repositories deduplicated by full name
        """
        organizations = organizations or []
        logger.debug("Starting repository discovery for %s", username)

        authenticated, owned, *org_groups = await asyncio.gather(
            self._authenticated_repos(),
            self._user_repos(username),
            *(self.collect_org_repos(org) for org in organizations),
        )
        searched = await self._search_repos(username, organizations)

        merged = merge_repositories(authenticated, owned, *org_groups, searched)
        contributed = await self._contributed_repos(username, set(merged))
        merged = merge_repositories(list(merged.values()), contributed)

        logger.info(
            "Discovered %d repositories for %s (%d private, %d organization)",
            len(merged),
            username,
            sum(1 for r in merged.values() if r.is_private),
            sum(1 for r in merged.values() if r.is_organization),
        )
        return list(merged.values())
