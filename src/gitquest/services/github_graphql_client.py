"""GitHub GraphQL API client for contribution data."""

from datetime import datetime
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gitquest.config import Config, get_config
from gitquest.exceptions import GitHubGraphQLError, GitHubRateLimitError
from gitquest.services.github_rest_client import USER_AGENT
from gitquest.utils.rate_limiter import RateLimitState

_REPOSITORY_FIELDS = """
        repository {
          nameWithOwner
          name
          owner {
            login
            __typename
          }
          isPrivate
          url
        }
"""

# Repositories the user committed to, opened PRs in, or opened issues in
CONTRIBUTED_REPOSITORIES_QUERY = f"""
query($username: String!) {{
  user(login: $username) {{
    contributionsCollection {{
      commitContributionsByRepository(maxRepositories: 100) {{{_REPOSITORY_FIELDS}      }}
      pullRequestContributionsByRepository(maxRepositories: 100) {{{_REPOSITORY_FIELDS}      }}
      issueContributionsByRepository(maxRepositories: 100) {{{_REPOSITORY_FIELDS}      }}
    }}
  }}
}}
"""

CONTRIBUTION_CALENDAR_QUERY = """
query($username: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $username) {
    contributionsCollection(from: $from, to: $to) {
      contributionCalendar {
        totalContributions
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
  }
}
"""

_CONTRIBUTION_COLLECTIONS = (
    "commitContributionsByRepository",
    "pullRequestContributionsByRepository",
    "issueContributionsByRepository",
)


def _format_datetime(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


class GitHubGraphQLClient:
    """Async client for GitHub GraphQL API."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.rate_limit = RateLimitState()
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        """Get headers for API requests."""
        if not self.config.github_token:
            raise GitHubGraphQLError(
                "GitHub token is required for GraphQL API. "
                "Set GITHUB_TOKEN environment variable."
            )

        return {
            "Authorization": f"Bearer {self.config.github_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.github_graphql_url,
                headers=self._get_headers(),
                timeout=self.config.request_timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "GitHubGraphQLClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def execute(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Execute a GraphQL query.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            Query result data

        Raises:
            GitHubRateLimitError: If the GraphQL quota is exhausted
            GitHubGraphQLError: If the query fails
        """
        client = await self._get_client()
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        response = await client.post("", json=payload)
        self.rate_limit.update_from_headers(dict(response.headers))

        if response.status_code in (403, 429) and "rate limit" in response.text.lower():
            reset = response.headers.get("x-ratelimit-reset")
            raise GitHubRateLimitError(
                "GraphQL API rate limit exceeded",
                status_code=response.status_code,
                reset_time=float(reset) if reset else None,
            )

        if response.status_code != 200:
            raise GitHubGraphQLError(
                f"GraphQL request failed with status {response.status_code}: {response.text}"
            )

        result = response.json()

        # Check for GraphQL errors
        if result.get("errors"):
            errors = result["errors"]
            if any(e.get("type") == "RATE_LIMITED" for e in errors):
                raise GitHubRateLimitError(
                    "GraphQL API rate limit exceeded",
                    status_code=403,
                    response_body=result,
                )
            error_messages = [e.get("message", "Unknown error") for e in errors]
            raise GitHubGraphQLError(
                f"GraphQL errors: {'; '.join(error_messages)}",
                errors=errors,
            )

        return result.get("data") or {}

    async def get_contributed_repositories(self, username: str) -> list[dict[str, Any]]:
        """Get references to repositories the user contributed to.

        Args:
            username: GitHub username

        Returns:
            Repository references from the commit, pull request and issue
            collections, in that order. The same repository may appear more
            than once.
        """
        result = await self.execute(CONTRIBUTED_REPOSITORIES_QUERY, {"username": username})

        user = result.get("user")
        if not user:
            raise GitHubGraphQLError(f"User not found: {username}")

        collection = user.get("contributionsCollection") or {}
        references = []
        for key in _CONTRIBUTION_COLLECTIONS:
            for entry in collection.get(key) or []:
                repository = (entry or {}).get("repository")
                if repository and repository.get("nameWithOwner"):
                    references.append(repository)
        return references

    async def get_contribution_calendar(
        self,
        username: str,
        from_datetime: datetime,
        to_datetime: datetime,
    ) -> dict[str, Any]:
        """Get the daily contribution calendar for a date range.

        Args:
            username: GitHub username
            from_datetime: Range start
            to_datetime: Range end (GitHub caps ranges at one year)

        Returns:
            The ``contributionCalendar`` object
        """
        variables = {
            "username": username,
            "from": _format_datetime(from_datetime),
            "to": _format_datetime(to_datetime),
        }
        result = await self.execute(CONTRIBUTION_CALENDAR_QUERY, variables)

        user = result.get("user")
        if not user:
            raise GitHubGraphQLError(f"User not found: {username}")

        return (user.get("contributionsCollection") or {}).get("contributionCalendar") or {}
