"""GitHub REST API client."""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gitquest.config import Config, get_config
from gitquest.exceptions import (
    GitHubAPIError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from gitquest.utils.pagination import build_page_params
from gitquest.utils.rate_limiter import RateLimitState

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
USER_AGENT = "gitquest/0.1.0"


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decode an error body, tolerating empty or non-JSON payloads."""
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}


class GitHubRestClient:
    """Async client for GitHub REST API.

    Every public method issues exactly one HTTP request so callers can wrap
    each call individually with the rate-limit executor.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.rest_limit = RateLimitState()
        self.search_limit = RateLimitState()
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        """Get headers for API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if self.config.github_token:
            headers["Authorization"] = f"Bearer {self.config.github_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.github_api_url,
                headers=self._get_headers(),
                timeout=self.config.request_timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        """Map error responses onto the exception hierarchy."""
        status = response.status_code
        if status < 400:
            return

        body = _json_body(response)
        message = body.get("message", "Unknown error")

        if status == 404:
            raise GitHubNotFoundError(
                f"Resource not found: {endpoint}",
                response_body=body,
            )
        if status in (403, 429):
            lowered = message.lower()
            exhausted = response.headers.get("x-ratelimit-remaining") == "0"
            if exhausted or "rate limit" in lowered or "api rate" in lowered:
                reset = response.headers.get("x-ratelimit-reset")
                raise GitHubRateLimitError(
                    f"API rate limit exceeded: {message}",
                    status_code=status,
                    response_body=body,
                    reset_time=float(reset) if reset else None,
                )
            raise GitHubAPIError(
                f"Forbidden: {message}",
                status_code=status,
                response_body=body,
            )
        if status >= 500:
            raise GitHubAPIError(
                f"Server error: {status}",
                status_code=status,
            )
        raise GitHubAPIError(
            f"API error: {message}",
            status_code=status,
            response_body=body,
        )

    @retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        endpoint: str,
        is_search: bool = False,
        **kwargs,
    ) -> httpx.Response:
        """Make an API request, retrying dropped connections."""
        client = await self._get_client()
        response = await client.request(method, endpoint, **kwargs)

        limit = self.search_limit if is_search else self.rest_limit
        limit.update_from_headers(dict(response.headers))

        self._raise_for_status(response, endpoint)
        return response

    async def get(self, endpoint: str, **kwargs) -> Any:
        """Make a GET request and return JSON response."""
        response = await self._request("GET", endpoint, **kwargs)
        return response.json() if response.content else None

    async def get_page(
        self,
        endpoint: str,
        page: int = 1,
        per_page: int = 100,
        **params: Any,
    ) -> list[dict[str, Any]]:
        """Fetch a single page of a list endpoint."""
        data = await self.get(endpoint, params=build_page_params(page, per_page, **params))
        return data if isinstance(data, list) else []

    # Users and organizations

    async def get_authenticated_user(self) -> dict[str, Any]:
        """Get the user the token belongs to."""
        return await self.get("/user")

    async def get_user(self, username: str) -> dict[str, Any]:
        """Get user profile data."""
        return await self.get(f"/users/{username}")

    async def list_authenticated_orgs(
        self, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Organizations of the authenticated user, private memberships included."""
        return await self.get_page("/user/orgs", page, per_page)

    async def list_user_orgs(
        self, username: str, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Public organization memberships of a user."""
        return await self.get_page(f"/users/{username}/orgs", page, per_page)

    async def list_org_memberships(
        self, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Active organization memberships of the authenticated user."""
        return await self.get_page(
            "/user/memberships/orgs", page, per_page, state="active"
        )

    async def check_org_membership(self, org: str, username: str) -> bool:
        """Check whether a user belongs to an organization.

        GitHub answers 204 for members. Requesters outside the organization
        are redirected to the public membership check, which also answers 204.
        """
        try:
            response = await self._request("GET", f"/orgs/{org}/members/{username}")
        except GitHubNotFoundError:
            return False
        return response.status_code == 204

    # Repositories

    async def list_authenticated_repos(
        self, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Repositories visible to the authenticated user, private ones included."""
        return await self.get_page("/user/repos", page, per_page, sort="updated")

    async def list_user_repos(
        self, username: str, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Public repositories of a user."""
        return await self.get_page(
            f"/users/{username}/repos", page, per_page, type="all", sort="updated"
        )

    async def list_org_repos(
        self, org: str, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Repositories of an organization."""
        return await self.get_page(f"/orgs/{org}/repos", page, per_page, sort="updated")

    async def get_repo(self, owner: str, repo: str) -> dict[str, Any]:
        """Get repository details."""
        return await self.get(f"/repos/{owner}/{repo}")

    async def search_repositories(
        self, query: str, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Search repositories.

        Args:
            query: Search query (e.g., "user:octocat")
            page: Page number
            per_page: Results per page

        Returns:
            Matching repositories
        """
        response = await self._request(
            "GET",
            "/search/repositories",
            is_search=True,
            params=build_page_params(page, per_page, q=query, sort="updated"),
        )
        data = response.json()
        return data.get("items", []) if isinstance(data, dict) else []

    # Commits, pull requests, reviews

    async def list_commits(
        self,
        owner: str,
        repo: str,
        author: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        page: int = 1,
        per_page: int = 100,
    ) -> list[dict[str, Any]]:
        """Get repository commits, optionally filtered by author and dates."""
        return await self.get_page(
            f"/repos/{owner}/{repo}/commits",
            page,
            per_page,
            author=author,
            since=since,
            until=until,
        )

    async def get_commit(self, owner: str, repo: str, ref: str) -> dict[str, Any]:
        """Get a single commit including its additions/deletions stats."""
        return await self.get(f"/repos/{owner}/{repo}/commits/{ref}")

    async def list_pulls(
        self,
        owner: str,
        repo: str,
        state: str = "all",
        page: int = 1,
        per_page: int = 100,
    ) -> list[dict[str, Any]]:
        """List pull requests, newest first."""
        return await self.get_page(
            f"/repos/{owner}/{repo}/pulls",
            page,
            per_page,
            state=state,
            sort="created",
            direction="desc",
        )

    async def list_reviews(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        page: int = 1,
        per_page: int = 100,
    ) -> list[dict[str, Any]]:
        """List reviews submitted on a pull request."""
        return await self.get_page(
            f"/repos/{owner}/{repo}/pulls/{pull_number}/reviews", page, per_page
        )

    async def get_rate_limit(self) -> dict[str, Any]:
        """Current quota for the core and search APIs."""
        data = await self.get("/rate_limit")
        resources = (data or {}).get("resources", {})
        return {
            "core": resources.get("core", {}),
            "search": resources.get("search", {}),
        }
