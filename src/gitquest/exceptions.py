"""Exceptions for gitquest.

Exception Hierarchy:
    GitQuestError (base)
    ├── GitHubAPIError (HTTP API errors with status codes)
    │   ├── GitHubRateLimitError (403/429 rate limit from API response)
    │   └── GitHubNotFoundError (404 not found)
    ├── GitHubGraphQLError (GraphQL API errors)
    ├── AggregationError (a stats run failed at some stage)
    │   └── AggregationTimeoutError (the run exceeded its wall-clock ceiling)
    ├── UserNotFoundError (high-level user not found)
    └── AuthenticationError (token invalid or required)

Usage:
    - GitHubRateLimitError is the only error the rate-limit executor retries.
    - GitHubNotFoundError and non rate-limit 403s mean "this source is empty
      for this actor" to the collectors.
    - AggregationError is never raised out of StatsAggregator.aggregate(); it is
      carried as the cause of a failed AggregationResult.
"""

__all__ = [
    "GitQuestError",
    "GitHubAPIError",
    "GitHubRateLimitError",
    "GitHubNotFoundError",
    "GitHubGraphQLError",
    "AggregationError",
    "AggregationTimeoutError",
    "UserNotFoundError",
    "AuthenticationError",
    "is_rate_limit_error",
]


class GitQuestError(Exception):
    """Base exception for all gitquest errors."""

    pass


class GitHubAPIError(GitQuestError):
    """Base exception for GitHub API errors (HTTP responses with error status codes)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class GitHubRateLimitError(GitHubAPIError):
    """Raised when GitHub API rejects a request because a quota is exhausted."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 403,
        response_body: dict | None = None,
        reset_time: float | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.reset_time = reset_time


class GitHubNotFoundError(GitHubAPIError):
    """Raised when a GitHub resource is not found (HTTP 404)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 404,
        response_body: dict | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)


class GitHubGraphQLError(GitQuestError):
    """Exception for GraphQL API errors."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


class AggregationError(GitQuestError):
    """Raised when a stats aggregation run fails."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage


class AggregationTimeoutError(AggregationError):
    """Raised when a stats aggregation run exceeds its time budget."""

    def __init__(self, timeout: float, stage: str | None = None):
        super().__init__(f"Aggregation timed out after {timeout:g}s", stage=stage)
        self.timeout = timeout


class UserNotFoundError(GitQuestError):
    """Raised when a GitHub user is not found."""

    def __init__(self, username: str):
        super().__init__(f"User not found: {username}")
        self.username = username


class AuthenticationError(GitQuestError):
    """Raised when authentication fails or token is invalid."""

    pass


_RATE_LIMIT_MARKERS = ("rate limit", "api rate")


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether an error carries GitHub's rate limit signature.

    A rate limit is a 403 or 429 whose message mentions the rate limit.
    """
    if isinstance(error, GitHubRateLimitError):
        return True
    status = getattr(error, "status_code", None)
    if status not in (403, 429):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)
