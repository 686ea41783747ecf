"""Configuration management for gitquest."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _parse_org_list(value: str | None) -> tuple[str, ...]:
    """Split a comma separated organization list, dropping blanks."""
    if not value:
        return ()
    return tuple(org.strip() for org in value.split(",") if org.strip())


@dataclass
class Config:
    """Application configuration."""

    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_graphql_url: str = "https://api.github.com/graphql"

    # Timeouts (seconds)
    request_timeout: float = 30.0
    graphql_timeout: float = 30.0  # contribution-graph discovery query
    aggregation_timeout: float = 180.0  # whole run

    # Scheduler
    max_concurrency: int = 10
    batch_size: int = 20
    batch_delay: float = 1.0
    item_max_retries: int = 3
    item_retry_delay: float = 1.0
    item_rate_limit_delay: float = 5.0

    # Rate-limit executor
    rate_limit_max_retries: int = 3
    rate_limit_base_delay: float = 1.0
    rate_limit_max_delay: float = 60.0

    # Collection caps
    per_page: int = 100
    max_repos: int = 75  # most recently updated repos analyzed per run
    max_org_pages: int = 10
    max_commit_pages: int = 3
    max_pr_pages: int = 2
    review_sample_size: int = 20
    streak_lookback_days: int = 365

    # Organizations probed for membership when listing APIs miss them
    known_organizations: tuple[str, ...] = field(default_factory=tuple)

    # Return a zero-valued result instead of a failure (legacy behaviour)
    zero_fallback: bool = False

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        # override=False ensures environment variables take precedence over .env
        load_dotenv(override=False)

        token = os.getenv("GITQUEST_TOKEN") or os.getenv("GITHUB_TOKEN")

        return cls(
            github_token=token,
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            github_graphql_url=os.getenv(
                "GITHUB_GRAPHQL_URL", "https://api.github.com/graphql"
            ),
            max_concurrency=int(os.getenv("GITQUEST_MAX_CONCURRENCY", "10")),
            batch_size=int(os.getenv("GITQUEST_BATCH_SIZE", "20")),
            aggregation_timeout=float(os.getenv("GITQUEST_TIMEOUT", "180")),
            known_organizations=_parse_org_list(os.getenv("GITQUEST_KNOWN_ORGS")),
        )

    @property
    def is_authenticated(self) -> bool:
        """Check if a GitHub token is configured."""
        return bool(self.github_token)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def set_config(config: Config | None) -> None:
    """Set the global configuration instance (useful for testing)."""
    global _config
    _config = config
