"""Pytest configuration and fixtures."""

from typing import Any

import pytest

from gitquest.config import Config, set_config


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global state before and after each test."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def test_config():
    """Configuration with every delay disabled so retries run instantly."""
    config = Config(
        github_token="test_token",
        github_api_url="https://api.github.com",
        github_graphql_url="https://api.github.com/graphql",
        batch_delay=0,
        item_retry_delay=0,
        item_rate_limit_delay=0,
        rate_limit_base_delay=0,
        rate_limit_max_delay=0,
    )
    set_config(config)
    return config


@pytest.fixture
def repo_payload():
    """Factory for REST repository payloads."""

    def make(
        full_name: str,
        private: bool = False,
        stars: int = 0,
        owner_type: str = "User",
        updated_at: str = "2024-06-01T12:00:00Z",
    ) -> dict[str, Any]:
        owner, name = full_name.split("/")
        return {
            "name": name,
            "full_name": full_name,
            "owner": {"login": owner, "type": owner_type},
            "private": private,
            "fork": False,
            "html_url": f"https://github.com/{full_name}",
            "stargazers_count": stars,
            "created_at": "2023-01-01T00:00:00Z",
            "updated_at": updated_at,
            "pushed_at": updated_at,
        }

    return make


@pytest.fixture
def commit_payload():
    """Factory for REST commit payloads."""

    def make(
        sha: str,
        date: str = "2024-06-01T12:00:00Z",
        additions: int | None = None,
        deletions: int | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sha": sha,
            "html_url": f"https://github.com/commit/{sha}",
            "commit": {"message": f"Commit {sha}\n\nbody", "author": {"date": date}},
        }
        if additions is not None or deletions is not None:
            data["stats"] = {"additions": additions or 0, "deletions": deletions or 0}
        return data

    return make


@pytest.fixture
def pull_payload():
    """Factory for REST pull request payloads."""

    def make(
        number: int,
        author: str,
        state: str = "closed",
        merged: bool = False,
        created_at: str = "2024-06-01T12:00:00Z",
    ) -> dict[str, Any]:
        return {
            "number": number,
            "title": f"PR {number}",
            "state": state,
            "user": {"login": author},
            "created_at": created_at,
            "updated_at": created_at,
            "merged_at": created_at if merged else None,
            "html_url": f"https://github.com/pull/{number}",
        }

    return make
