"""Repository data models."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


class Repository(BaseModel):
    """GitHub repository reachable by the user being analyzed."""

    name: str
    full_name: str
    owner: str = ""
    owner_type: str = "User"  # User or Organization
    is_private: bool = False
    is_fork: bool = False
    description: str | None = None
    html_url: str = ""
    language: str | None = None
    stargazers_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Repository":
        """Create from GitHub REST API response."""
        owner = data.get("owner") or {}
        full_name = data.get("full_name", "")
        return cls(
            name=data.get("name", "") or full_name.split("/")[-1],
            full_name=full_name,
            owner=owner.get("login", "") or full_name.split("/")[0],
            owner_type=owner.get("type", "User"),
            is_private=data.get("private", False),
            is_fork=data.get("fork", False),
            description=data.get("description"),
            html_url=data.get("html_url", ""),
            language=data.get("language"),
            stargazers_count=data.get("stargazers_count", 0) or 0,
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            pushed_at=_parse_datetime(data.get("pushed_at")),
        )

    @classmethod
    def from_graphql(cls, data: dict[str, Any]) -> "Repository":
        """Create a minimal record from a GraphQL repository reference.

        Used when the full REST record cannot be fetched.
        """
        owner = data.get("owner") or {}
        full_name = data.get("nameWithOwner", "")
        return cls(
            name=data.get("name", "") or full_name.split("/")[-1],
            full_name=full_name,
            owner=owner.get("login", "") or full_name.split("/")[0],
            owner_type=owner.get("__typename", "User"),
            is_private=data.get("isPrivate", False),
            html_url=data.get("url", ""),
        )

    @property
    def is_organization(self) -> bool:
        return self.owner_type == "Organization"

    @property
    def last_activity_at(self) -> datetime:
        """Timestamp used to rank repositories by recency."""
        return self.updated_at or self.pushed_at or _EPOCH


def merge_repositories(*groups: list[Repository]) -> dict[str, Repository]:
    """Merge repository lists into a mapping keyed by full name.

    Later groups overwrite earlier ones for the same full name.
    """
    merged: dict[str, Repository] = {}
    for group in groups:
        for repo in group:
            if repo.full_name:
                merged[repo.full_name] = repo
    return merged


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
