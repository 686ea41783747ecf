"""Commit, pull request and review models."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from gitquest.models.repository import _parse_datetime


class CommitSample(BaseModel):
    """A commit returned by the commits listing.

    ``additions`` and ``deletions`` are only filled in for commits whose
    detailed stats were fetched as part of the line-change sample.
    """

    sha: str
    message: str = ""
    date: datetime | None = None
    repo: str = ""
    url: str = ""
    additions: int | None = None
    deletions: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any], repo: str = "") -> "CommitSample":
        """Create from GitHub Commits API response."""
        commit_data = data.get("commit") or {}
        author_data = commit_data.get("author") or {}
        stats = data.get("stats") or {}
        return cls(
            sha=data.get("sha", ""),
            message=(commit_data.get("message") or "").split("\n")[0],  # First line only
            date=_parse_datetime(author_data.get("date")),
            repo=repo,
            url=data.get("html_url", ""),
            additions=stats.get("additions") if stats else None,
            deletions=stats.get("deletions") if stats else None,
        )

    @property
    def has_stats(self) -> bool:
        return self.additions is not None or self.deletions is not None

    @property
    def lines_changed(self) -> int:
        return (self.additions or 0) + (self.deletions or 0)


class PullRequest(BaseModel):
    """Pull request data."""

    number: int
    title: str = ""
    state: str = "open"  # open or closed
    author: str = ""
    repo: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    merged_at: datetime | None = None
    url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any], repo: str = "") -> "PullRequest":
        """Create from GitHub Pull Requests API response."""
        if not repo:
            repo = ((data.get("base") or {}).get("repo") or {}).get("full_name", "")
        return cls(
            number=data.get("number", 0),
            title=data.get("title", "") or "",
            state=data.get("state", "open"),
            author=(data.get("user") or {}).get("login", ""),
            repo=repo,
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            merged_at=_parse_datetime(data.get("merged_at")),
            url=data.get("html_url", ""),
        )

    @property
    def is_merged(self) -> bool:
        """Merged is a terminal state marked by a merge timestamp."""
        return self.merged_at is not None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class Review(BaseModel):
    """Pull request review."""

    reviewer: str = ""
    state: str = ""
    submitted_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Review":
        """Create from GitHub Reviews API response."""
        return cls(
            reviewer=(data.get("user") or {}).get("login", ""),
            state=data.get("state", ""),
            submitted_at=_parse_datetime(data.get("submitted_at")),
        )


class ActivityItem(BaseModel):
    """Entry in the recent-activity timeline."""

    type: str  # commit or pr
    id: str
    title: str
    repo: str
    date: datetime
    url: str = ""
    state: str | None = None

    @classmethod
    def from_commit(cls, commit: CommitSample) -> "ActivityItem":
        return cls(
            type="commit",
            id=commit.sha,
            title=commit.message,
            repo=commit.repo,
            date=commit.date or datetime.now(timezone.utc),
            url=commit.url,
        )

    @classmethod
    def from_pull_request(cls, pr: PullRequest) -> "ActivityItem":
        return cls(
            type="pr",
            id=str(pr.number),
            title=pr.title,
            repo=pr.repo,
            date=pr.updated_at or pr.created_at or datetime.now(timezone.utc),
            url=pr.url,
            state=pr.state,
        )


def same_login(left: str | None, right: str | None) -> bool:
    """GitHub logins compare case-insensitively."""
    return bool(left) and bool(right) and left.lower() == right.lower()
