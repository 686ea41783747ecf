"""Credential and persistence collaborators.

The aggregation engine only depends on the protocols here. The in-memory
implementations back the CLI and the tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from gitquest.achievements import Achievement, level_for_points
from gitquest.models.stats import AggregateStats

logger = logging.getLogger(__name__)

REQUIRED_SCOPES = ("read:user", "user:email", "repo", "read:org")


@dataclass(frozen=True)
class Credential:
    """A GitHub token and, when known, the OAuth scopes granted to it."""

    token: str | None = None
    scopes: tuple[str, ...] | None = None
    is_default: bool = False

    @property
    def missing_scopes(self) -> list[str]:
        if self.scopes is None:
            return []
        return [scope for scope in REQUIRED_SCOPES if scope not in self.scopes]


class CredentialResolver(Protocol):
    async def resolve(self, user_id: str | None) -> Credential: ...


class StaticCredentialResolver:
    """Per-user tokens from a mapping, falling back to a default token."""

    def __init__(
        self,
        credentials: dict[str, Credential] | None = None,
        default_token: str | None = None,
    ):
        self.credentials = dict(credentials or {})
        self.default_token = default_token

    async def resolve(self, user_id: str | None) -> Credential:
        credential = self.credentials.get(user_id) if user_id else None
        if credential and credential.token:
            if credential.missing_scopes:
                logger.warning(
                    "Token for user %s is missing scopes %s; private data may be incomplete",
                    user_id,
                    ", ".join(credential.missing_scopes),
                )
            return credential

        if self.default_token:
            logger.debug("No token for user %s, using the default token", user_id)
        else:
            logger.warning("No GitHub token available for user %s", user_id)
        return Credential(token=self.default_token, is_default=True)


@dataclass
class UserRecord:
    user_id: str
    github_username: str | None = None
    social_connected: bool = False
    points: int = 0
    level: int = 1
    achievements: list[str] = field(default_factory=list)
    stats: AggregateStats | None = None


class StatsStore(Protocol):
    async def get_user(self, user_id: str) -> UserRecord | None: ...

    async def upsert_stats(self, user_id: str, stats: AggregateStats) -> None: ...

    async def award_achievement(self, user_id: str, achievement: Achievement) -> bool: ...

    async def set_level(self, user_id: str, level: int) -> None: ...


class InMemoryStatsStore:
    """Dictionary-backed store.

    Each write replaces or updates one user's record in a single step, and
    awarding an already held achievement is a no-op.
    """

    def __init__(self):
        self._users: dict[str, UserRecord] = {}

    def add_user(
        self,
        user_id: str,
        github_username: str | None = None,
        social_connected: bool = False,
        points: int = 0,
    ) -> UserRecord:
        record = UserRecord(
            user_id=user_id,
            github_username=github_username,
            social_connected=social_connected,
            points=points,
            level=level_for_points(points),
        )
        self._users[user_id] = record
        return record

    async def get_user(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    async def upsert_stats(self, user_id: str, stats: AggregateStats) -> None:
        record = self._users.setdefault(user_id, UserRecord(user_id=user_id))
        record.stats = stats

    async def award_achievement(self, user_id: str, achievement: Achievement) -> bool:
        """Record an achievement and add its points.

        Returns:
            False if the user already held it
        """
        record = self._users.setdefault(user_id, UserRecord(user_id=user_id))
        if achievement.name in record.achievements:
            return False
        record.achievements.append(achievement.name)
        record.points += achievement.points
        logger.info(
            "Awarded %s (+%d points) to user %s", achievement.name, achievement.points, user_id
        )
        return True

    async def set_level(self, user_id: str, level: int) -> None:
        record = self._users.setdefault(user_id, UserRecord(user_id=user_id))
        if level != record.level:
            logger.info("User %s is now level %d", user_id, level)
        record.level = level
