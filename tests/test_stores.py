"""Tests for credential resolution and the in-memory store."""

import logging

import pytest

from gitquest.achievements import get_achievement
from gitquest.models.stats import AggregateStats
from gitquest.stores import (
    REQUIRED_SCOPES,
    Credential,
    InMemoryStatsStore,
    StaticCredentialResolver,
)


class TestCredential:
    def test_missing_scopes(self):
        assert Credential(token="t", scopes=("repo", "read:user")).missing_scopes == [
            "user:email",
            "read:org",
        ]
        assert Credential(token="t", scopes=REQUIRED_SCOPES).missing_scopes == []

    def test_unknown_scopes_are_not_reported(self):
        assert Credential(token="t").missing_scopes == []


class TestStaticCredentialResolver:
    """Tests for StaticCredentialResolver."""

    @pytest.mark.asyncio
    async def test_user_token(self):
        resolver = StaticCredentialResolver({"u1": Credential(token="ghp_user")}, "ghp_default")

        credential = await resolver.resolve("u1")

        assert credential.token == "ghp_user"
        assert credential.is_default is False

    @pytest.mark.asyncio
    async def test_falls_back_to_default(self):
        resolver = StaticCredentialResolver({"u1": Credential(token=None)}, "ghp_default")

        for user_id in ("u1", "u2", None):
            credential = await resolver.resolve(user_id)
            assert credential.token == "ghp_default"
            assert credential.is_default is True

    @pytest.mark.asyncio
    async def test_no_token_at_all(self):
        credential = await StaticCredentialResolver().resolve("u1")
        assert credential.token is None

    @pytest.mark.asyncio
    async def test_warns_on_missing_scopes(self, caplog):
        resolver = StaticCredentialResolver({"u1": Credential(token="t", scopes=("repo",))})

        with caplog.at_level(logging.WARNING, logger="gitquest.stores"):
            credential = await resolver.resolve("u1")

        assert credential.token == "t"
        assert "read:org" in caplog.text


class TestInMemoryStatsStore:
    """Tests for InMemoryStatsStore."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_stats(self):
        store = InMemoryStatsStore()
        store.add_user("u1", github_username="alice")

        await store.upsert_stats("u1", AggregateStats(commits=1))
        await store.upsert_stats("u1", AggregateStats(commits=2))

        record = await store.get_user("u1")
        assert record.stats.commits == 2
        assert record.github_username == "alice"

    @pytest.mark.asyncio
    async def test_award_is_idempotent(self):
        store = InMemoryStatsStore()
        store.add_user("u1")
        achievement = get_achievement("First Blood")

        assert await store.award_achievement("u1", achievement) is True
        assert await store.award_achievement("u1", achievement) is False

        record = await store.get_user("u1")
        assert record.achievements == ["First Blood"]
        assert record.points == 10

    @pytest.mark.asyncio
    async def test_unknown_user(self):
        assert await InMemoryStatsStore().get_user("nobody") is None

    @pytest.mark.asyncio
    async def test_set_level(self):
        store = InMemoryStatsStore()
        record = store.add_user("u1", points=250)
        assert record.level == 3

        await store.set_level("u1", 4)

        assert (await store.get_user("u1")).level == 4
