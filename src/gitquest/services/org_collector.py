"""Organization discovery service."""

import asyncio
import logging
from collections.abc import Iterable

from gitquest.services.github_rest_client import GitHubRestClient
from gitquest.utils.rate_limiter import RateLimitExecutor

logger = logging.getLogger(__name__)


class OrgCollector:
    """Discovers the organizations a user belongs to.

    Several sources are combined because each one sees a different slice:
    the authenticated listing includes private memberships, the public
    listing works for any user, the memberships API needs ``read:org``, and
    membership probes catch organizations hidden from all three.
    """

    def __init__(
        self,
        rest_client: GitHubRestClient,
        executor: RateLimitExecutor,
        known_organizations: Iterable[str] = (),
    ):
        self.rest_client = rest_client
        self.executor = executor
        self.known_organizations = tuple(known_organizations)

    async def _authenticated_orgs(self) -> list[str]:
        try:
            orgs = await self.executor.run(
                self.rest_client.list_authenticated_orgs, "authenticated orgs"
            )
        except Exception as e:
            logger.warning("Failed to list authenticated organizations: %s", e)
            return []
        logger.debug("Found %d authenticated organizations", len(orgs))
        return [org["login"] for org in orgs if org.get("login")]

    async def _public_orgs(self, username: str) -> list[str]:
        try:
            orgs = await self.executor.run(
                lambda: self.rest_client.list_user_orgs(username),
                f"public orgs of {username}",
            )
        except Exception as e:
            logger.warning("Failed to list public organizations for %s: %s", username, e)
            return []
        logger.debug("Found %d public organizations for %s", len(orgs), username)
        return [org["login"] for org in orgs if org.get("login")]

    async def _membership_orgs(self) -> list[str]:
        try:
            memberships = await self.executor.run(
                self.rest_client.list_org_memberships, "organization memberships"
            )
        except Exception as e:
            logger.warning("Failed to list organization memberships: %s", e)
            return []
        logger.debug("Found %d organization memberships", len(memberships))
        return [
            membership["organization"]["login"]
            for membership in memberships
            if (membership.get("organization") or {}).get("login")
        ]

    async def _probe_membership(self, org: str, username: str) -> str | None:
        try:
            is_member = await self.executor.run(
                lambda: self.rest_client.check_org_membership(org, username),
                f"membership of {username} in {org}",
            )
        except Exception as e:
            logger.warning("Failed to check membership of %s in %s: %s", username, org, e)
            return None
        if is_member:
            logger.debug("%s is a member of %s", username, org)
            return org
        return None

    async def collect_organizations(self, username: str) -> list[str]:
        """Collect organization logins for a user.

        Args:
            username: GitHub username

        Returns:
            Deduplicated organization logins in discovery order
        """
        logger.debug("Discovering organizations for %s", username)

        listings = await asyncio.gather(
            self._authenticated_orgs(),
            self._public_orgs(username),
            self._membership_orgs(),
        )
        found = dict.fromkeys(org for listing in listings for org in listing)

        candidates = [org for org in self.known_organizations if org not in found]
        if candidates:
            probed = await asyncio.gather(
                *(self._probe_membership(org, username) for org in candidates)
            )
            found.update(dict.fromkeys(org for org in probed if org))

        organizations = list(found)
        logger.info("Found %d organizations for %s", len(organizations), username)
        return organizations
