"""Redirect maintenance for migrated users and teams.

Redirects let standalone identifiers keep resolving after they move into an
organization: ``(User, <old username>, 0)`` points at
``{orgOrigin}/{new username}`` and ``(Team, <slug>, 0)`` points at
``{orgOrigin}/team/{slug}``. Reversals delete them again.
"""

from typing import Iterable, Optional

from loguru import logger

from ..config.config import OrganizationConfig
from ..models.redirect import RedirectMapping, RedirectType, STANDALONE_ORG_ID
from ..models.team import Team
from ..store.base import DirectoryStore
from ..utils.domains import get_org_full_origin
from ..utils.logging import safe_stringify
from .exceptions import InvalidArgumentError


class RedirectMaintainer:
    """Creates and removes redirect mappings through the directory store."""

    def __init__(self, store: DirectoryStore, organizations: OrganizationConfig):
        """Initialize redirect maintainer.

        Args:
            store: Directory store holding redirect mappings
            organizations: Settings used to build organization origins
        """
        self.store = store
        self.organizations = organizations
        self.logger = logger.bind(component='RedirectMaintainer')

    def org_origin(self, organization: Team) -> Optional[str]:
        """Origin of the organization, or None when it has no usable slug."""
        org_slug = organization.slug or organization.metadata.requested_slug
        if not org_slug:
            return None
        return get_org_full_origin(org_slug, self.organizations)

    async def add_redirect(
        self,
        from_: str,
        to_url: str,
        type: RedirectType,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> RedirectMapping:
        """Point ``from_`` at ``to_url``, overwriting any earlier target."""
        self.logger.debug(f'Redirect {type.value}:{from_}@{from_org_id} -> {to_url}')
        return await self.store.upsert_redirect(type, from_, from_org_id, to_url)

    async def remove_redirect(
        self,
        from_: str,
        type: RedirectType,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> int:
        """Delete the redirect for ``from_``; a missing redirect is not an error."""
        removed = await self.store.delete_redirects(type, from_, from_org_id)
        self.logger.debug(
            f'Removed {removed} redirect(s) for {type.value}:{from_}@{from_org_id}'
        )
        return removed

    # Per-user flows: slug-less teams are skipped

    async def add_user_redirects(
        self,
        non_org_username: str,
        target_org_username: str,
        organization: Team,
        teams: Iterable[Team],
    ) -> None:
        org_origin = self.org_origin(organization)
        if not org_origin:
            self.logger.debug(
                'No slug for org. Not adding the redirect '
                + safe_stringify(
                    {'organization': organization, 'nonOrgUserName': non_org_username}
                )
            )
            return

        await self.add_redirect(
            non_org_username, f'{org_origin}/{target_org_username}', RedirectType.USER
        )

        for team in teams:
            if not team.slug:
                self.logger.debug(
                    'No slug for team. Not adding the redirect ' + safe_stringify(team)
                )
                continue
            await self.add_redirect(
                team.slug, f'{org_origin}/team/{team.slug}', RedirectType.TEAM
            )

    async def remove_user_redirects(
        self, non_org_username: str, teams: Iterable[Team]
    ) -> None:
        await self.remove_redirect(non_org_username, RedirectType.USER)

        for team in teams:
            if not team.slug:
                self.logger.debug(
                    'No slug for team. Not removing the redirect ' + safe_stringify(team)
                )
                continue
            await self.remove_redirect(team.slug, RedirectType.TEAM)

    # Single-team flows: the team slug is required

    async def add_team_redirect(self, team: Team, organization: Team) -> None:
        if not team.slug:
            raise InvalidArgumentError(
                f'No slug for team {team.id}. Not adding the redirect'
            )

        org_origin = self.org_origin(organization)
        if not org_origin:
            self.logger.warning('No slug for org. Not adding the redirect')
            return

        await self.add_redirect(
            team.slug, f'{org_origin}/team/{team.slug}', RedirectType.TEAM
        )

    async def remove_team_redirect(self, team: Team) -> None:
        if not team.slug:
            raise InvalidArgumentError(
                f'No slug for team {team.id}. Not removing the redirect'
            )
        await self.remove_redirect(team.slug, RedirectType.TEAM)
