"""Organization lookup and validation."""

from loguru import logger

from ..models.team import Team
from ..store.base import DirectoryStore
from .exceptions import NotAnOrganizationError, NotFoundError


class OrganizationResolver:
    """Resolves an ID to a team record that is really an organization."""

    def __init__(self, store: DirectoryStore):
        self.store = store
        self.logger = logger.bind(component='OrganizationResolver')

    async def resolve(self, org_id: int) -> Team:
        """Return the organization with ``org_id``.

        Raises:
            NotFoundError: No team has this ID
            NotAnOrganizationError: The team is not tagged as an organization
        """
        team = await self.store.find_team_by_id(org_id)

        if team is None:
            raise NotFoundError(f'Org with id: {org_id} not found')

        if not team.is_organization:
            raise NotAnOrganizationError(f'{org_id} is not an Org')

        self.logger.debug(f'Resolved organization {team.describe()}')
        return team
