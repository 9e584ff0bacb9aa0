"""Migration engine - entry point for organization migration operations.

Every operation starts with a read-only ``VALIDATE`` step and then runs its
mutation steps in order through :class:`StepRunner`. Each mutation step is
idempotent, so running an interrupted operation again finishes the job.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from loguru import logger

from ..api.client import DirectoryClientFactory
from ..config.config import Config, MigrationConfig, OrganizationConfig
from ..models.membership import Membership, MembershipRole
from ..models.team import Team
from ..models.user import MigrationProvenance, User
from ..store.base import DirectoryStore
from ..store.exceptions import UniqueConstraintError
from ..store.rest import RestDirectoryStore
from .assertions import (
    assert_remigration_allowed,
    assert_revertable,
    assert_user_id_or_username,
    assert_user_not_in_other_org,
    assert_username_free_in_org,
    describe_user_ref,
    find_unique_user_outside_other_orgs,
    resolve_non_org_username,
    resolve_target_org_username,
)
from .exceptions import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    SlugBackfillError,
)
from .redirects import RedirectMaintainer
from .requests import MigrationRequest
from .resolver import OrganizationResolver
from .steps import MigrationOperation, MigrationResult, MigrationStep, StepRunner


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _UserMigrationState:
    organization: Optional[Team] = None
    user: Optional[User] = None
    target_org_username: Optional[str] = None
    non_org_username: Optional[str] = None
    teams: List[Team] = field(default_factory=list)


@dataclass
class _TeamMigrationState:
    organization: Optional[Team] = None
    team: Optional[Team] = None
    members: List[Membership] = field(default_factory=list)


@dataclass
class _UserReversalState:
    organization: Optional[Team] = None
    user: Optional[User] = None
    non_org_username: Optional[str] = None
    teams: List[Team] = field(default_factory=list)


class MigrationEngine:
    """Moves users and teams into and out of organizations."""

    def __init__(
        self,
        store: DirectoryStore,
        organizations: Optional[OrganizationConfig] = None,
        migration: Optional[MigrationConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize migration engine.

        Args:
            store: Directory store to read and write records through
            organizations: Settings used to build redirect URLs
            migration: Defaults for requests that leave role or acceptance unset
            clock: Source of timestamps written into user metadata
        """
        self.store = store
        self.organizations = organizations or OrganizationConfig()
        self.migration = migration or MigrationConfig()
        self.clock = clock or _utcnow
        self.logger = logger.bind(component='MigrationEngine')

        self.resolver = OrganizationResolver(store)
        self.redirects = RedirectMaintainer(store, self.organizations)

    @classmethod
    def from_config(cls, config: Config) -> 'MigrationEngine':
        """Build an engine backed by the directory service in ``config``."""
        client = DirectoryClientFactory.create_client(config.directory)
        return cls(
            RestDirectoryStore(client),
            organizations=config.organizations,
            migration=config.migration,
        )

    async def run(self, request: MigrationRequest) -> MigrationResult:
        """Dispatch a single request to the matching operation."""
        if request.operation == MigrationOperation.MIGRATE_USER:
            return await self.migrate_user_to_org(
                request.target_org_id,
                user_id=request.user_id,
                username=request.username,
                target_org_username=request.target_org_username,
                role=request.role or self.migration.default_role,
                accepted=(
                    self.migration.default_accepted
                    if request.accepted is None
                    else request.accepted
                ),
            )
        if request.operation == MigrationOperation.MOVE_TEAM:
            return await self.move_team_to_org(
                request.team_id, request.target_org_id, move_members=request.move_members
            )
        if request.operation == MigrationOperation.REMOVE_TEAM:
            return await self.remove_team_from_org(
                request.team_id, request.target_org_id
            )
        if request.operation == MigrationOperation.REMOVE_USER:
            if request.user_id is None:
                raise InvalidArgumentError('userId is required to remove a user')
            return await self.remove_user_from_org(
                request.user_id, request.target_org_id
            )
        raise InvalidArgumentError(f'Unsupported operation: {request.operation}')

    async def migrate_user_to_org(
        self,
        target_org_id: int,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        target_org_username: Optional[str] = None,
        role: MembershipRole = MembershipRole.MEMBER,
        accepted: bool = True,
    ) -> MigrationResult:
        """Move a standalone user, and the teams they belong to, into an org.

        Running it again for a user already in ``target_org_id`` refreshes the
        membership, redirects and username instead of failing.

        Args:
            target_org_id: Organization to move the user into
            user_id: User to move; exclusive with ``username``
            username: Standalone username of the user to move
            target_org_username: Username inside the org; derived from the
                email when not given
            role: Role of the organization membership
            accepted: Whether the organization membership is accepted

        Returns:
            Result of the operation

        Raises:
            MigrationError: A validation failed or a step could not complete
        """
        result = MigrationResult(
            operation=MigrationOperation.MIGRATE_USER,
            entity_type='user',
            entity_id=describe_user_ref(user_id, username),
            target_org_id=target_org_id,
        )
        runner = StepRunner(result)
        state = _UserMigrationState()

        async def validate():
            assert_user_id_or_username(user_id, username)
            state.organization = await self.resolver.resolve(target_org_id)

            candidate = await find_unique_user_outside_other_orgs(
                self.store, user_id, username, target_org_id
            )
            state.user = assert_user_not_in_other_org(
                candidate, user_id, username, target_org_id
            )
            result.entity_id = str(state.user.id)

            state.target_org_username = resolve_target_org_username(
                state.user, state.organization, target_org_username
            )
            await assert_username_free_in_org(
                self.store, state.user, state.target_org_username, target_org_id
            )
            assert_remigration_allowed(
                state.user, target_org_id, state.target_org_username
            )
            state.non_org_username = resolve_non_org_username(state.user)

        async def update_user():
            metadata = state.user.metadata.copy(deep=True)
            metadata.migrated_to_org_from = MigrationProvenance(
                username=state.non_org_username,
                last_migration_time=self.clock(),
            )
            await self.store.update_user(
                state.user.id,
                {
                    'organization_id': target_org_id,
                    'username': state.target_org_username,
                    'metadata': metadata,
                },
            )

        async def relocate_teams():
            # Teams already in another org are pulled in as well
            state.teams = await self._non_org_teams_of(state.user.id)
            if not state.teams:
                return
            moved = await self.store.bulk_update_teams(
                [team.id for team in state.teams], {'parent_id': target_org_id}
            )
            self.logger.debug(
                f'Moved {moved} team(s) of user {state.user.id} to org {target_org_id}'
            )

        async def upsert_membership():
            await self.store.upsert_membership(
                state.user.id, target_org_id, {'role': role, 'accepted': accepted}
            )

        async def add_redirects():
            await self.redirects.add_user_redirects(
                state.non_org_username,
                state.target_org_username,
                state.organization,
                state.teams,
            )

        async def backfill_org_slug():
            await self._set_org_slug_if_not_set(state.organization)

        await runner.run(
            [
                (MigrationStep.VALIDATE, validate),
                (MigrationStep.UPDATE_USER, update_user),
                (MigrationStep.RELOCATE_TEAMS, relocate_teams),
                (MigrationStep.UPSERT_MEMBERSHIP, upsert_membership),
                (MigrationStep.ADD_REDIRECTS, add_redirects),
                (MigrationStep.BACKFILL_ORG_SLUG, backfill_org_slug),
            ]
        )

        result.metadata.update(
            {
                'username': state.target_org_username,
                'non_org_username': state.non_org_username,
                'team_ids': [team.id for team in state.teams],
            }
        )
        self.logger.info(f'orgId:{target_org_id} attached to userId:{state.user.id}')
        return result

    async def move_team_to_org(
        self, team_id: int, target_org_id: int, move_members: bool = False
    ) -> MigrationResult:
        """Reparent a team under an organization.

        With ``move_members`` every member of the team is then migrated into
        the organization, keeping their team role and acceptance.
        """
        result = MigrationResult(
            operation=MigrationOperation.MOVE_TEAM,
            entity_type='team',
            entity_id=str(team_id),
            target_org_id=target_org_id,
        )
        runner = StepRunner(result)
        state = _TeamMigrationState()

        async def validate():
            state.organization = await self.resolver.resolve(target_org_id)
            state.team = await self._get_team(team_id)
            if state.team.is_organization:
                raise InvalidArgumentError(
                    f'Team {team_id} is an Org and cannot be moved into another Org'
                )
            if move_members:
                state.members = await self.store.find_memberships_by_team(team_id)

        async def reparent_team():
            if state.team.parent_id == target_org_id:
                runner.warn(f'Team {team_id} is already in org {target_org_id}')
                return
            await self.store.update_team(team_id, {'parent_id': target_org_id})

        async def add_redirects():
            await self.redirects.add_team_redirect(state.team, state.organization)

        async def backfill_org_slug():
            await self._set_org_slug_if_not_set(state.organization)

        async def migrate_members():
            migrated = []
            for membership in state.members:
                member_result = await self.migrate_user_to_org(
                    target_org_id,
                    user_id=membership.user_id,
                    role=membership.role,
                    accepted=membership.accepted,
                )
                migrated.append(membership.user_id)
                result.warnings.extend(member_result.warnings)
            result.metadata['member_ids'] = migrated

        steps = [
            (MigrationStep.VALIDATE, validate),
            (MigrationStep.REPARENT_TEAM, reparent_team),
            (MigrationStep.ADD_REDIRECTS, add_redirects),
            (MigrationStep.BACKFILL_ORG_SLUG, backfill_org_slug),
        ]
        if move_members:
            steps.append((MigrationStep.MIGRATE_MEMBERS, migrate_members))

        await runner.run(steps)

        self.logger.info(
            f'Added team {state.team.name} to Org: {state.organization.name}'
            + (' along with the members' if move_members else '')
        )
        return result

    async def remove_team_from_org(
        self, team_id: int, target_org_id: int
    ) -> MigrationResult:
        """Detach a team from an organization and drop its redirect.

        A team that is not part of ``target_org_id`` is left untouched and a
        warning is recorded.
        """
        result = MigrationResult(
            operation=MigrationOperation.REMOVE_TEAM,
            entity_type='team',
            entity_id=str(team_id),
            target_org_id=target_org_id,
        )
        runner = StepRunner(result)
        state = _TeamMigrationState()

        async def validate():
            state.organization = await self.resolver.resolve(target_org_id)
            state.team = await self._get_team(team_id)

        async def detach_team():
            if state.team.parent_id != target_org_id:
                runner.warn(
                    f'Team {team_id} is not part of org {target_org_id}. Not updating'
                )
                return
            try:
                await self.store.update_team(team_id, {'parent_id': None})
            except UniqueConstraintError as e:
                raise ConflictError(
                    f"The team's slug {state.team.slug} is already taken by some "
                    f'other team outside the org or an org itself. Change the slug '
                    f'of this team or of the other team/org. If you rename this '
                    f'team, remove its redirect manually as the slug will have '
                    f'changed.'
                ) from e

        async def remove_redirects():
            # A team in another org keeps the redirect pointing there
            if state.team.parent_id not in (target_org_id, None):
                return
            await self.redirects.remove_team_redirect(state.team)

        await runner.run(
            [
                (MigrationStep.VALIDATE, validate),
                (MigrationStep.DETACH_TEAM, detach_team),
                (MigrationStep.REMOVE_REDIRECTS, remove_redirects),
            ]
        )

        self.logger.info(f'Removed team {state.team.name} from {state.organization.name}')
        return result

    async def remove_user_from_org(
        self, user_id: int, target_org_id: int
    ) -> MigrationResult:
        """Revert a user's migration into an organization.

        The user gets their standalone username back, their teams inside the
        org become standalone, and the redirects and org membership are
        deleted. The provenance record is marked reverted last, so an
        interrupted reversal can simply be run again.
        """
        result = MigrationResult(
            operation=MigrationOperation.REMOVE_USER,
            entity_type='user',
            entity_id=str(user_id),
            target_org_id=target_org_id,
        )
        runner = StepRunner(result)
        state = _UserReversalState()

        async def validate():
            state.organization = await self.resolver.resolve(target_org_id)
            state.user = await self.store.find_user_by_id(user_id)
            if state.user is None:
                raise NotFoundError(f'User with id: {user_id} not found')
            state.non_org_username = assert_revertable(state.user, target_org_id)

        async def detach_teams():
            teams = await self._non_org_teams_of(user_id)
            # Standalone teams are kept so a re-run still removes their redirects
            state.teams = [
                team for team in teams if team.parent_id in (target_org_id, None)
            ]
            in_org = [team.id for team in state.teams if team.parent_id is not None]
            if in_org:
                await self.store.bulk_update_teams(in_org, {'parent_id': None})

        async def remove_redirects():
            await self.redirects.remove_user_redirects(
                state.non_org_username, state.teams
            )

        async def remove_membership():
            removed = await self.store.delete_membership(user_id, target_org_id)
            if not removed:
                self.logger.debug(
                    f'No membership of user {user_id} in org {target_org_id} to remove'
                )

        async def restore_user():
            provenance = state.user.provenance
            metadata = state.user.metadata.copy(deep=True)
            metadata.migrated_to_org_from = MigrationProvenance(
                username=None,
                reverted=True,
                revert_time=self.clock(),
                last_migration_time=provenance.last_migration_time,
            )
            await self.store.update_user(
                user_id,
                {
                    'organization_id': None,
                    'username': state.non_org_username,
                    'metadata': metadata,
                },
            )

        await runner.run(
            [
                (MigrationStep.VALIDATE, validate),
                (MigrationStep.DETACH_TEAMS, detach_teams),
                (MigrationStep.REMOVE_REDIRECTS, remove_redirects),
                (MigrationStep.REMOVE_MEMBERSHIP, remove_membership),
                (MigrationStep.RESTORE_USER, restore_user),
            ]
        )

        result.metadata.update(
            {
                'username': state.non_org_username,
                'team_ids': [team.id for team in state.teams],
            }
        )
        self.logger.info(f'Reverted user {user_id} from orgId:{target_org_id}')
        return result

    async def _get_team(self, team_id: int) -> Team:
        team = await self.store.find_team_by_id(team_id)
        if team is None:
            raise NotFoundError(f'Team with id: {team_id} not found')
        return team

    async def _non_org_teams_of(self, user_id: int) -> List[Team]:
        """Teams the user is a member of, excluding organizations."""
        memberships = await self.store.find_memberships_by_user(user_id)
        teams = await self.store.find_teams_by_ids(m.team_id for m in memberships)
        return [team for team in teams if not team.is_organization]

    async def _set_org_slug_if_not_set(self, organization: Team) -> None:
        if organization.slug:
            return

        requested_slug = organization.metadata.requested_slug
        if not requested_slug:
            raise SlugBackfillError(
                f"Org with id: {organization.id} doesn't have a slug. Tried using "
                f"requestedSlug but that's also not present. So, all migration done "
                f'but failed to set the Organization slug. Please set it manually.'
            )

        await self.store.update_team(organization.id, {'slug': requested_slug})
        organization.slug = requested_slug
        self.logger.info(f'Set slug {requested_slug} for org {organization.id}')

    def test_connectivity(self) -> bool:
        """Check that the directory service is reachable.

        Stores that do not talk to a service are always reachable.
        """
        client = getattr(self.store, 'client', None)
        if client is None:
            return True
        return client.test_connection()

    async def close(self) -> None:
        await self.store.close()
