"""Validation helpers shared by the migration operations.

All helpers are read-only: they inspect records and raise a
:class:`~org_migrate.migration.exceptions.MigrationError` subclass, or return
the value the caller needs next.
"""

from typing import Optional

from loguru import logger

from ..models.team import Team
from ..models.user import User
from ..store.base import DirectoryStore
from ..utils.usernames import get_org_username_from_email
from .exceptions import (
    ConflictError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)

log = logger.bind(component='assertions')


def describe_user_ref(user_id: Optional[int], username: Optional[str]) -> str:
    return username if username else f'ID:{user_id}'


def assert_user_id_or_username(
    user_id: Optional[int], username: Optional[str]
) -> None:
    """Exactly one way of naming the user must be given."""
    if user_id is None and not username:
        raise InvalidArgumentError('userId or userName is required')
    if user_id is not None and username:
        raise InvalidArgumentError('Provide either userId or userName')


async def find_unique_user_outside_other_orgs(
    store: DirectoryStore,
    user_id: Optional[int],
    username: Optional[str],
    target_org_id: int,
) -> Optional[User]:
    """Find the user to migrate.

    A username lookup only considers standalone users and users already in
    the target organization; more than one such user is ambiguous.
    """
    if username:
        matching_users = await store.find_users_by_username(username)
        candidates = [
            user
            for user in matching_users
            if user.organization_id is None or user.organization_id == target_org_id
        ]
        if len(candidates) > 1:
            raise ConflictError(f'More than one user found with username: {username}')
        return candidates[0] if candidates else None

    return await store.find_user_by_id(user_id)


def assert_user_not_in_other_org(
    user: Optional[User],
    user_id: Optional[int],
    username: Optional[str],
    target_org_id: int,
) -> User:
    if user is None:
        raise NotFoundError(
            f'User {describe_user_ref(user_id, username)} not found '
            f'outside other organizations'
        )

    if user.organization_id is not None and user.organization_id != target_org_id:
        raise ConflictError(
            f'User {user.describe()} is already a part of organization '
            f'{user.organization_id}'
        )
    return user


def resolve_target_org_username(
    user: User, organization: Team, target_org_username: Optional[str]
) -> str:
    """Use the supplied username or derive one from the user's email."""
    if target_org_username:
        return target_org_username

    derived = get_org_username_from_email(
        user.email, organization.metadata.org_auto_accept_email or ''
    )
    if not derived:
        raise InvalidArgumentError(
            f'Could not derive an organization username for user {user.describe()}'
        )
    return derived


async def assert_username_free_in_org(
    store: DirectoryStore, user: User, target_org_username: str, target_org_id: int
) -> None:
    holder = await store.find_first_user(
        username=target_org_username, organization_id=target_org_id
    )

    log.debug(
        f'Username {target_org_username} in org {target_org_id} is held by '
        f'{holder.describe() if holder else "nobody"}; migrating {user.describe()}'
    )

    if holder is not None and holder.id != user.id:
        raise ConflictError(
            f'Username {target_org_username} already exists for orgId: '
            f'{target_org_id} for some other user'
        )


def assert_remigration_allowed(
    user: User, target_org_id: int, target_org_username: str
) -> None:
    """Re-running a migration into the same organization is a refresh."""
    if user.organization_id is None:
        return

    if user.organization_id != target_org_id:
        raise ConflictError(
            f'User {target_org_username} already exists for different Org with '
            f'orgId: {user.organization_id}'
        )

    log.debug(f'Redoing migration for user {user.describe()} to orgId: {target_org_id}')


def resolve_non_org_username(user: User) -> str:
    """The standalone username to keep for a later reversal.

    A previously recorded username wins, so repeated migrations never lose
    the original handle.
    """
    provenance = user.provenance
    non_org_username = (provenance.username if provenance else None) or user.username
    if not non_org_username:
        raise InvalidArgumentError(
            f'User with id: {user.id} does not have a non-org username'
        )
    return non_org_username


def assert_revertable(user: User, target_org_id: int) -> str:
    """Check a user can be removed from an organization.

    Returns:
        The standalone username to restore
    """
    provenance = user.provenance

    if provenance is None:
        raise InvalidArgumentError(
            f"User with id: {user.id} wasn't migrated. So, there is nothing to revert"
        )

    if provenance.reverted:
        raise ConflictError(f'User with id: {user.id} is already reverted')

    if user.organization_id != target_org_id:
        raise ConflictError(
            f'User with id: {user.id} is not part of orgId: {target_org_id}'
        )

    if not provenance.username:
        raise InternalError(f'User with id: {user.id} does not have a non-org username')

    return provenance.username
