"""Directory store interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..models.membership import Membership
from ..models.redirect import RedirectMapping, RedirectType, STANDALONE_ORG_ID
from ..models.team import Team
from ..models.user import User


class DirectoryStore(ABC):
    """Read and write operations the migration engine needs from a directory.

    Implementations own all persisted state and enforce the uniqueness
    constraints on usernames per organization, team slugs per parent,
    memberships per ``(user, team)`` and redirects per
    ``(type, from, from_org_id)``. A violated constraint raises
    :class:`~org_migrate.store.exceptions.UniqueConstraintError`.

    Patches are dictionaries keyed by model field names. Metadata patch values
    are complete metadata models and replace the stored blob.
    """

    # Users

    @abstractmethod
    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        """Return the user with the given ID, or None."""
        pass

    @abstractmethod
    async def find_users_by_username(self, username: str) -> List[User]:
        """Return every user holding ``username`` in any namespace."""
        pass

    @abstractmethod
    async def find_first_user(self, **filters: Any) -> Optional[User]:
        """Return the first user whose fields equal all given filters."""
        pass

    @abstractmethod
    async def update_user(self, user_id: int, patch: Dict[str, Any]) -> User:
        """Apply ``patch`` to a user and return the stored result."""
        pass

    # Teams

    @abstractmethod
    async def find_team_by_id(self, team_id: int) -> Optional[Team]:
        """Return the team with the given ID, or None."""
        pass

    @abstractmethod
    async def find_teams_by_ids(self, team_ids: Iterable[int]) -> List[Team]:
        """Return the teams among ``team_ids`` that exist."""
        pass

    @abstractmethod
    async def update_team(self, team_id: int, patch: Dict[str, Any]) -> Team:
        """Apply ``patch`` to a team and return the stored result."""
        pass

    @abstractmethod
    async def bulk_update_teams(
        self, team_ids: Iterable[int], patch: Dict[str, Any]
    ) -> int:
        """Apply ``patch`` to every listed team and return how many changed."""
        pass

    # Memberships

    @abstractmethod
    async def find_memberships_by_user(self, user_id: int) -> List[Membership]:
        pass

    @abstractmethod
    async def find_memberships_by_team(self, team_id: int) -> List[Membership]:
        pass

    @abstractmethod
    async def upsert_membership(
        self, user_id: int, team_id: int, patch: Dict[str, Any]
    ) -> Membership:
        """Create the ``(user_id, team_id)`` membership or update it in place."""
        pass

    @abstractmethod
    async def delete_membership(self, user_id: int, team_id: int) -> bool:
        """Delete the membership. Returns False when there was none."""
        pass

    # Redirects

    @abstractmethod
    async def find_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> Optional[RedirectMapping]:
        pass

    @abstractmethod
    async def upsert_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int,
        to_url: str,
    ) -> RedirectMapping:
        """Create the redirect or overwrite its target URL."""
        pass

    @abstractmethod
    async def delete_redirects(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> int:
        """Delete matching redirects and return how many were removed."""
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
