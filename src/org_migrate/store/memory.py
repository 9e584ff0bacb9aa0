"""In-memory directory store."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

import yaml
from loguru import logger
from pydantic import BaseModel

from ..models.membership import Membership
from ..models.redirect import RedirectMapping, RedirectType, STANDALONE_ORG_ID
from ..models.team import Team
from ..models.user import User
from .base import DirectoryStore
from .exceptions import RecordNotFoundError, StoreError, UniqueConstraintError


def _dump(model: BaseModel) -> Dict[str, Any]:
    """Plain JSON-compatible representation of a model."""
    return json.loads(model.json(by_alias=True))


class InMemoryDirectoryStore(DirectoryStore):
    """Dict-backed directory store.

    Enforces the same uniqueness constraints as the directory database and
    hands out copies, so callers never hold references to stored records.
    Can be seeded from and saved to a YAML file for rehearsing migrations
    offline.
    """

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._teams: Dict[int, Team] = {}
        self._memberships: Dict[Tuple[int, int], Membership] = {}
        self._redirects: Dict[Tuple[RedirectType, str, int], RedirectMapping] = {}
        self.logger = logger.bind(component='InMemoryDirectoryStore')

    # Seeding

    def add_user(self, user: User) -> User:
        self._check_user_unique(user, self._users.values())
        self._users[user.id] = user.copy(deep=True)
        return user

    def add_team(self, team: Team) -> Team:
        self._check_team_unique(team, self._teams.values())
        self._teams[team.id] = team.copy(deep=True)
        return team

    def add_membership(self, membership: Membership) -> Membership:
        if membership.key in self._memberships:
            raise UniqueConstraintError(
                f'Membership for user {membership.user_id} in team '
                f'{membership.team_id} already exists',
                fields=('user_id', 'team_id'),
                value=membership.key,
            )
        self._memberships[membership.key] = membership.copy(deep=True)
        return membership

    def add_redirect(self, redirect: RedirectMapping) -> RedirectMapping:
        if redirect.key in self._redirects:
            raise UniqueConstraintError(
                f'Redirect {redirect.type.value}:{redirect.from_} already exists',
                fields=('type', 'from', 'from_org_id'),
                value=redirect.key,
            )
        self._redirects[redirect.key] = redirect.copy(deep=True)
        return redirect

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InMemoryDirectoryStore':
        """Build a store from a mapping of record lists."""
        store = cls()
        for user_data in data.get('users') or []:
            store.add_user(User(**user_data))
        for team_data in data.get('teams') or []:
            store.add_team(Team(**team_data))
        for membership_data in data.get('memberships') or []:
            store.add_membership(Membership(**membership_data))
        for redirect_data in data.get('redirects') or []:
            store.add_redirect(RedirectMapping(**redirect_data))
        return store

    @classmethod
    def from_yaml(cls, path: str) -> 'InMemoryDirectoryStore':
        """Load a store from a YAML file of record lists."""
        store_file = Path(path)
        if not store_file.exists():
            raise FileNotFoundError(f'Directory file not found: {path}')

        with open(store_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return every stored record as plain data, in a stable order."""
        return {
            'users': [_dump(self._users[k]) for k in sorted(self._users)],
            'teams': [_dump(self._teams[k]) for k in sorted(self._teams)],
            'memberships': [
                _dump(self._memberships[k]) for k in sorted(self._memberships)
            ],
            'redirects': [
                _dump(self._redirects[k])
                for k in sorted(
                    self._redirects, key=lambda k: (k[0].value, k[1], k[2])
                )
            ],
        }

    def to_yaml(self, path: str) -> None:
        store_file = Path(path)
        store_file.parent.mkdir(parents=True, exist_ok=True)

        with open(store_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(
                self.snapshot(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    # Constraint checks

    @staticmethod
    def _check_user_unique(user: User, others: Iterable[User]) -> None:
        if user.username is None:
            return
        for other in others:
            if other.id == user.id:
                continue
            if (
                other.username == user.username
                and other.organization_id == user.organization_id
            ):
                raise UniqueConstraintError(
                    f'Username {user.username} is already taken in '
                    f'organization {user.organization_id}',
                    fields=('username', 'organization_id'),
                    value=user.username,
                )

    @staticmethod
    def _check_team_unique(team: Team, others: Iterable[Team]) -> None:
        if team.slug is None:
            return
        for other in others:
            if other.id == team.id:
                continue
            if other.slug == team.slug and other.parent_id == team.parent_id:
                raise UniqueConstraintError(
                    f'Slug {team.slug} is already taken under parent {team.parent_id}',
                    fields=('slug', 'parent_id'),
                    value=team.slug,
                )

    @staticmethod
    def _apply_patch(
        model_cls: Type[BaseModel], record: BaseModel, patch: Dict[str, Any]
    ) -> BaseModel:
        unknown = set(patch) - set(model_cls.__fields__)
        if unknown:
            raise StoreError(
                f'Unknown {model_cls.__name__} fields in patch: {sorted(unknown)}'
            )
        data = record.dict()
        data.update(patch)
        return model_cls(**data)

    # Users

    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        user = self._users.get(user_id)
        return user.copy(deep=True) if user else None

    async def find_users_by_username(self, username: str) -> List[User]:
        return [
            user.copy(deep=True)
            for user in self._users.values()
            if user.username == username
        ]

    async def find_first_user(self, **filters: Any) -> Optional[User]:
        for user_id in sorted(self._users):
            user = self._users[user_id]
            if all(getattr(user, k) == v for k, v in filters.items()):
                return user.copy(deep=True)
        return None

    async def update_user(self, user_id: int, patch: Dict[str, Any]) -> User:
        existing = self._users.get(user_id)
        if existing is None:
            raise RecordNotFoundError('User', user_id)

        updated = self._apply_patch(User, existing, patch)
        self._check_user_unique(updated, self._users.values())
        self._users[user_id] = updated
        return updated.copy(deep=True)

    # Teams

    async def find_team_by_id(self, team_id: int) -> Optional[Team]:
        team = self._teams.get(team_id)
        return team.copy(deep=True) if team else None

    async def find_teams_by_ids(self, team_ids: Iterable[int]) -> List[Team]:
        return [
            self._teams[team_id].copy(deep=True)
            for team_id in sorted(set(team_ids))
            if team_id in self._teams
        ]

    async def update_team(self, team_id: int, patch: Dict[str, Any]) -> Team:
        existing = self._teams.get(team_id)
        if existing is None:
            raise RecordNotFoundError('Team', team_id)

        updated = self._apply_patch(Team, existing, patch)
        self._check_team_unique(updated, self._teams.values())
        self._teams[team_id] = updated
        return updated.copy(deep=True)

    async def bulk_update_teams(
        self, team_ids: Iterable[int], patch: Dict[str, Any]
    ) -> int:
        updated = {
            team_id: self._apply_patch(Team, self._teams[team_id], patch)
            for team_id in set(team_ids)
            if team_id in self._teams
        }
        if not updated:
            return 0

        # Checked against the final state so the update applies all or nothing
        final_state = {**self._teams, **updated}
        for team in updated.values():
            self._check_team_unique(team, final_state.values())

        self._teams.update(updated)
        return len(updated)

    # Memberships

    async def find_memberships_by_user(self, user_id: int) -> List[Membership]:
        return [
            m.copy(deep=True)
            for key, m in sorted(self._memberships.items())
            if key[0] == user_id
        ]

    async def find_memberships_by_team(self, team_id: int) -> List[Membership]:
        return [
            m.copy(deep=True)
            for key, m in sorted(self._memberships.items())
            if key[1] == team_id
        ]

    async def upsert_membership(
        self, user_id: int, team_id: int, patch: Dict[str, Any]
    ) -> Membership:
        key = (user_id, team_id)
        existing = self._memberships.get(key)
        if existing is None:
            membership = Membership(user_id=user_id, team_id=team_id, **patch)
        else:
            membership = self._apply_patch(Membership, existing, patch)

        self._memberships[key] = membership
        return membership.copy(deep=True)

    async def delete_membership(self, user_id: int, team_id: int) -> bool:
        return self._memberships.pop((user_id, team_id), None) is not None

    # Redirects

    async def find_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> Optional[RedirectMapping]:
        redirect = self._redirects.get((RedirectType(type), from_, from_org_id))
        return redirect.copy(deep=True) if redirect else None

    async def upsert_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int,
        to_url: str,
    ) -> RedirectMapping:
        redirect = RedirectMapping(
            type=type, from_=from_, from_org_id=from_org_id, to_url=to_url
        )
        self._redirects[redirect.key] = redirect
        return redirect.copy(deep=True)

    async def delete_redirects(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> int:
        removed = self._redirects.pop((RedirectType(type), from_, from_org_id), None)
        return 1 if removed is not None else 0
