"""Directory store backed by the directory service admin API.

Endpoints used (relative to ``/api/<version>``)::

    GET    /users/{id}                    PATCH /users/{id}
    GET    /users?username=&organization_id=&limit=
    GET    /teams/{id}                    PATCH /teams/{id}
    GET    /teams?ids=1,2,3               PATCH /teams  {"ids": [...], "data": {...}}
    GET    /memberships?user_id= | ?team_id=
    PUT    /memberships/{user_id}/{team_id}
    DELETE /memberships/{user_id}/{team_id}
    GET    /redirects?type=&from=&from_org_id=
    PUT    /redirects                     DELETE /redirects?type=&from=&from_org_id=
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel

from ..api.client import DirectoryClient
from ..api.exceptions import (
    DirectoryAPIError,
    DirectoryConflictError,
    DirectoryNotFoundError,
)
from ..models.membership import Membership
from ..models.redirect import RedirectMapping, RedirectType, STANDALONE_ORG_ID
from ..models.team import Team
from ..models.user import User
from .base import DirectoryStore
from .exceptions import RecordNotFoundError, StoreError, UniqueConstraintError


def _encode_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a patch into a JSON body, serializing nested models by alias."""
    body = {}
    for key, value in patch.items():
        if isinstance(value, BaseModel):
            body[key] = json.loads(value.json(by_alias=True))
        elif hasattr(value, 'value'):
            body[key] = value.value
        else:
            body[key] = value
    return body


def _conflict(error: DirectoryConflictError) -> UniqueConstraintError:
    return UniqueConstraintError(str(error), fields=error.fields, value=error.value)


class RestDirectoryStore(DirectoryStore):
    """Directory store talking to the directory service over HTTP."""

    def __init__(self, client: DirectoryClient):
        """Initialize REST directory store.

        Args:
            client: Authenticated directory client
        """
        self.client = client
        self.logger = logger.bind(component='RestDirectoryStore')

    async def _get_one(self, endpoint: str, model_cls) -> Optional[Any]:
        try:
            response = await self.client.get_async(endpoint)
        except DirectoryNotFoundError:
            return None
        except DirectoryAPIError as e:
            raise StoreError(f'GET {endpoint} failed: {e}') from e
        return model_cls(**response.data) if response.data else None

    async def _get_many(
        self, endpoint: str, model_cls, params: Dict[str, Any]
    ) -> List[Any]:
        try:
            response = await self.client.get_async(endpoint, params=params)
        except DirectoryAPIError as e:
            raise StoreError(f'GET {endpoint} failed: {e}') from e
        return [model_cls(**item) for item in response.data or []]

    async def _write(
        self,
        method: str,
        endpoint: str,
        entity: str,
        key: Any,
        data: Optional[Any] = None,
    ) -> Any:
        request = getattr(self.client, f'{method}_async')
        try:
            response = await request(endpoint, data=data)
        except DirectoryConflictError as e:
            raise _conflict(e) from e
        except DirectoryNotFoundError as e:
            raise RecordNotFoundError(entity, key) from e
        except DirectoryAPIError as e:
            raise StoreError(f'{method.upper()} {endpoint} failed: {e}') from e
        return response.data

    # Users

    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        return await self._get_one(f'/users/{user_id}', User)

    async def find_users_by_username(self, username: str) -> List[User]:
        return await self._get_many('/users', User, {'username': username})

    async def find_first_user(self, **filters: Any) -> Optional[User]:
        params = {
            k: ('null' if v is None else v) for k, v in filters.items()
        }
        params['limit'] = 1
        users = await self._get_many('/users', User, params)
        return users[0] if users else None

    async def update_user(self, user_id: int, patch: Dict[str, Any]) -> User:
        data = await self._write(
            'patch', f'/users/{user_id}', 'User', user_id, _encode_patch(patch)
        )
        return User(**data)

    # Teams

    async def find_team_by_id(self, team_id: int) -> Optional[Team]:
        return await self._get_one(f'/teams/{team_id}', Team)

    async def find_teams_by_ids(self, team_ids: Iterable[int]) -> List[Team]:
        ids = sorted(set(team_ids))
        if not ids:
            return []
        return await self._get_many(
            '/teams', Team, {'ids': ','.join(str(i) for i in ids)}
        )

    async def update_team(self, team_id: int, patch: Dict[str, Any]) -> Team:
        data = await self._write(
            'patch', f'/teams/{team_id}', 'Team', team_id, _encode_patch(patch)
        )
        return Team(**data)

    async def bulk_update_teams(
        self, team_ids: Iterable[int], patch: Dict[str, Any]
    ) -> int:
        ids = sorted(set(team_ids))
        if not ids:
            return 0
        data = await self._write(
            'patch',
            '/teams',
            'Team',
            ids,
            {'ids': ids, 'data': _encode_patch(patch)},
        )
        return int((data or {}).get('count', 0))

    # Memberships

    async def find_memberships_by_user(self, user_id: int) -> List[Membership]:
        return await self._get_many('/memberships', Membership, {'user_id': user_id})

    async def find_memberships_by_team(self, team_id: int) -> List[Membership]:
        return await self._get_many('/memberships', Membership, {'team_id': team_id})

    async def upsert_membership(
        self, user_id: int, team_id: int, patch: Dict[str, Any]
    ) -> Membership:
        data = await self._write(
            'put',
            f'/memberships/{user_id}/{team_id}',
            'Membership',
            (user_id, team_id),
            _encode_patch(patch),
        )
        return Membership(**data)

    async def delete_membership(self, user_id: int, team_id: int) -> bool:
        try:
            await self.client.delete_async(f'/memberships/{user_id}/{team_id}')
        except DirectoryNotFoundError:
            return False
        except DirectoryAPIError as e:
            raise StoreError(f'Deleting membership failed: {e}') from e
        return True

    # Redirects

    @staticmethod
    def _redirect_params(type: RedirectType, from_: str, from_org_id: int):
        return {
            'type': RedirectType(type).value,
            'from': from_,
            'from_org_id': from_org_id,
        }

    async def find_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> Optional[RedirectMapping]:
        redirects = await self._get_many(
            '/redirects',
            RedirectMapping,
            self._redirect_params(type, from_, from_org_id),
        )
        return redirects[0] if redirects else None

    async def upsert_redirect(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int,
        to_url: str,
    ) -> RedirectMapping:
        body = self._redirect_params(type, from_, from_org_id)
        body['to_url'] = to_url
        data = await self._write('put', '/redirects', 'Redirect', from_, body)
        return RedirectMapping(**data)

    async def delete_redirects(
        self,
        type: RedirectType,
        from_: str,
        from_org_id: int = STANDALONE_ORG_ID,
    ) -> int:
        try:
            response = await self.client.delete_async(
                '/redirects', params=self._redirect_params(type, from_, from_org_id)
            )
        except DirectoryNotFoundError:
            return 0
        except DirectoryAPIError as e:
            raise StoreError(f'Deleting redirect {from_} failed: {e}') from e
        return int((response.data or {}).get('count', 0))

    async def close(self) -> None:
        self.client.close()
