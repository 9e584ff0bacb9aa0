"""Shared fixtures for migration tests."""

from datetime import datetime, timezone

import pytest

from org_migrate.config.config import OrganizationConfig
from org_migrate.migration.engine import MigrationEngine
from org_migrate.store.memory import InMemoryDirectoryStore

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

ACME_ORIGIN = 'https://acme.example.com'


def seed_data():
    """A small directory.

    - org 3 (Acme) has no slug yet, only a requested slug
    - org 4 (Globex) is a regular organization holding user 9
    - user 7 is standalone and a member of teams 10 and 11 (11 has no slug)
    - user 8 is standalone and an admin of team 12, which already sits in org 3
    """
    return {
        'users': [
            {'id': 7, 'username': 'jdoe', 'email': 'jane@acme.com', 'name': 'Jane Doe'},
            {'id': 8, 'username': 'bob', 'email': 'bob@gmail.com', 'name': 'Bob'},
            {
                'id': 9,
                'username': 'carol',
                'email': 'carol@globex.com',
                'organization_id': 4,
            },
        ],
        'teams': [
            {
                'id': 3,
                'name': 'Acme',
                'slug': None,
                'metadata': {
                    'isOrganization': True,
                    'requestedSlug': 'acme',
                    'orgAutoAcceptEmail': 'acme.com',
                },
            },
            {
                'id': 4,
                'name': 'Globex',
                'slug': 'globex',
                'metadata': {'isOrganization': True},
            },
            {'id': 10, 'name': 'Design', 'slug': 'design'},
            {'id': 11, 'name': 'Drafts'},
            {'id': 12, 'name': 'Platform', 'slug': 'platform', 'parent_id': 3},
        ],
        'memberships': [
            {'user_id': 7, 'team_id': 10, 'role': 'MEMBER', 'accepted': True},
            {'user_id': 7, 'team_id': 11, 'role': 'OWNER', 'accepted': True},
            {'user_id': 8, 'team_id': 12, 'role': 'ADMIN', 'accepted': True},
            {'user_id': 9, 'team_id': 4, 'role': 'MEMBER', 'accepted': True},
        ],
        'redirects': [],
    }


class FlakyStore(InMemoryDirectoryStore):
    """In-memory store whose named write method fails once."""

    def __init__(self, fail_on=None):
        super().__init__()
        self.fail_on = fail_on

    def _maybe_fail(self, method):
        if self.fail_on == method:
            self.fail_on = None
            raise RuntimeError(f'connection reset during {method}')

    async def update_user(self, *args, **kwargs):
        self._maybe_fail('update_user')
        return await super().update_user(*args, **kwargs)

    async def update_team(self, *args, **kwargs):
        self._maybe_fail('update_team')
        return await super().update_team(*args, **kwargs)

    async def bulk_update_teams(self, *args, **kwargs):
        self._maybe_fail('bulk_update_teams')
        return await super().bulk_update_teams(*args, **kwargs)

    async def upsert_membership(self, *args, **kwargs):
        self._maybe_fail('upsert_membership')
        return await super().upsert_membership(*args, **kwargs)

    async def delete_membership(self, *args, **kwargs):
        self._maybe_fail('delete_membership')
        return await super().delete_membership(*args, **kwargs)

    async def upsert_redirect(self, *args, **kwargs):
        self._maybe_fail('upsert_redirect')
        return await super().upsert_redirect(*args, **kwargs)

    async def delete_redirects(self, *args, **kwargs):
        self._maybe_fail('delete_redirects')
        return await super().delete_redirects(*args, **kwargs)


def make_engine(store):
    return MigrationEngine(
        store, organizations=OrganizationConfig(), clock=lambda: FIXED_NOW
    )


@pytest.fixture
def store():
    return InMemoryDirectoryStore.from_dict(seed_data())


@pytest.fixture
def engine(store):
    return make_engine(store)


@pytest.fixture
def flaky_store():
    return FlakyStore.from_dict(seed_data())
