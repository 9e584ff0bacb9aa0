"""Tests for removing users from organizations."""

import pytest

from org_migrate.migration.exceptions import (
    ConflictError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)
from org_migrate.migration.steps import MigrationStatus, MigrationStep
from org_migrate.models.redirect import RedirectType
from org_migrate.store.memory import InMemoryDirectoryStore

from conftest import FIXED_NOW, make_engine, seed_data


class TestRemoveUserFromOrg:
    """Test reverting a migrated user."""

    @pytest.mark.asyncio
    async def test_round_trip_restores_user(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)

        result = await engine.remove_user_from_org(7, 3)

        assert result.status == MigrationStatus.COMPLETED
        user = await store.find_user_by_id(7)
        assert user.organization_id is None
        assert user.username == 'jdoe'

    @pytest.mark.asyncio
    async def test_round_trip_removes_membership_and_redirects(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        await engine.remove_user_from_org(7, 3)

        memberships = await store.find_memberships_by_user(7)
        assert 3 not in [m.team_id for m in memberships]
        assert await store.find_redirect(RedirectType.USER, 'jdoe', 0) is None
        assert await store.find_redirect(RedirectType.TEAM, 'design', 0) is None
        assert store.snapshot()['redirects'] == []

    @pytest.mark.asyncio
    async def test_round_trip_detaches_teams(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        result = await engine.remove_user_from_org(7, 3)

        teams = await store.find_teams_by_ids([10, 11])
        assert [team.parent_id for team in teams] == [None, None]
        assert result.metadata['team_ids'] == [10, 11]

    @pytest.mark.asyncio
    async def test_provenance_marked_reverted(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        await engine.remove_user_from_org(7, 3)

        provenance = (await store.find_user_by_id(7)).provenance
        assert provenance.reverted is True
        assert provenance.username is None
        assert provenance.revert_time == FIXED_NOW
        assert provenance.last_migration_time == FIXED_NOW

    @pytest.mark.asyncio
    async def test_restore_user_runs_last(self, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        result = await engine.remove_user_from_org(7, 3)

        assert result.completed_steps == [
            MigrationStep.VALIDATE,
            MigrationStep.DETACH_TEAMS,
            MigrationStep.REMOVE_REDIRECTS,
            MigrationStep.REMOVE_MEMBERSHIP,
            MigrationStep.RESTORE_USER,
        ]

    @pytest.mark.asyncio
    async def test_teams_in_other_orgs_untouched(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        await store.update_team(10, {'parent_id': 4})

        await engine.remove_user_from_org(7, 3)

        team = await store.find_team_by_id(10)
        assert team.parent_id == 4
        # Its redirect still belongs to the migration into org 3
        assert await store.find_redirect(RedirectType.TEAM, 'design', 0) is not None

    @pytest.mark.asyncio
    async def test_remigration_after_revert(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        await engine.remove_user_from_org(7, 3)

        result = await engine.migrate_user_to_org(3, user_id=7)

        assert result.status == MigrationStatus.COMPLETED
        user = await store.find_user_by_id(7)
        assert user.organization_id == 3
        assert user.username == 'jane'
        assert user.provenance.username == 'jdoe'
        assert user.provenance.reverted is False


class TestRemoveUserValidation:
    """Test reversal boundaries."""

    @pytest.mark.asyncio
    async def test_never_migrated(self, engine):
        with pytest.raises(InvalidArgumentError) as exc_info:
            await engine.remove_user_from_org(8, 3)

        assert "wasn't migrated" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_already_reverted(self, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        await engine.remove_user_from_org(7, 3)

        with pytest.raises(ConflictError) as exc_info:
            await engine.remove_user_from_org(7, 3)

        assert 'already reverted' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_user_in_different_org(self, store, engine):
        await engine.migrate_user_to_org(3, user_id=7)
        before = store.snapshot()

        with pytest.raises(ConflictError):
            await engine.remove_user_from_org(7, 4)

        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_missing_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.remove_user_from_org(99, 3)

    @pytest.mark.asyncio
    async def test_missing_provenance_username(self, store, engine):
        await store.update_user(
            8,
            {
                'organization_id': 3,
                'metadata': {'migratedToOrgFrom': {'username': None}},
            },
        )

        with pytest.raises(InternalError):
            await engine.remove_user_from_org(8, 3)


class TestInterruptedReversal:
    """A failed reversal step is recovered by running the reversal again."""

    @pytest.mark.parametrize(
        'fail_on,failed_step',
        [
            ('bulk_update_teams', MigrationStep.DETACH_TEAMS),
            ('delete_redirects', MigrationStep.REMOVE_REDIRECTS),
            ('delete_membership', MigrationStep.REMOVE_MEMBERSHIP),
            ('update_user', MigrationStep.RESTORE_USER),
        ],
    )
    @pytest.mark.asyncio
    async def test_rerun_recovers(self, flaky_store, fail_on, failed_step):
        reference = InMemoryDirectoryStore.from_dict(seed_data())
        reference_engine = make_engine(reference)
        await reference_engine.migrate_user_to_org(3, user_id=7)
        await reference_engine.remove_user_from_org(7, 3)

        engine = make_engine(flaky_store)
        await engine.migrate_user_to_org(3, user_id=7)
        flaky_store.fail_on = fail_on

        with pytest.raises(InternalError) as exc_info:
            await engine.remove_user_from_org(7, 3)

        assert exc_info.value.step == failed_step

        result = await engine.remove_user_from_org(7, 3)

        assert result.status == MigrationStatus.COMPLETED
        assert flaky_store.snapshot() == reference.snapshot()
