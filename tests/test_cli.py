"""Tests for CLI interface."""

import os
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import yaml
from click.testing import CliRunner
from loguru import logger
from rich.console import Console

from org_migrate.cli.main import cli, init, _load_config
from org_migrate.config.config import Config

from conftest import seed_data


@pytest.fixture(autouse=True)
def reset_logging():
    with patch('org_migrate.cli.main.console', Console(width=200)):
        yield
    # Sinks added during invoke point at CliRunner's temporary streams
    logger.remove()


def _write_yaml(path, data):
    with open(path, 'w') as f:
        yaml.safe_dump(data, f)


def _read_yaml(path):
    with open(path) as f:
        return yaml.safe_load(f)


def _user(directory, user_id):
    return next(u for u in directory['users'] if u['id'] == user_id)


def _team(directory, team_id):
    return next(t for t in directory['teams'] if t['id'] == team_id)


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_cli_help(self):
        """Test CLI help command."""
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'Organization Migration Tool' in result.output
        for command in (
            'init',
            'migrate-user',
            'move-team',
            'remove-team',
            'remove-user',
            'apply',
            'validate',
            'status',
        ):
            assert command in result.output

    def test_cli_version(self):
        """Test CLI version command."""
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert '0.1.0' in result.output

    def test_init_command(self):
        """Test init command."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, 'test_config.yaml')

            result = self.runner.invoke(init, ['--output', config_path])

            assert result.exit_code == 0
            assert 'Configuration template created' in result.output

            with open(config_path, 'r') as f:
                content = f.read()
                assert 'directory:' in content
                assert 'organizations:' in content
                assert 'migration:' in content

    def test_init_command_default_output(self):
        """Test init command with default output."""
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(init)

            assert result.exit_code == 0
            assert os.path.exists('config.yaml')

    def test_status_command_with_config(self):
        """Test status command with a config file."""
        with self.runner.isolated_filesystem():
            self.runner.invoke(init, ['--output', 'org.yaml'])

            result = self.runner.invoke(cli, ['--config', 'org.yaml', 'status'])

            assert result.exit_code == 0
            assert 'Migration Configuration' in result.output
            assert 'directory.example.com' in result.output
            assert 'MEMBER' in result.output

    @patch('org_migrate.cli.main._load_config')
    def test_status_command_failure(self, mock_load_config):
        """Test status command failure."""
        mock_load_config.side_effect = Exception('Failed to load status')

        result = self.runner.invoke(cli, ['status'])

        assert result.exit_code == 1
        assert 'Failed to load status' in result.output

    @patch('org_migrate.cli.main.MigrationEngine.from_config')
    @patch('org_migrate.cli.main._load_config')
    def test_validate_command_success(self, mock_load_config, mock_from_config):
        """Test successful validate command."""
        mock_load_config.return_value = Mock(spec=Config)
        mock_engine = Mock()
        mock_engine.test_connectivity.return_value = True
        mock_from_config.return_value = mock_engine

        with patch('org_migrate.cli.main._setup_logging_with_config'):
            result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 0
        assert 'Connectivity validation passed' in result.output
        assert 'Configuration validation completed' in result.output

    @patch('org_migrate.cli.main.MigrationEngine.from_config')
    @patch('org_migrate.cli.main._load_config')
    def test_validate_command_unreachable(self, mock_load_config, mock_from_config):
        """Test validate command when the service is unreachable."""
        mock_load_config.return_value = Mock(spec=Config)
        mock_engine = Mock()
        mock_engine.test_connectivity.return_value = False
        mock_from_config.return_value = mock_engine

        with patch('org_migrate.cli.main._setup_logging_with_config'):
            result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 1
        assert 'Validation failed' in result.output

    @patch('org_migrate.cli.main._load_config')
    def test_validate_command_failure(self, mock_load_config):
        """Test validate command failure."""
        mock_load_config.side_effect = Exception('no config')

        result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 1
        assert 'Validation failed' in result.output

    def test_verbose_flag(self):
        """Test verbose flag."""
        result = self.runner.invoke(cli, ['--verbose', '--help'])

        assert result.exit_code == 0


class TestDirectoryFileCommands:
    """Run operations against a YAML directory file."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def _invoke(self, *args):
        return self.runner.invoke(cli, ['--directory-file', 'directory.yaml', *args])

    def test_migrate_user(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('migrate-user', '--user-id', '7', '--org-id', '3')

            assert result.exit_code == 0
            assert 'Migrated user 7 to Org: 3 as jane' in result.output

            directory = _read_yaml('directory.yaml')
            assert _user(directory, 7)['organization_id'] == 3
            assert _team(directory, 3)['slug'] == 'acme'
            assert any(
                r['type'] == 'User' and r['from'] == 'jdoe'
                for r in directory['redirects']
            )

    def test_migrate_user_with_role_and_pending(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke(
                'migrate-user',
                '--username',
                'bob',
                '--org-id',
                '3',
                '--org-username',
                'robert',
                '--role',
                'admin',
                '--pending',
            )

            assert result.exit_code == 0
            directory = _read_yaml('directory.yaml')
            membership = next(
                m
                for m in directory['memberships']
                if m['user_id'] == 8 and m['team_id'] == 3
            )
            assert membership == {
                'user_id': 8,
                'team_id': 3,
                'role': 'ADMIN',
                'accepted': False,
            }

    def test_migrate_user_conflict(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('migrate-user', '--user-id', '9', '--org-id', '3')

            assert result.exit_code == 1
            assert 'already a part of organization' in result.output

    def test_move_team_with_members(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke(
                'move-team', '--team-id', '12', '--org-id', '3', '--move-members'
            )

            assert result.exit_code == 0
            assert 'Added team 12 to Org: 3 along with the members' in result.output
            assert _user(_read_yaml('directory.yaml'), 8)['organization_id'] == 3

    def test_remove_team(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('remove-team', '--team-id', '12', '--org-id', '3')

            assert result.exit_code == 0
            assert 'Removed team 12 from 3' in result.output
            assert _team(_read_yaml('directory.yaml'), 12)['parent_id'] is None

    def test_remove_team_not_in_org_warns(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('remove-team', '--team-id', '10', '--org-id', '3')

            assert result.exit_code == 0
            assert 'Team 10 is not part of org 3' in result.output

    def test_remove_team_slug_clash(self):
        data = seed_data()
        data['teams'].append({'id': 13, 'name': 'Other Platform', 'slug': 'platform'})

        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', data)

            with patch('org_migrate.cli.main.cli_logger') as mock_logger:
                result = self._invoke('remove-team', '--team-id', '12', '--org-id', '3')

            assert result.exit_code == 1
            assert 'platform' in result.output
            mock_logger.error.assert_called_once()
            assert 'remove_team_from_org team 12' in mock_logger.error.call_args.args[0]
            assert _team(_read_yaml('directory.yaml'), 12)['parent_id'] == 3

    def test_remove_user(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())
            self._invoke('migrate-user', '--user-id', '7', '--org-id', '3')

            result = self._invoke('remove-user', '--user-id', '7', '--org-id', '3')

            assert result.exit_code == 0
            assert 'Reverted' in result.output
            directory = _read_yaml('directory.yaml')
            assert _user(directory, 7)['username'] == 'jdoe'
            assert directory['redirects'] == []

    def test_remove_user_never_migrated(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            with patch('org_migrate.cli.main.cli_logger') as mock_logger:
                result = self._invoke('remove-user', '--user-id', '8', '--org-id', '3')

            assert result.exit_code == 1
            assert "wasn't migrated" in result.output
            mock_logger.error.assert_called_once()
            mock_logger.warning.assert_not_called()

    def test_apply_plan(self):
        plan = {
            'requests': [
                {'operation': 'migrateUserToOrg', 'target_org_id': 3, 'user_id': 7},
                {'operation': 'move_team_to_org', 'target_org_id': 3, 'team_id': 10},
            ]
        }

        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())
            _write_yaml('plan.yaml', plan)

            result = self._invoke('apply', 'plan.yaml')

            assert result.exit_code == 0
            assert 'Migration Summary' in result.output
            assert 'Plan applied successfully' in result.output

    def test_apply_plan_with_failure(self):
        plan = [
            {'operation': 'migrate_user_to_org', 'target_org_id': 3, 'user_id': 9},
            {'operation': 'migrate_user_to_org', 'target_org_id': 3, 'user_id': 7},
        ]

        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())
            _write_yaml('plan.yaml', plan)

            result = self._invoke('apply', 'plan.yaml')

            assert result.exit_code == 1
            assert 'Plan finished with failures' in result.output
            # Stopped before the second request
            assert _user(_read_yaml('directory.yaml'), 7)['organization_id'] is None

    def test_apply_plan_continue_on_error(self):
        plan = [
            {'operation': 'migrate_user_to_org', 'target_org_id': 3, 'user_id': 9},
            {'operation': 'migrate_user_to_org', 'target_org_id': 3, 'user_id': 7},
        ]

        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())
            _write_yaml('plan.yaml', plan)

            result = self._invoke('apply', 'plan.yaml', '--continue-on-error')

            assert result.exit_code == 1
            assert _user(_read_yaml('directory.yaml'), 7)['organization_id'] == 3

    def test_validate_directory_file(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('validate')

            assert result.exit_code == 0
            assert 'Connectivity validation passed' in result.output

    def test_status_directory_file(self):
        with self.runner.isolated_filesystem():
            _write_yaml('directory.yaml', seed_data())

            result = self._invoke('status')

            assert result.exit_code == 0
            assert 'Directory File' in result.output
            assert 'Users' in result.output


class TestConfigLoading:
    """Test configuration loading functions."""

    @patch('org_migrate.config.config.Config.from_file')
    def test_load_config_with_file(self, mock_from_file):
        """Test loading config from specified file."""
        mock_config = Mock(spec=Config)
        mock_from_file.return_value = mock_config

        mock_ctx = Mock()
        mock_ctx.obj = {'config_path': '/path/to/config.yaml'}

        with patch('pathlib.Path.exists', return_value=True):
            config = _load_config(mock_ctx)

        assert config == mock_config
        mock_from_file.assert_called_once_with('/path/to/config.yaml')

    @patch('org_migrate.config.config.Config.from_file')
    def test_load_config_default_locations(self, mock_from_file):
        """Test loading config from default locations."""
        mock_config = Mock(spec=Config)
        mock_from_file.return_value = mock_config

        mock_ctx = Mock()
        mock_ctx.obj = {}

        with patch.object(
            Path,
            'exists',
            autospec=True,
            side_effect=lambda path: str(path) == 'config.yml',
        ):
            config = _load_config(mock_ctx)

        assert config == mock_config
        mock_from_file.assert_called_once_with('config.yml')

    @patch('org_migrate.config.config.Config.from_env')
    def test_load_config_from_env(self, mock_from_env):
        """Test loading config from environment variables."""
        mock_config = Mock(spec=Config)
        mock_from_env.return_value = mock_config

        mock_ctx = Mock()
        mock_ctx.obj = {}

        with patch('pathlib.Path.exists', return_value=False):
            config = _load_config(mock_ctx)

        assert config == mock_config
        mock_from_env.assert_called_once()

    def test_load_config_not_found(self):
        """Test loading config when no config is found."""
        mock_ctx = Mock()
        mock_ctx.obj = {}

        with patch('pathlib.Path.exists', return_value=False):
            with patch(
                'org_migrate.config.config.Config.from_env',
                side_effect=Exception(),
            ):
                with pytest.raises(FileNotFoundError):
                    _load_config(mock_ctx)

    def test_load_config_optional(self):
        """Test a missing config is allowed when not required."""
        mock_ctx = Mock()
        mock_ctx.obj = {}

        with patch('pathlib.Path.exists', return_value=False):
            with patch(
                'org_migrate.config.config.Config.from_env',
                side_effect=Exception(),
            ):
                assert _load_config(mock_ctx, required=False) is None
