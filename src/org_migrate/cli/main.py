"""Main CLI entry point for the Organization Migration Tool."""

import sys
import asyncio
from typing import Awaitable, Optional
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..models.membership import MembershipRole
from ..migration.engine import MigrationEngine
from ..migration.exceptions import MigrationError
from ..migration.orchestrator import MigrationOrchestrator, MigrationPlan, MigrationSummary
from ..migration.requests import MigrationRequest
from ..migration.steps import MigrationOperation, MigrationResult
from ..store.memory import InMemoryDirectoryStore
from ..utils.logging import setup_logging

console = Console()
cli_logger = logger.bind(component='cli')


@click.group()
@click.version_option(version=__version__, prog_name='org-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--directory-file',
    '-d',
    type=click.Path(exists=True),
    help='Work on a YAML directory snapshot instead of the directory service',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[str],
    directory_file: Optional[str],
    verbose: bool,
) -> None:
    """Organization Migration Tool - Move users and teams into and out of organizations."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    if directory_file:
        ctx.obj['directory_file'] = directory_file
    ctx.obj['verbose'] = verbose

    # Basic logging until the config file is loaded
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Organization Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your directory service details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command('migrate-user')
@click.option('--user-id', type=int, help='ID of the user to migrate')
@click.option('--username', help='Standalone username of the user to migrate')
@click.option('--org-id', type=int, required=True, help='Target organization ID')
@click.option(
    '--org-username',
    help='Username inside the organization (derived from the email if omitted)',
)
@click.option(
    '--role',
    type=click.Choice([role.value for role in MembershipRole], case_sensitive=False),
    help='Organization membership role',
)
@click.option(
    '--pending',
    is_flag=True,
    help='Leave the organization membership unaccepted',
)
@click.pass_context
def migrate_user(
    ctx: click.Context,
    user_id: Optional[int],
    username: Optional[str],
    org_id: int,
    org_username: Optional[str],
    role: Optional[str],
    pending: bool,
) -> None:
    """Move a standalone user and their teams into an organization."""
    request = MigrationRequest(
        operation=MigrationOperation.MIGRATE_USER,
        target_org_id=org_id,
        user_id=user_id,
        username=username,
        target_org_username=org_username,
        role=role,
        accepted=False if pending else None,
    )

    result = _run_request(ctx, request)
    console.print(
        f'[green]✓[/green] Migrated user {result.entity_id} to Org: {org_id} '
        f'as {result.metadata.get("username")}'
    )


@cli.command('move-team')
@click.option('--team-id', type=int, required=True, help='Team to move')
@click.option('--org-id', type=int, required=True, help='Target organization ID')
@click.option(
    '--move-members',
    is_flag=True,
    help='Also migrate every member of the team into the organization',
)
@click.pass_context
def move_team(ctx: click.Context, team_id: int, org_id: int, move_members: bool) -> None:
    """Move a team into an organization."""
    request = MigrationRequest(
        operation=MigrationOperation.MOVE_TEAM,
        target_org_id=org_id,
        team_id=team_id,
        move_members=move_members,
    )

    _run_request(ctx, request)
    message = f'Added team {team_id} to Org: {org_id}'
    if move_members:
        message += ' along with the members'
    console.print(f'[green]✓[/green] {message}')


@cli.command('remove-team')
@click.option('--team-id', type=int, required=True, help='Team to remove')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.pass_context
def remove_team(ctx: click.Context, team_id: int, org_id: int) -> None:
    """Detach a team from an organization."""
    request = MigrationRequest(
        operation=MigrationOperation.REMOVE_TEAM,
        target_org_id=org_id,
        team_id=team_id,
    )

    _run_request(ctx, request)
    console.print(f'[green]✓[/green] Removed team {team_id} from {org_id}')


@cli.command('remove-user')
@click.option('--user-id', type=int, required=True, help='User to revert')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.pass_context
def remove_user(ctx: click.Context, user_id: int, org_id: int) -> None:
    """Revert a user's migration into an organization."""
    request = MigrationRequest(
        operation=MigrationOperation.REMOVE_USER,
        target_org_id=org_id,
        user_id=user_id,
    )

    _run_request(ctx, request)
    console.print('[green]✓[/green] Reverted')


@cli.command()
@click.argument('plan_file', type=click.Path(exists=True))
@click.option('--max-workers', type=int, help='Requests run concurrently')
@click.option(
    '--continue-on-error/--stop-on-error',
    default=None,
    help='Keep applying the plan after a failed request',
)
@click.pass_context
def apply(
    ctx: click.Context,
    plan_file: str,
    max_workers: Optional[int],
    continue_on_error: Optional[bool],
) -> None:
    """Apply a YAML plan of migration requests."""
    console.print(
        Panel.fit(
            '[bold blue]Organization Migration Tool[/bold blue]\n'
            f'Applying plan {plan_file}...',
            border_style='blue',
        )
    )

    try:
        plan = MigrationPlan.from_file(plan_file)
        engine, config = _create_engine(ctx)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load plan: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    # Command line beats the plan file, which beats the config file
    if max_workers is not None:
        plan.max_workers = max_workers
    elif 'max_workers' not in plan.__fields_set__ and config is not None:
        plan.max_workers = config.migration.max_workers
    if continue_on_error is not None:
        plan.continue_on_error = continue_on_error
    elif 'continue_on_error' not in plan.__fields_set__ and config is not None:
        plan.continue_on_error = config.migration.continue_on_error

    orchestrator = MigrationOrchestrator(engine)
    summary = asyncio.run(_execute(ctx, engine, orchestrator.execute_plan(plan)))

    _display_plan_summary(summary)

    if not summary.success:
        console.print('[red]✗[/red] Plan finished with failures')
        sys.exit(1)
    console.print('[green]✓[/green] Plan applied successfully')


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the configuration and directory connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]Organization Migration Tool[/bold cyan]\n'
            'Validating configuration...',
            border_style='cyan',
        )
    )

    try:
        engine, _ = _create_engine(ctx)

        if not engine.test_connectivity():
            raise ConnectionError('Cannot connect to the directory service')

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]Organization Migration Tool[/bold magenta]\n'
            'Migration Status',
            border_style='magenta',
        )
    )

    try:
        directory_file = ctx.obj.get('directory_file')
        config = _load_config(ctx, required=not directory_file)
        if config is not None:
            _setup_logging_with_config(ctx, config)

        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        if config is not None:
            table.add_row('Directory URL', config.directory.url)
            table.add_row('API Version', config.directory.api_version)
            table.add_row('Webapp URL', config.organizations.webapp_url)
            table.add_row(
                'Subdomain Suffix', config.organizations.resolved_subdomain_suffix()
            )
            table.add_row('Default Role', config.migration.default_role.value)
            table.add_row(
                'Accept Memberships', '✓' if config.migration.default_accepted else '✗'
            )
            table.add_row('Max Workers', str(config.migration.max_workers))
            table.add_row(
                'Continue On Error', '✓' if config.migration.continue_on_error else '✗'
            )
        if directory_file:
            snapshot = InMemoryDirectoryStore.from_yaml(directory_file).snapshot()
            table.add_row('Directory File', directory_file)
            for section, records in snapshot.items():
                table.add_row(f'  {section.title()}', str(len(records)))

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context, required: bool = True) -> Optional[Config]:
    """Load configuration from file or environment.

    With ``required`` unset, a missing configuration yields None.
    """
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    default_paths = ['config.yaml', 'config.yml', '.org-migrate.yaml']
    for path in default_paths:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except Exception:
        if not required:
            return None
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            '"org-migrate init" to create one.'
        )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _create_engine(ctx: click.Context):
    """Build the engine for this invocation.

    Returns:
        Tuple of the engine and the loaded configuration, which may be None
        when working on a directory file without one
    """
    directory_file = ctx.obj.get('directory_file')
    config = _load_config(ctx, required=not directory_file)
    if config is not None:
        _setup_logging_with_config(ctx, config)

    if directory_file:
        store = InMemoryDirectoryStore.from_yaml(directory_file)
        engine = MigrationEngine(
            store,
            organizations=config.organizations if config else None,
            migration=config.migration if config else None,
        )
        return engine, config

    return MigrationEngine.from_config(config), config


async def _execute(ctx: click.Context, engine: MigrationEngine, coro: Awaitable):
    """Await ``coro`` and release the engine, saving the directory file."""
    try:
        return await coro
    finally:
        await engine.close()
        directory_file = ctx.obj.get('directory_file')
        if directory_file:
            # Steps commit individually, so partial progress is saved too
            engine.store.to_yaml(directory_file)


def _run_request(ctx: click.Context, request: MigrationRequest) -> MigrationResult:
    """Run a single request, exiting with status 1 on failure."""
    try:
        engine, _ = _create_engine(ctx)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load configuration: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    try:
        result = asyncio.run(_execute(ctx, engine, engine.run(request)))
    except MigrationError as e:
        if e.status_code > 300:
            cli_logger.error(f'{request.describe()} failed: {e.message}')
        else:
            cli_logger.warning(f'{request.describe()} failed: {e.message}')
        _display_error(request, e)
        sys.exit(1)

    for warning in result.warnings:
        console.print(f'[yellow]! {warning}[/yellow]')
    return result


def _display_error(request: MigrationRequest, error: MigrationError) -> None:
    console.print(f'[red]✗[/red] {error.message}')
    details = f'status {error.status_code}'
    if error.step is not None:
        details += f', failed at step {error.step.value}'
    if error.result is not None and error.result.completed_steps:
        completed = ', '.join(step.value for step in error.result.completed_steps)
        details += f', completed: {completed}'
    console.print(f'[dim]{request.describe()}: {details}[/dim]')


def _display_plan_summary(summary: MigrationSummary) -> None:
    """Display plan results."""
    table = Table(title='Migration Summary')
    table.add_column('Operation', style='cyan')
    table.add_column('Completed', style='green')
    table.add_column('Partial', style='yellow')
    table.add_column('Failed', style='red')
    table.add_column('Skipped', style='blue')

    for operation, counts in summary.counts_by_operation().items():
        table.add_row(
            operation,
            str(counts.get('completed', 0)),
            str(counts.get('partial', 0)),
            str(counts.get('failed', 0)),
            str(counts.get('pending', 0)),
        )

    table.add_row(
        'Total',
        str(summary.successful),
        str(summary.partial),
        str(summary.failed),
        str(summary.skipped),
    )
    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Duration:[/blue] {duration}')

    warnings = [w for result in summary.results for w in result.warnings]
    errors = [
        f'{r.entity_type} {r.entity_id}: {r.error_message}'
        for r in summary.results
        if r.error_message
    ]

    if warnings:
        console.print(f'\n[yellow]Warnings ({len(warnings)}):[/yellow]')
        for warning in warnings[:5]:
            console.print(f'  • {warning}')
        if len(warnings) > 5:
            console.print(f'  ... and {len(warnings) - 5} more warnings')

    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for error in errors[:5]:
            console.print(f'  • {error}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
