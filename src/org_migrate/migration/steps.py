"""Named migration steps and the runner that executes them in order.

Each operation is an ordered list of ``(MigrationStep, action)`` pairs. Every
action commits on its own and is safe to repeat, so an interrupted operation
is recovered by running it again. The runner stops at the first fatal error
and records how far it got on the :class:`MigrationResult`.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from ..store.exceptions import UniqueConstraintError
from .exceptions import ConflictError, InternalError, MigrationError


class MigrationOperation(str, Enum):
    """Operations the engine can run."""

    MIGRATE_USER = 'migrate_user_to_org'
    MOVE_TEAM = 'move_team_to_org'
    REMOVE_TEAM = 'remove_team_from_org'
    REMOVE_USER = 'remove_user_from_org'


class MigrationStatus(str, Enum):
    """Migration status enumeration."""

    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    PARTIAL = 'partial'
    FAILED = 'failed'


class MigrationStep(str, Enum):
    """Named steps operations are built from."""

    VALIDATE = 'validate'
    # migrate_user_to_org
    UPDATE_USER = 'update_user'
    RELOCATE_TEAMS = 'relocate_teams'
    UPSERT_MEMBERSHIP = 'upsert_membership'
    ADD_REDIRECTS = 'add_redirects'
    BACKFILL_ORG_SLUG = 'backfill_org_slug'
    # move_team_to_org
    REPARENT_TEAM = 'reparent_team'
    MIGRATE_MEMBERS = 'migrate_members'
    # remove_team_from_org
    DETACH_TEAM = 'detach_team'
    REMOVE_REDIRECTS = 'remove_redirects'
    # remove_user_from_org
    DETACH_TEAMS = 'detach_teams'
    RESTORE_USER = 'restore_user'
    REMOVE_MEMBERSHIP = 'remove_membership'


StepAction = Callable[[], Awaitable[Any]]


class MigrationResult(BaseModel):
    """Result of a migration operation."""

    operation: MigrationOperation = Field(..., description='Operation that ran')
    entity_type: str = Field(..., description='Type of entity migrated')
    entity_id: str = Field(..., description='ID or name of the entity')
    target_org_id: int = Field(..., description='Organization involved')
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Migration status'
    )

    started_at: datetime = Field(
        default_factory=datetime.now, description='Migration start time'
    )
    completed_at: Optional[datetime] = Field(
        default=None, description='Migration completion time'
    )

    completed_steps: List[MigrationStep] = Field(
        default_factory=list, description='Steps that finished, in order'
    )
    failed_step: Optional[MigrationStep] = Field(
        default=None, description='Step that stopped the operation'
    )
    error_message: Optional[str] = Field(
        default=None, description='Error message if failed'
    )
    warnings: List[str] = Field(default_factory=list, description='Warning messages')

    metadata: Dict[str, Any] = Field(
        default_factory=dict, description='Additional metadata'
    )

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @property
    def success(self) -> bool:
        return self.status in (MigrationStatus.COMPLETED, MigrationStatus.PARTIAL)


class StepRunner:
    """Runs an operation's steps in order and keeps its result current."""

    def __init__(self, result: MigrationResult):
        """Initialize step runner.

        Args:
            result: Result record to update as steps complete
        """
        self.result = result
        self.logger = logger.bind(component='StepRunner')
        self._partial = False

    def warn(self, message: str) -> None:
        """Record a warning that does not affect the final status."""
        self.logger.warning(message)
        self.result.warnings.append(message)

    async def run(self, steps: Sequence[Tuple[MigrationStep, StepAction]]) -> MigrationResult:
        """Execute ``steps`` in order.

        Args:
            steps: Ordered ``(step, action)`` pairs

        Returns:
            The completed result

        Raises:
            MigrationError: The first fatal error, with ``step`` and ``result`` set
        """
        self.result.status = MigrationStatus.IN_PROGRESS

        for step, action in steps:
            self.logger.debug(
                f'{self.result.operation.value} {self.result.entity_type} '
                f'{self.result.entity_id}: {step.value}'
            )
            try:
                await action()
            except MigrationError as e:
                if not e.fatal:
                    self._partial = True
                    self.warn(e.message)
                    continue
                self._fail(step, e)
                raise
            except UniqueConstraintError as e:
                error = ConflictError(str(e))
                self._fail(step, error)
                raise error from e
            except Exception as e:
                error = InternalError(f'Step {step.value} failed: {e}')
                self._fail(step, error)
                raise error from e

            self.result.completed_steps.append(step)

        self.result.status = (
            MigrationStatus.PARTIAL if self._partial else MigrationStatus.COMPLETED
        )
        self.result.completed_at = datetime.now()
        return self.result

    def _fail(self, step: MigrationStep, error: MigrationError) -> None:
        self.result.status = MigrationStatus.FAILED
        self.result.failed_step = step
        self.result.error_message = error.message
        self.result.completed_at = datetime.now()
        error.step = step
        error.result = self.result
