"""Migration engine, steps and orchestration."""

from .exceptions import (
    MigrationError,
    InvalidArgumentError,
    SlugBackfillError,
    NotFoundError,
    ConflictError,
    NotAnOrganizationError,
    InternalError,
)
from .steps import (
    MigrationOperation,
    MigrationStatus,
    MigrationStep,
    MigrationResult,
    StepRunner,
)
from .requests import MigrationRequest
from .resolver import OrganizationResolver
from .redirects import RedirectMaintainer
from .engine import MigrationEngine
from .orchestrator import MigrationOrchestrator, MigrationPlan, MigrationSummary

__all__ = [
    'MigrationError',
    'InvalidArgumentError',
    'SlugBackfillError',
    'NotFoundError',
    'ConflictError',
    'NotAnOrganizationError',
    'InternalError',
    'MigrationOperation',
    'MigrationStatus',
    'MigrationStep',
    'MigrationResult',
    'StepRunner',
    'MigrationRequest',
    'OrganizationResolver',
    'RedirectMaintainer',
    'MigrationEngine',
    'MigrationOrchestrator',
    'MigrationPlan',
    'MigrationSummary',
]
