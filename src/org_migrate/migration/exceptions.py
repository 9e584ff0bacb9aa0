"""Migration error taxonomy.

Every failure raised by the engine is a :class:`MigrationError` carrying an
HTTP-like ``status_code``: 4xx for caller errors, 5xx for unexpected ones.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .steps import MigrationResult, MigrationStep


class MigrationError(Exception):
    """Base exception for migration failures."""

    status_code = 500
    # Non-fatal errors are recorded as warnings and the operation continues
    fatal = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize migration error.

        Args:
            message: Human readable error message
            status_code: Overrides the class status code
        """
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.step: Optional['MigrationStep'] = None
        self.result: Optional['MigrationResult'] = None


class InvalidArgumentError(MigrationError):
    """Malformed or contradictory input, or required data missing."""

    status_code = 400


class SlugBackfillError(InvalidArgumentError):
    """The organization has neither a slug nor a requested slug."""

    fatal = False


class NotFoundError(MigrationError):
    """A referenced user, team or organization does not exist."""

    status_code = 404


class ConflictError(MigrationError):
    """Uniqueness or ownership clash."""

    status_code = 409


class NotAnOrganizationError(MigrationError):
    """The target team is not tagged as an organization."""

    status_code = 400


class InternalError(MigrationError):
    """Unexpected failure, usually from the directory store."""

    status_code = 500
