"""Directory store exceptions."""

from typing import Any, Optional, Sequence


class StoreError(Exception):
    """Base exception for directory store failures."""

    pass


class RecordNotFoundError(StoreError):
    """A write targeted a record that does not exist."""

    def __init__(self, entity: str, key: Any):
        super().__init__(f'{entity} {key} not found')
        self.entity = entity
        self.key = key


class UniqueConstraintError(StoreError):
    """A write would break one of the store's uniqueness constraints."""

    def __init__(
        self,
        message: str,
        fields: Sequence[str] = (),
        value: Optional[Any] = None,
    ):
        """Initialize unique constraint error.

        Args:
            message: Error message
            fields: Fields making up the violated constraint
            value: Conflicting value, when known
        """
        super().__init__(message)
        self.fields = tuple(fields)
        self.value = value
