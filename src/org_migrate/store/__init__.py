"""Directory store backends."""

from .base import DirectoryStore
from .exceptions import RecordNotFoundError, StoreError, UniqueConstraintError
from .memory import InMemoryDirectoryStore
from .rest import RestDirectoryStore

__all__ = [
    'DirectoryStore',
    'InMemoryDirectoryStore',
    'RestDirectoryStore',
    'StoreError',
    'RecordNotFoundError',
    'UniqueConstraintError',
]
