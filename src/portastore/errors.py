"""Shared error taxonomy.

Every provider maps its native failures onto these exceptions so the typed
facades behave the same regardless of backend. Native exceptions are kept as
``__cause__`` (``raise ... from err``) and never leak past a facade.
"""

from typing import Optional


class StorageError(Exception):
    """Base class for all portastore errors."""


class NotFoundError(StorageError):
    """The requested record does not exist."""


class DuplicateError(StorageError):
    """A record with the same unique key already exists."""


class ConflictError(StorageError):
    """The backend detected a concurrent modification."""


class ConstraintError(StorageError):
    """Generic integrity violation (foreign key, check, not null)."""


class InvalidKeyError(StorageError):
    """The provided key is malformed or empty."""


class ReadOnlyError(StorageError):
    """A write was attempted on a read-only connection."""


class TableExistsError(StorageError):
    """A table with the same name is already registered."""


class TableNotFoundError(StorageError):
    """The table is not registered."""


class UnsupportedError(StorageError):
    """The provider does not support the requested operation."""


class TTLNotSupportedError(UnsupportedError):
    """The key-value provider has no expiry support."""


class DimensionMismatchError(StorageError):
    """The vector dimension does not match the index."""


class InvalidVectorError(StorageError):
    """The vector is empty or contains non-finite values."""


class IndexNotReadyError(StorageError):
    """The vector index is not ready for operations."""


class InvalidQueryError(StorageError):
    """The filter or statement failed validation."""


class OperatorNotSupportedError(UnsupportedError):
    """A filter operator cannot be translated by the provider."""


class FilterNotSupportedError(UnsupportedError):
    """The provider cannot perform metadata-only filtering."""


class NoPrimaryKeyError(StorageError):
    """No field carries the primarykey constraint."""


class MultiplePrimaryKeysError(StorageError):
    """More than one field carries the primarykey constraint."""


class DecodeError(StorageError):
    """Stored data could not be decoded into the record type."""


class EncodeError(StorageError):
    """A value could not be encoded for storage."""


class HookError(StorageError):
    """A lifecycle hook returned an error.

    Attributes:
        phase: Hook that failed (``before_save``, ``after_load``, ...).
        committed: True when the underlying write, load or delete had
            already completed before the hook ran. The store is left as
            is; the hook outcome is reported separately.
    """

    def __init__(self, phase: str, committed: bool, message: Optional[str] = None):
        self.phase = phase
        self.committed = committed
        if message is None:
            if committed:
                message = f"{phase} hook failed after the operation committed"
            else:
                message = f"{phase} hook aborted the operation"
        super().__init__(message)
