"""Storage-specific exceptions for the tablekit engine."""

from typing import Any


class StorageError(Exception):
    """Base exception for all storage operations.

    This is the parent class for all storage-related errors,
    allowing callers to catch all storage issues with a single except clause.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        """Initialize storage error.

        Args:
            message: Human-readable error description
            cause: Optional underlying exception that caused this error
        """
        super().__init__(message)
        self.cause = cause


class StorageConfigurationError(StorageError):
    """Error in storage configuration.

    Raised when:
    - The database URL is missing or malformed
    - The database driver is not installed
    """

    pass


class StorageOperationError(StorageError):
    """Error performing a storage operation.

    Raised when a write fails and the surrounding transaction must roll back.
    """

    pass


class StorageQueryError(StorageError):
    """Error executing a storage query.

    Raised when:
    - A listing references a relationship or detail that does not exist
    - Query execution fails in the database
    """

    pass


class RecordNotFoundError(StorageError):
    """The requested record does not exist (or is soft-deleted)."""

    def __init__(self, model: str, record_id: Any):
        super().__init__(f"Record '{record_id}' not found for model '{model}'")
        self.model = model
        self.record_id = record_id


class RelationshipProcessingError(StorageOperationError):
    """A relationship action failed while processing a lifecycle event."""

    def __init__(
        self,
        model: str,
        relationship: str,
        record_id: Any,
        cause: Exception | None = None,
    ):
        super().__init__(
            f"Failed to process relationship '{relationship}' for "
            f"{model}/{record_id}: {cause}",
            cause,
        )
        self.model = model
        self.relationship = relationship
        self.record_id = record_id


class CascadeDeleteError(StorageOperationError):
    """Removing dependent child rows failed during a parent delete."""

    def __init__(
        self,
        model: str,
        child_model: str,
        parent_id: Any,
        cause: Exception | None = None,
    ):
        super().__init__(
            f"Failed to cascade delete '{child_model}' rows of {model}/{parent_id}: {cause}",
            cause,
        )
        self.model = model
        self.child_model = child_model
        self.parent_id = parent_id
