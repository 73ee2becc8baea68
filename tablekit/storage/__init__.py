"""Storage and persistence layer for the tablekit engine."""

from .cascade import CascadeDeleteEngine
from .database import create_engine, transaction
from .exceptions import (
    CascadeDeleteError,
    RecordNotFoundError,
    RelationshipProcessingError,
    StorageConfigurationError,
    StorageError,
    StorageOperationError,
    StorageQueryError,
)
from .models import DeleteResult, ListingOptions, RelationshipListing
from .records import RecordService
from .relationship_processor import RelationshipActionProcessor
from .relationship_query import RelationshipQueryEngine

__all__ = [
    # Engines
    "CascadeDeleteEngine",
    "RecordService",
    "RelationshipActionProcessor",
    "RelationshipQueryEngine",
    # Database
    "create_engine",
    "transaction",
    # Models
    "DeleteResult",
    "ListingOptions",
    "RelationshipListing",
    # Exceptions
    "StorageError",
    "StorageConfigurationError",
    "StorageOperationError",
    "StorageQueryError",
    "RecordNotFoundError",
    "RelationshipProcessingError",
    "CascadeDeleteError",
]
