"""Core functionality: the schema pipeline and dynamic models."""

from .logging import (
    OperationLogger,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from .model_factory import DynamicModel, DynamicModelFactory, RelationQuery
from .relationship_types import (
    ManyToManyRelationship,
    RelationshipDescriptor,
    RelationshipKind,
    ThroughRelationship,
    build_query,
    parse_relationship,
)
from .schema import (
    CascadeDeleteMode,
    DetailDefinition,
    NormalizedSchema,
    RelationshipEvent,
    RelationshipNotFoundError,
    SchemaError,
    SchemaLoadError,
    SchemaNotFoundError,
    SchemaValidationError,
    UnsupportedRelationshipError,
)
from .schema_actions import SchemaActionManager
from .schema_cache import CacheEntry, CacheStore, MemoryCacheStore, SchemaCache
from .schema_filter import SchemaFilter
from .schema_loader import LoadedSchema, SchemaLoader
from .schema_normalizer import SchemaNormalizer
from .schema_service import SchemaService
from .schema_translator import MappingTranslator, SchemaTranslator, Translator
from .schema_validator import SchemaValidator

__all__ = [
    # Schema pipeline
    "SchemaActionManager",
    "SchemaFilter",
    "SchemaLoader",
    "LoadedSchema",
    "SchemaNormalizer",
    "SchemaService",
    "SchemaTranslator",
    "MappingTranslator",
    "Translator",
    "SchemaValidator",
    # Cache
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "SchemaCache",
    # Models and relationships
    "DynamicModel",
    "DynamicModelFactory",
    "RelationQuery",
    "ManyToManyRelationship",
    "RelationshipDescriptor",
    "RelationshipKind",
    "ThroughRelationship",
    "build_query",
    "parse_relationship",
    # Schema types and errors
    "CascadeDeleteMode",
    "DetailDefinition",
    "NormalizedSchema",
    "RelationshipEvent",
    "RelationshipNotFoundError",
    "SchemaError",
    "SchemaLoadError",
    "SchemaNotFoundError",
    "SchemaValidationError",
    "UnsupportedRelationshipError",
    # Logging
    "OperationLogger",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
]
