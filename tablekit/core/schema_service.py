"""Schema service: the single entry point of the schema pipeline.

Loads a schema document, validates it, applies defaults, normalizes it,
adds default actions and caches the result. Every other component obtains
schemas through this service.
"""

from typing import Any

from ..config import TablekitConfig
from ..config import config as default_config
from .logging import get_logger
from .model_factory import DynamicModel, DynamicModelFactory
from .schema import NormalizedSchema
from .schema_actions import SchemaActionManager
from .schema_cache import MemoryCacheStore, SchemaCache
from .schema_filter import SchemaFilter
from .schema_loader import SchemaLoader
from .schema_normalizer import SchemaNormalizer
from .schema_translator import SchemaTranslator, Translator
from .schema_validator import SchemaValidator

logger = get_logger(__name__)


class SchemaService:
    """Orchestrates loading, validation, normalization and caching of schemas."""

    def __init__(
        self,
        loader: SchemaLoader | None = None,
        validator: SchemaValidator | None = None,
        normalizer: SchemaNormalizer | None = None,
        cache: SchemaCache | None = None,
        filter: SchemaFilter | None = None,
        action_manager: SchemaActionManager | None = None,
        translator: SchemaTranslator | Translator | None = None,
        model_factory: DynamicModelFactory | None = None,
        settings: TablekitConfig | None = None,
    ):
        """Initialize the service.

        Collaborators that are not given are built from ``settings`` (the
        global configuration by default).
        """
        settings = settings or default_config
        debug = settings.debug_mode

        self.settings = settings
        self.loader = loader or SchemaLoader(settings.schema_path)
        self.validator = validator or SchemaValidator()
        self.normalizer = normalizer or SchemaNormalizer()
        self.cache = cache or SchemaCache(
            store=MemoryCacheStore() if settings.cache_enabled else None,
            ttl=settings.cache_ttl,
            enabled=settings.cache_enabled,
            debug=debug,
        )
        self.filter = filter or SchemaFilter(debug=debug)
        self.action_manager = action_manager or SchemaActionManager(self.validator, debug=debug)
        if translator is None or isinstance(translator, SchemaTranslator):
            self.translator = translator or SchemaTranslator(debug=debug)
        else:
            self.translator = SchemaTranslator(translator, debug=debug)
        self.model_factory = model_factory or DynamicModelFactory()

    async def get_schema(self, model: str, connection: str | None = None) -> NormalizedSchema:
        """Get the normalized schema for a model.

        Args:
            model: The model name
            connection: Optional connection name; a connection-specific
                document takes precedence over the default one

        Returns:
            The normalized schema, including default actions

        Raises:
            SchemaNotFoundError: If no document exists for the model
            SchemaLoadError: If the document cannot be parsed
            SchemaValidationError: If the document is malformed
        """
        cached = await self.cache.get(model, connection)
        if cached is not None:
            return cached

        loaded = await self.loader.load_schema(model, connection)
        schema = loaded.document

        self.validator.validate(schema, model)

        schema = self.loader.apply_defaults(schema)
        if loaded.from_connection_dir and "connection" not in schema:
            schema["connection"] = connection

        schema = self.normalizer.normalize(schema)
        schema = self.action_manager.add_default_actions(schema)

        await self.cache.set(schema, model, connection)

        logger.info(
            "Schema loaded",
            model=model,
            connection=connection,
            path=str(loaded.path),
            fields=len(schema["fields"]),
            relationships=len(schema.get("relationships") or []),
        )
        return schema

    async def clear_cache(self, model: str, connection: str | None = None) -> None:
        """Invalidate the cached schema of one model."""
        await self.cache.clear(model, connection)

    async def clear_all_cache(self) -> None:
        """Invalidate every cached schema."""
        await self.cache.clear_all()

    def filter_schema_for_context(
        self, schema: NormalizedSchema, context: str | None = None
    ) -> NormalizedSchema:
        """Project a schema onto one or more contexts."""
        return self.filter.filter_for_context(schema, context)

    async def filter_schema_with_related(
        self,
        model: str,
        context: str | None = None,
        connection: str | None = None,
        related_context: str = "list",
    ) -> dict[str, Any]:
        """Load a schema and every related schema the context needs.

        Detail views render child tables and relationship listings, so the
        schemas of those models are resolved and filtered in the same call.

        Returns:
            ``{"schema": filtered, "related_schemas": {model: filtered}}``
        """
        schema = await self.get_schema(model, connection)
        related: dict[str, NormalizedSchema] = {}

        for related_model in self.filter.related_models(schema, context):
            if related_model == model:
                continue
            related_schema = await self.get_schema(related_model, connection)
            related[related_model] = self.filter.filter_for_context(
                related_schema, related_context
            )

        return {
            "schema": self.filter.filter_for_context(schema, context),
            "related_schemas": related,
        }

    def get_actions(self, schema: NormalizedSchema, scope: str) -> list[dict[str, Any]]:
        """Get the schema's actions visible in a scope (``list``/``detail``)."""
        return self.action_manager.filter_actions_by_scope(schema.get("actions") or [], scope)

    def translate_schema(self, schema: NormalizedSchema) -> NormalizedSchema:
        """Resolve translation keys in a schema."""
        return self.translator.translate(schema)

    def get_validation_rules(
        self, schema: NormalizedSchema, context: str = "create"
    ) -> dict[str, dict[str, Any]]:
        """Get validation rules of fields editable in a form context."""
        return self.filter.validation_rules(schema, context)

    async def get_model_instance(
        self, model: str, connection: str | None = None
    ) -> DynamicModel:
        """Get a data-access object configured for a model."""
        schema = await self.get_schema(model, connection)
        return self.model_factory.create(schema)
