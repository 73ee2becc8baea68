"""Transactional record writes with relationship actions and cascades.

Each write runs in one database transaction together with its relationship
actions and, for deletes, the cascade of child rows. A failure anywhere in
the chain rolls the whole write back.
"""

from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import TablekitConfig
from ..core import OperationLogger, RelationshipEvent, SchemaService, get_logger
from .cascade import CascadeDeleteEngine
from .database import transaction
from .exceptions import RecordNotFoundError
from .models import DeleteResult, ListingOptions, RelationshipListing
from .relationship_processor import RelationshipActionProcessor
from .relationship_query import RelationshipQueryEngine

logger = get_logger(__name__)


class RecordService:
    """Create, update, delete and relationship listing for schema models."""

    def __init__(
        self,
        engine: AsyncEngine,
        schema_service: SchemaService,
        current_user: Callable[[], Any] | None = None,
        settings: TablekitConfig | None = None,
    ):
        """Initialize the service.

        Args:
            engine: Async database engine
            schema_service: Source of normalized schemas and configured models
            current_user: Returns the acting user's id for pivot placeholders
            settings: Listing configuration; the global configuration by default
        """
        self.engine = engine
        self.schema_service = schema_service
        self.processor = RelationshipActionProcessor(current_user)
        self.cascade_engine = CascadeDeleteEngine(schema_service)
        self.query_engine = RelationshipQueryEngine(schema_service, settings)

    async def create(
        self, model: str, data: dict[str, Any], connection: str | None = None
    ) -> dict[str, Any]:
        """Insert a record and run its ``on_create`` relationship actions.

        Returns:
            The inserted row
        """
        schema = await self.schema_service.get_schema(model, connection)
        instance = self.schema_service.model_factory.create(schema)

        with OperationLogger(logger, "create_record", model=model):
            async with transaction(self.engine) as conn:
                record = await instance.create(conn, data)
                record_id = record[instance.primary_key]
                await self.processor.process(
                    conn, instance, schema, record_id, data, RelationshipEvent.ON_CREATE
                )

        return record

    async def update(
        self,
        model: str,
        record_id: Any,
        data: dict[str, Any],
        connection: str | None = None,
    ) -> dict[str, Any]:
        """Update a record and run its ``on_update`` relationship actions.

        Returns:
            The updated row

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        schema = await self.schema_service.get_schema(model, connection)
        instance = self.schema_service.model_factory.create(schema)

        with OperationLogger(logger, "update_record", model=model, record_id=record_id):
            async with transaction(self.engine) as conn:
                if await instance.find(conn, record_id) is None:
                    raise RecordNotFoundError(model, record_id)

                await instance.update(conn, record_id, data)
                await self.processor.process(
                    conn, instance, schema, record_id, data, RelationshipEvent.ON_UPDATE
                )
                record = await instance.find(conn, record_id)

        return record or {}

    async def delete(
        self,
        model: str,
        record_id: Any,
        soft: bool | None = None,
        connection: str | None = None,
    ) -> DeleteResult:
        """Delete a record with its relationship actions and child rows.

        ``on_delete`` actions run first, then child rows are cascaded, then
        the record itself is removed.

        Args:
            soft: Soft delete the record; defaults to the schema's
                ``soft_delete`` setting. Ignored when the model has no
                soft-delete column.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        schema = await self.schema_service.get_schema(model, connection)
        instance = self.schema_service.model_factory.create(schema)
        use_soft = instance.has_soft_deletes() if soft is None else soft and instance.has_soft_deletes()

        with OperationLogger(
            logger, "delete_record", model=model, record_id=record_id, soft=use_soft
        ):
            async with transaction(self.engine) as conn:
                if await instance.find(conn, record_id) is None:
                    raise RecordNotFoundError(model, record_id)

                await self.processor.process(
                    conn, instance, schema, record_id, {}, RelationshipEvent.ON_DELETE
                )
                cascaded = await self.cascade_engine.cascade(
                    conn, schema, record_id, use_soft, connection
                )

                if use_soft:
                    await instance.soft_delete(conn, record_id)
                else:
                    await instance.delete(conn, record_id)

        return DeleteResult(record_id=record_id, soft=use_soft, cascaded=cascaded)

    async def list_related(
        self,
        model: str,
        record_id: Any,
        relationship: str,
        options: ListingOptions | None = None,
        connection: str | None = None,
    ) -> RelationshipListing:
        """List one page of a record's related rows."""
        async with self.engine.connect() as conn:
            return await self.query_engine.list_related(
                conn, model, record_id, relationship, options, connection
            )

    async def list_details(
        self,
        model: str,
        record_id: Any,
        detail_model: str,
        options: ListingOptions | None = None,
        connection: str | None = None,
    ) -> RelationshipListing:
        """List one page of a record's detail child rows."""
        async with self.engine.connect() as conn:
            return await self.query_engine.list_details(
                conn, model, record_id, detail_model, options, connection
            )
