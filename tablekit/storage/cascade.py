"""Cascade removal of child rows declared in a schema's ``details``."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from ..core import (
    CascadeDeleteMode,
    DetailDefinition,
    NormalizedSchema,
    SchemaService,
    get_logger,
)
from ..core.schema import parse_details
from .exceptions import CascadeDeleteError

logger = get_logger(__name__)


class CascadeDeleteEngine:
    """Removes the child rows of a parent record before the parent is deleted.

    Each child row is soft deleted when the parent delete is soft, the child
    model supports soft deletes, and the detail's cascade mode is not
    ``hard``; otherwise it is physically deleted. Children are processed one
    level deep. Child rows that are already soft deleted keep their deletion
    time on a soft cascade and are removed on a hard one.
    """

    def __init__(self, schema_service: SchemaService):
        self.schema_service = schema_service

    async def cascade(
        self,
        conn: AsyncConnection,
        schema: NormalizedSchema,
        parent_id: Any,
        soft_delete: bool = False,
        connection: str | None = None,
    ) -> int:
        """Remove the children of one parent record.

        Must run inside the transaction that deletes the parent, before the
        parent row is removed.

        Args:
            conn: Connection of the enclosing transaction
            schema: The parent's normalized schema
            parent_id: Primary key value of the parent record
            soft_delete: Whether the parent is being soft deleted
            connection: Connection name the parent write was requested under;
                child schemas resolve against it

        Returns:
            Number of child rows removed

        Raises:
            CascadeDeleteError: If a child schema does not resolve or a child
                row cannot be removed
        """
        total = 0
        for detail in parse_details(schema):
            if not detail.cascade_delete:
                logger.debug(
                    "Cascade delete disabled for child",
                    model=schema.get("model"),
                    child_model=detail.model,
                )
                continue

            try:
                total += await self._cascade_child(
                    conn, schema, detail, parent_id, soft_delete, connection
                )
            except Exception as e:
                logger.error(
                    "Failed to delete child records",
                    model=schema.get("model"),
                    parent_id=parent_id,
                    child_model=detail.model,
                    foreign_key=detail.foreign_key,
                    error=str(e),
                )
                raise CascadeDeleteError(
                    schema.get("model", "unknown"), detail.model, parent_id, e
                ) from e

        return total

    async def _cascade_child(
        self,
        conn: AsyncConnection,
        schema: NormalizedSchema,
        detail: DetailDefinition,
        parent_id: Any,
        soft_delete: bool,
        connection: str | None,
    ) -> int:
        child = await self.schema_service.get_model_instance(
            detail.model, connection or schema.get("connection")
        )
        use_soft = (
            soft_delete
            and child.has_soft_deletes()
            and detail.cascade_delete_mode is not CascadeDeleteMode.HARD
        )

        # Trashed children are included so a hard delete leaves no orphans.
        rows = await child.where(conn, {detail.foreign_key: parent_id}, with_trashed=True)
        deleted = 0
        for row in rows:
            child_id = row[child.primary_key]
            if use_soft:
                if row.get(child.deleted_at_column) is not None:
                    continue
                await child.soft_delete(conn, child_id)
            else:
                await child.delete(conn, child_id)
            deleted += 1

        logger.debug(
            "Cascade delete completed for child model",
            model=schema.get("model"),
            parent_id=parent_id,
            child_model=detail.model,
            deleted_count=deleted,
            delete_type="soft" if use_soft else "hard",
        )
        return deleted
