"""Schema-driven relationship actions on record lifecycle events.

A relationship entry can declare ``actions`` keyed by lifecycle event::

    relationships:
      - name: roles
        pivot_table: role_users
        foreign_key: user_id
        related_key: role_id
        actions:
          on_create:
            attach:
              - related_id: 1
                pivot_data: {created_at: now}
          on_update:
            sync: role_ids
          on_delete:
            detach: all

The processor applies them to the pivot tables inside the caller's
transaction. Any failure is re-raised so the primary write rolls back with
the relationship side effects.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from ..core import DynamicModel, NormalizedSchema, RelationQuery, RelationshipEvent, get_logger
from .exceptions import RelationshipProcessingError

logger = get_logger(__name__)

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


class RelationshipActionProcessor:
    """Applies declared relationship actions for a lifecycle event."""

    def __init__(self, current_user: Callable[[], Any] | None = None):
        """Initialize the processor.

        Args:
            current_user: Returns the acting user's id, or None when there is
                no authenticated user
        """
        self.current_user = current_user

    async def process(
        self,
        conn: AsyncConnection,
        model: DynamicModel,
        schema: NormalizedSchema,
        record_id: Any,
        data: dict[str, Any],
        event: RelationshipEvent | str,
    ) -> None:
        """Process every relationship action declared for an event.

        Args:
            conn: Connection of the enclosing transaction
            model: Model configured from ``schema``
            schema: The normalized schema of the record's model
            record_id: Primary key of the record the event happened to
            data: Input data of the write (read by ``sync``)
            event: on_create, on_update or on_delete

        Raises:
            RelationshipProcessingError: If any pivot operation fails
        """
        event = RelationshipEvent(event)

        for relationship in schema.get("relationships") or []:
            action = (relationship.get("actions") or {}).get(event.value)
            if not isinstance(action, dict):
                continue

            name = relationship.get("name")
            if not name:
                logger.warning(
                    "Skipping relationship without name",
                    model=schema.get("model"),
                    event=event.value,
                )
                continue

            try:
                query = model.relationship(name)

                if isinstance(action.get("attach"), list):
                    await self._attach(conn, query, schema, record_id, action["attach"], event)
                elif "attach" in action:
                    logger.warning(
                        "Invalid attach configuration",
                        model=schema.get("model"),
                        relationship=name,
                        event=event.value,
                        config=action["attach"],
                    )

                if event is RelationshipEvent.ON_UPDATE and action.get("sync"):
                    await self._sync(conn, query, schema, record_id, action["sync"], data)

                if "detach" in action:
                    await self._detach(conn, query, schema, record_id, action["detach"], event)
            except Exception as e:
                logger.error(
                    "Failed to process relationship action",
                    model=schema.get("model"),
                    relationship=name,
                    record_id=record_id,
                    event=event.value,
                    error=str(e),
                )
                raise RelationshipProcessingError(
                    schema.get("model", "unknown"), name, record_id, e
                ) from e

    def process_pivot_data(self, pivot_data: dict[str, Any]) -> dict[str, Any]:
        """Substitute placeholder values in pivot data.

        - ``now``: current timestamp (YYYY-MM-DD HH:MM:SS)
        - ``current_date``: current date (YYYY-MM-DD)
        - ``current_user``: id of the acting user, or None
        """
        processed: dict[str, Any] = {}
        for key, value in pivot_data.items():
            if value == "now":
                processed[key] = datetime.now().strftime(DATETIME_FORMAT)
            elif value == "current_date":
                processed[key] = datetime.now().strftime(DATE_FORMAT)
            elif value == "current_user":
                processed[key] = self.current_user() if self.current_user else None
            else:
                processed[key] = value
        return processed

    async def _attach(
        self,
        conn: AsyncConnection,
        query: RelationQuery,
        schema: NormalizedSchema,
        record_id: Any,
        items: list[Any],
        event: RelationshipEvent,
    ) -> None:
        for item in items:
            if not isinstance(item, dict) or item.get("related_id") is None:
                logger.warning(
                    "Invalid attach configuration",
                    model=schema.get("model"),
                    relationship=query.descriptor.name,
                    event=event.value,
                )
                continue

            pivot_data = self.process_pivot_data(item.get("pivot_data") or {})
            await query.attach(conn, record_id, item["related_id"], pivot_data)
            logger.debug(
                "Attached related record",
                model=schema.get("model"),
                relationship=query.descriptor.name,
                related_id=item["related_id"],
            )

    async def _sync(
        self,
        conn: AsyncConnection,
        query: RelationQuery,
        schema: NormalizedSchema,
        record_id: Any,
        sync_config: Any,
        data: dict[str, Any],
    ) -> None:
        field_name = sync_config if isinstance(sync_config, str) else f"{query.descriptor.name}_ids"
        if data.get(field_name) is None:
            logger.debug(
                "Sync field not present in data, skipping",
                model=schema.get("model"),
                relationship=query.descriptor.name,
                field=field_name,
            )
            return

        value = data[field_name]
        ids = value if isinstance(value, list | tuple) else [value]
        ids = [related_id for related_id in ids if related_id not in (None, "")]

        result = await query.sync(conn, record_id, ids)
        logger.debug(
            "Synced relationship",
            model=schema.get("model"),
            relationship=query.descriptor.name,
            field=field_name,
            attached=result["attached"],
            detached=result["detached"],
        )

    async def _detach(
        self,
        conn: AsyncConnection,
        query: RelationQuery,
        schema: NormalizedSchema,
        record_id: Any,
        detach_config: Any,
        event: RelationshipEvent,
    ) -> None:
        if detach_config == "all":
            removed = await query.detach(conn, record_id)
        elif isinstance(detach_config, list):
            removed = await query.detach(conn, record_id, detach_config)
        else:
            logger.warning(
                "Invalid detach configuration",
                model=schema.get("model"),
                relationship=query.descriptor.name,
                event=event.value,
                config=detach_config,
            )
            return

        logger.debug(
            "Detached related records",
            model=schema.get("model"),
            relationship=query.descriptor.name,
            removed=removed,
        )
