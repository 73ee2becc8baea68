"""Dynamic data-access objects configured from normalized schemas.

A :class:`DynamicModel` is a generic table gateway: after
:meth:`DynamicModel.configure_from_schema` it knows its table, primary key,
timestamp and soft-delete columns, writable columns, value casts and named
relationships, and behaves like a hand-written model for that table. All
database operations take an explicit ``AsyncConnection`` so that they join
the caller's transaction.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection

from .logging import get_logger
from .relationship_types import (
    RelationshipDescriptor,
    RelationshipKind,
    build_query,
    parse_relationship,
    pivot_clause,
)
from .schema import (
    DEFAULT_PRIMARY_KEY,
    NormalizedSchema,
    RelationshipNotFoundError,
    UnsupportedRelationshipError,
)

logger = get_logger(__name__)

DELETED_AT_COLUMN = "deleted_at"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _column_type(field_type: str) -> sa.types.TypeEngine:
    """Map a schema field type onto a SQLAlchemy column type."""
    if field_type in ("integer", "smartlookup"):
        return sa.Integer()
    if field_type == "float":
        return sa.Float()
    if field_type == "decimal":
        return sa.Numeric()
    if field_type == "boolean":
        return sa.Boolean()
    if field_type == "date":
        return sa.Date()
    if field_type == "datetime":
        return sa.DateTime()
    if field_type == "json":
        return sa.JSON()
    if field_type in ("text", "textarea"):
        return sa.Text()
    return sa.String()


def _cast_for(field_type: str) -> str | None:
    """Map a schema field type onto a value cast; None means no cast."""
    return {
        "integer": "integer",
        "float": "float",
        "decimal": "float",
        "boolean": "boolean",
        "json": "array",
        "date": "date",
        "datetime": "datetime",
    }.get(field_type)


def normalize_id(value: Any) -> Any:
    """Normalize an id from request data: digit strings become integers."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


class DynamicModel:
    """Generic data-access object for a table described by a schema."""

    def __init__(self) -> None:
        self.schema: NormalizedSchema = {}
        self.table_name: str | None = None
        self.primary_key = DEFAULT_PRIMARY_KEY
        self.connection: str | None = None
        self.timestamps = False
        self.deleted_at_column: str | None = None
        self.fillable: list[str] = []
        self.casts: dict[str, str] = {}
        self.table: sa.Table | None = None
        self.relationships: dict[str, RelationshipDescriptor] = {}

    def configure_from_schema(self, schema: NormalizedSchema) -> "DynamicModel":
        """Configure the model from a normalized schema.

        Sets the table, primary key, connection, timestamps, soft-delete
        column, fillable columns, casts and relationships.

        Args:
            schema: The normalized schema

        Returns:
            self, for chaining
        """
        self.schema = schema
        self.table_name = schema["table"]
        self.primary_key = schema.get("primary_key") or DEFAULT_PRIMARY_KEY
        self.connection = schema.get("connection")
        self.timestamps = bool(schema.get("timestamps", False))
        self.deleted_at_column = DELETED_AT_COLUMN if schema.get("soft_delete") else None

        fields: dict[str, Any] = schema.get("fields") or {}
        self.fillable = [
            name
            for name, field in fields.items()
            if not field.get("auto_increment") and field.get("editable", True) is not False
        ]
        self.casts = {}
        for name, field in fields.items():
            cast = _cast_for(field.get("type", "string"))
            if cast is not None:
                self.casts[name] = cast

        self.table = self._build_table(fields)
        self.relationships = {
            descriptor.name: descriptor
            for descriptor in map(parse_relationship, schema.get("relationships") or [])
        }

        logger.debug(
            "Model configured from schema",
            table=self.table_name,
            soft_delete=self.has_soft_deletes(),
            timestamps=self.timestamps,
            relationships=list(self.relationships),
        )
        return self

    def _build_table(self, fields: dict[str, Any]) -> sa.Table:
        columns: list[sa.Column] = []
        for name, field in fields.items():
            field_type = field.get("type", "string")
            if name == self.primary_key:
                columns.append(
                    sa.Column(
                        name,
                        _column_type(field_type),
                        primary_key=True,
                        autoincrement=bool(field.get("auto_increment", field_type == "integer")),
                    )
                )
            else:
                columns.append(sa.Column(name, _column_type(field_type), nullable=True))

        names = set(fields)
        if self.primary_key not in names:
            columns.insert(0, sa.Column(self.primary_key, sa.Integer(), primary_key=True))
        if self.timestamps:
            for name in (CREATED_AT_COLUMN, UPDATED_AT_COLUMN):
                if name not in names:
                    columns.append(sa.Column(name, sa.DateTime(), nullable=True))
        if self.deleted_at_column and self.deleted_at_column not in names:
            columns.append(sa.Column(self.deleted_at_column, sa.DateTime(), nullable=True))

        return sa.Table(self.table_name, sa.MetaData(), *columns)

    def has_relationship(self, name: str) -> bool:
        return name in self.relationships

    def get_relationship_config(self, name: str) -> RelationshipDescriptor | None:
        return self.relationships.get(name)

    def has_soft_deletes(self) -> bool:
        return bool(self.deleted_at_column)

    def relationship(self, name: str) -> "RelationQuery":
        """Get the query builder of a declared relationship.

        Raises:
            RelationshipNotFoundError: If no relationship with that name exists
        """
        descriptor = self.relationships.get(name)
        if descriptor is None:
            raise RelationshipNotFoundError(name, self.table_name or "")
        return RelationQuery(self, descriptor)

    @property
    def pk_column(self) -> sa.Column:
        return self._table.c[self.primary_key]

    @property
    def _table(self) -> sa.Table:
        if self.table is None:
            raise RuntimeError("Model is not configured; call configure_from_schema() first")
        return self.table

    def select(self, with_trashed: bool = False) -> sa.Select:
        """Base select of the table, excluding soft-deleted rows by default."""
        query = sa.select(self._table)
        if self.deleted_at_column and not with_trashed:
            query = query.where(self._table.c[self.deleted_at_column].is_(None))
        return query

    def fill(self, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only fillable keys of data and cast their values."""
        return {
            key: self.cast_value(key, value)
            for key, value in data.items()
            if key in self.fillable and key in self._table.c
        }

    def cast_value(self, key: str, value: Any) -> Any:
        """Cast a raw input value according to the column's cast."""
        cast = self.casts.get(key)
        if value is None or cast is None:
            return value

        if cast == "integer" and isinstance(value, str):
            return int(value) if value.strip() else None
        if cast == "float" and isinstance(value, str | Decimal):
            return float(value) if str(value).strip() else None
        if cast == "boolean" and isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        if cast == "boolean" and isinstance(value, int):
            return bool(value)
        if cast == "datetime" and isinstance(value, str):
            return datetime.fromisoformat(value) if value.strip() else None
        if cast == "date" and isinstance(value, datetime):
            return value.date()
        if cast == "date" and isinstance(value, str):
            return date.fromisoformat(value[:10]) if value.strip() else None
        return value

    async def find(
        self, conn: AsyncConnection, record_id: Any, with_trashed: bool = False
    ) -> dict[str, Any] | None:
        """Fetch one row by primary key, as a mapping."""
        result = await conn.execute(
            self.select(with_trashed).where(self.pk_column == normalize_id(record_id))
        )
        row = result.first()
        return dict(row._mapping) if row is not None else None

    async def where(
        self,
        conn: AsyncConnection,
        criteria: dict[str, Any],
        with_trashed: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch all rows whose columns equal the given values."""
        query = self.select(with_trashed)
        for column, value in criteria.items():
            query = query.where(self._table.c[column] == value)
        result = await conn.execute(query)
        return [dict(row._mapping) for row in result]

    async def create(self, conn: AsyncConnection, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a row from the fillable part of data and return it."""
        values = self.fill(data)
        if self.timestamps:
            now = datetime.now()
            values.setdefault(CREATED_AT_COLUMN, now)
            values.setdefault(UPDATED_AT_COLUMN, now)

        result = await conn.execute(sa.insert(self._table).values(**values))
        record_id = result.inserted_primary_key[0]
        if record_id is None:
            record_id = values.get(self.primary_key)

        record = await self.find(conn, record_id, with_trashed=True)
        logger.debug("Record created", table=self.table_name, record_id=record_id)
        return record if record is not None else {**values, self.primary_key: record_id}

    async def update(
        self, conn: AsyncConnection, record_id: Any, data: dict[str, Any]
    ) -> bool:
        """Update the fillable part of data on one row.

        Returns:
            True if a row was updated
        """
        values = self.fill(data)
        values.pop(self.primary_key, None)
        if self.timestamps:
            values.setdefault(UPDATED_AT_COLUMN, datetime.now())
        if not values:
            return await self.find(conn, record_id) is not None

        result = await conn.execute(
            sa.update(self._table)
            .where(self.pk_column == normalize_id(record_id))
            .values(**values)
        )
        return result.rowcount > 0

    async def delete(self, conn: AsyncConnection, record_id: Any) -> bool:
        """Physically delete one row, whether or not soft deletes are enabled."""
        result = await conn.execute(
            sa.delete(self._table).where(self.pk_column == normalize_id(record_id))
        )
        return result.rowcount > 0

    async def soft_delete(self, conn: AsyncConnection, record_id: Any) -> bool:
        """Mark one row deleted.

        Returns:
            False if the model has no soft-delete column or no row matched
        """
        if not self.deleted_at_column:
            return False
        result = await conn.execute(
            sa.update(self._table)
            .where(self.pk_column == normalize_id(record_id))
            .values({self.deleted_at_column: datetime.now()})
        )
        return result.rowcount > 0

    async def restore(self, conn: AsyncConnection, record_id: Any) -> bool:
        """Clear the deleted marker of one row."""
        if not self.deleted_at_column:
            return False
        result = await conn.execute(
            sa.update(self._table)
            .where(self.pk_column == normalize_id(record_id))
            .values({self.deleted_at_column: None})
        )
        return result.rowcount > 0


class RelationQuery:
    """Pivot operations and queries for one relationship of a model.

    Pivot mutation (attach, detach, sync) is only available on many-to-many
    relationships; a through relationship is read-only.
    """

    def __init__(self, model: DynamicModel, descriptor: RelationshipDescriptor):
        self.model = model
        self.descriptor = descriptor

    @property
    def kind(self) -> RelationshipKind:
        return self.descriptor.kind

    def build_query(
        self, related_table: sa.Table, parent_id: Any, related_primary_key: str = "id"
    ) -> sa.Select:
        """Build the select of related rows for a parent record."""
        return build_query(
            self.descriptor, related_table, normalize_id(parent_id), related_primary_key
        )

    async def related_ids(self, conn: AsyncConnection, parent_id: Any) -> list[Any]:
        """List the ids of related rows linked to the parent."""
        parent_id = normalize_id(parent_id)
        descriptor = self.descriptor

        if descriptor.kind is RelationshipKind.MANY_TO_MANY:
            pivot = pivot_clause(
                descriptor.pivot_table, descriptor.foreign_key, descriptor.related_key
            )
            query = sa.select(pivot.c[descriptor.related_key]).where(
                pivot.c[descriptor.foreign_key] == parent_id
            )
        else:
            first = pivot_clause(
                descriptor.first_pivot_table,
                descriptor.first_foreign_key,
                descriptor.first_related_key,
            ).alias("first_pivot")
            second = pivot_clause(
                descriptor.second_pivot_table,
                descriptor.second_foreign_key,
                descriptor.second_related_key,
            ).alias("second_pivot")
            query = (
                sa.select(second.c[descriptor.second_related_key])
                .select_from(
                    second.join(
                        first,
                        first.c[descriptor.first_related_key]
                        == second.c[descriptor.second_foreign_key],
                    )
                )
                .where(first.c[descriptor.first_foreign_key] == parent_id)
                .distinct()
            )

        result = await conn.execute(query)
        return list(dict.fromkeys(result.scalars()))

    async def attach(
        self,
        conn: AsyncConnection,
        parent_id: Any,
        related_id: Any,
        pivot_data: dict[str, Any] | None = None,
    ) -> None:
        """Insert a pivot row linking the parent to one related row."""
        descriptor = self._many_to_many("attach")
        pivot_data = pivot_data or {}
        pivot = pivot_clause(
            descriptor.pivot_table,
            descriptor.foreign_key,
            descriptor.related_key,
            *pivot_data,
        )
        await conn.execute(
            sa.insert(pivot).values(
                {
                    **pivot_data,
                    descriptor.foreign_key: normalize_id(parent_id),
                    descriptor.related_key: normalize_id(related_id),
                }
            )
        )

    async def detach(
        self, conn: AsyncConnection, parent_id: Any, related_ids: list[Any] | None = None
    ) -> int:
        """Delete pivot rows of the parent.

        Args:
            related_ids: Related ids to unlink; None unlinks every related row

        Returns:
            Number of pivot rows deleted
        """
        descriptor = self._many_to_many("detach")
        pivot = pivot_clause(
            descriptor.pivot_table, descriptor.foreign_key, descriptor.related_key
        )
        query = sa.delete(pivot).where(
            pivot.c[descriptor.foreign_key] == normalize_id(parent_id)
        )
        if related_ids is not None:
            if not related_ids:
                return 0
            query = query.where(
                pivot.c[descriptor.related_key].in_([normalize_id(i) for i in related_ids])
            )
        result = await conn.execute(query)
        return result.rowcount

    async def sync(
        self, conn: AsyncConnection, parent_id: Any, ids: list[Any]
    ) -> dict[str, list[Any]]:
        """Make the parent's related set exactly ``ids``.

        Ids not yet linked are attached, linked ids not in ``ids`` are
        detached, and ids in both are left untouched.

        Returns:
            ``{"attached": [...], "detached": [...]}``
        """
        self._many_to_many("sync")
        desired = list(dict.fromkeys(normalize_id(i) for i in ids))
        current = await self.related_ids(conn, parent_id)

        desired_keys = {str(i) for i in desired}
        current_keys = {str(i) for i in current}
        detached = [i for i in current if str(i) not in desired_keys]
        attached = [i for i in desired if str(i) not in current_keys]

        if detached:
            await self.detach(conn, parent_id, detached)
        for related_id in attached:
            await self.attach(conn, parent_id, related_id)

        return {"attached": attached, "detached": detached}

    def _many_to_many(self, operation: str):
        if self.descriptor.kind is not RelationshipKind.MANY_TO_MANY:
            raise UnsupportedRelationshipError(
                f"Cannot {operation} on relationship '{self.descriptor.name}': "
                f"{self.descriptor.kind.value} relationships are read-only"
            )
        return self.descriptor


class DynamicModelFactory:
    """Creates configured DynamicModel instances from normalized schemas."""

    def create(self, schema: NormalizedSchema) -> DynamicModel:
        return DynamicModel().configure_from_schema(schema)
