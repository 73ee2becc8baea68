"""Paginated listings of related rows and of detail child rows.

Counts follow a fixed order: the total count is taken on the base query
before filters and search, the filtered count after them and before
paging, and the returned rows are the requested page. Rows are projected
onto the related model's listable fields so that fields hidden from list
views never leave the database layer.
"""

from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection

from ..config import TablekitConfig
from ..config import config as default_config
from ..core import (
    DynamicModel,
    OperationLogger,
    RelationshipNotFoundError,
    SchemaService,
    get_logger,
)
from ..core.model_factory import normalize_id
from ..core.schema import parse_details
from .exceptions import StorageQueryError
from .models import ListingOptions, RelationshipListing

logger = get_logger(__name__)

LIKE_ESCAPE = "\\"


class RelationshipQueryEngine:
    """Lists the related rows or detail rows of a parent record."""

    def __init__(self, schema_service: SchemaService, settings: TablekitConfig | None = None):
        self.schema_service = schema_service
        self.settings = settings or default_config

    async def list_related(
        self,
        conn: AsyncConnection,
        model: str,
        parent_id: Any,
        relationship: str,
        options: ListingOptions | None = None,
        connection: str | None = None,
    ) -> RelationshipListing:
        """List one page of a parent record's related rows.

        Args:
            conn: Database connection
            model: The parent model name
            parent_id: Primary key value of the parent record
            relationship: Name of the relationship declared on the parent
            options: Paging, sorting, filtering and search options
            connection: Optional connection name for schema resolution

        Returns:
            RelationshipListing with the page of rows and both counts

        Raises:
            StorageQueryError: If the relationship is not declared on the model
        """
        options = options or ListingOptions()
        parent = await self.schema_service.get_model_instance(model, connection)
        try:
            relation = parent.relationship(relationship)
        except RelationshipNotFoundError as e:
            raise StorageQueryError(str(e), e) from e

        related = await self.schema_service.get_model_instance(
            relation.descriptor.model, connection
        )

        with OperationLogger(
            logger,
            "list_related",
            model=model,
            relationship=relationship,
            kind=relation.kind.value,
            parent_id=parent_id,
        ) as op:
            query = relation.build_query(related.table, parent_id, related.primary_key)
            if related.has_soft_deletes():
                query = query.where(related.table.c[related.deleted_at_column].is_(None))

            listing = await self._fetch_listing(
                conn, query, related, options, self.listable_fields(related)
            )
            op.log_progress(
                "Related rows fetched",
                count=listing.count,
                count_filtered=listing.count_filtered,
                rows=len(listing.rows),
            )

        return listing

    async def list_details(
        self,
        conn: AsyncConnection,
        model: str,
        parent_id: Any,
        detail_model: str,
        options: ListingOptions | None = None,
        connection: str | None = None,
    ) -> RelationshipListing:
        """List one page of the child rows declared in a parent's ``details``.

        Child rows are matched on the detail's ``foreign_key``. Rows are
        projected onto the detail's ``list_fields`` when declared, otherwise
        onto the child model's listable fields.

        Raises:
            StorageQueryError: If the parent declares no such detail or the
                child table has no foreign key column
        """
        options = options or ListingOptions()
        schema = await self.schema_service.get_schema(model, connection)
        detail = next(
            (item for item in parse_details(schema) if item.model == detail_model), None
        )
        if detail is None:
            raise StorageQueryError(f"Model '{model}' declares no detail '{detail_model}'")

        child = await self.schema_service.get_model_instance(detail.model, connection)
        if detail.foreign_key not in child.table.c:
            raise StorageQueryError(
                f"Detail '{detail.model}' has no foreign key column '{detail.foreign_key}'"
            )

        fields = [name for name in detail.list_fields or [] if name in child.table.c]
        if not fields:
            fields = self.listable_fields(child)
        elif child.primary_key not in fields:
            fields.insert(0, child.primary_key)

        with OperationLogger(
            logger,
            "list_details",
            model=model,
            detail=detail.model,
            parent_id=parent_id,
        ) as op:
            query = child.select().where(
                child.table.c[detail.foreign_key] == normalize_id(parent_id)
            )
            listing = await self._fetch_listing(conn, query, child, options, fields)
            op.log_progress(
                "Detail rows fetched",
                count=listing.count,
                count_filtered=listing.count_filtered,
                rows=len(listing.rows),
            )

        return listing

    def listable_fields(self, related: DynamicModel) -> list[str]:
        """Columns shown in list views; the primary key is always included."""
        fields: dict[str, Any] = related.schema.get("fields") or {}
        names = [
            name
            for name, field in fields.items()
            if field.get("listable", True) and name in related.table.c
        ]
        if related.primary_key not in names:
            names.insert(0, related.primary_key)
        return names

    def apply_filters(
        self, query: sa.Select, related: DynamicModel, options: ListingOptions
    ) -> sa.Select:
        """Apply per-column filters and the global search.

        Only columns of fields marked filterable are matched; other filter
        keys are ignored. Search matches any filterable column and is skipped
        when blank.
        """
        columns = self._filterable_columns(related)

        for name, value in options.filters.items():
            column = columns.get(name)
            if column is None:
                logger.debug("Ignoring filter on non-filterable field", field=name)
                continue
            query = query.where(self._like(column, value))

        search = (options.search or "").strip()
        if search and columns:
            query = query.where(
                sa.or_(*(self._like(column, search) for column in columns.values()))
            )

        return query

    def apply_sorts(
        self, query: sa.Select, related: DynamicModel, options: ListingOptions
    ) -> sa.Select:
        """Order by requested sortable fields, else the schema's default sort.

        The primary key is always the final ordering term so pages are stable.
        """
        fields: dict[str, Any] = related.schema.get("fields") or {}
        sorts = {
            name: direction
            for name, direction in options.sorts.items()
            if fields.get(name, {}).get("sortable") and name in related.table.c
        }
        if not sorts:
            default_sort = related.schema.get("default_sort") or {}
            if isinstance(default_sort, dict):
                sorts = {
                    name: str(direction).lower()
                    for name, direction in default_sort.items()
                    if name in related.table.c
                }

        for name, direction in sorts.items():
            column = related.table.c[name]
            query = query.order_by(column.desc() if direction == "desc" else column.asc())

        if related.primary_key not in sorts:
            query = query.order_by(related.pk_column.asc())
        return query

    def apply_pagination(self, query: sa.Select, options: ListingOptions) -> sa.Select:
        """Limit the query to the requested page."""
        if options.size == "all":
            return query

        size = options.size or self.settings.default_page_size
        size = min(size, self.settings.max_page_size)
        return query.limit(size).offset(options.page * size)

    async def _fetch_listing(
        self,
        conn: AsyncConnection,
        query: sa.Select,
        related: DynamicModel,
        options: ListingOptions,
        fields: list[str],
    ) -> RelationshipListing:
        count = await self._count(conn, query)

        query = self.apply_filters(query, related, options)
        count_filtered = await self._count(conn, query)

        query = self.apply_sorts(query, related, options)
        query = self.apply_pagination(query, options)

        result = await conn.execute(query)
        rows = [{name: row._mapping[name] for name in fields} for row in result]
        return RelationshipListing(rows=rows, count=count, count_filtered=count_filtered)

    async def _count(self, conn: AsyncConnection, query: sa.Select) -> int:
        result = await conn.execute(
            sa.select(sa.func.count()).select_from(query.order_by(None).subquery())
        )
        return int(result.scalar_one())

    def _filterable_columns(self, related: DynamicModel) -> dict[str, sa.Column]:
        fields: dict[str, Any] = related.schema.get("fields") or {}
        return {
            name: related.table.c[name]
            for name, field in fields.items()
            if field.get("filterable") and name in related.table.c
        }

    def _like(self, column: sa.Column, value: str) -> sa.ColumnElement[bool]:
        escaped = (
            value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
            .replace("%", LIKE_ESCAPE + "%")
            .replace("_", LIKE_ESCAPE + "_")
        )
        return sa.cast(column, sa.String).ilike(f"%{escaped}%", escape=LIKE_ESCAPE)
