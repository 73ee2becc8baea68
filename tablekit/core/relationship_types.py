"""Relationship shapes supported by the engine.

Two shapes exist: a direct many-to-many relationship through one pivot table,
and a two-hop relationship that reaches the related table through an
intermediate model and two pivot tables. Both are modelled as variants of a
tagged union keyed by :class:`RelationshipKind`, and a single
:func:`build_query` dispatches on the kind to build the join.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import sqlalchemy as sa

from .schema import SchemaValidationError


class RelationshipKind(str, Enum):
    """Relationship shapes a schema can declare."""

    MANY_TO_MANY = "many_to_many"
    """Parent and related rows linked by a single pivot table."""

    THROUGH = "belongs_to_many_through"
    """Related rows reached via an intermediate model and two pivot tables.

    Example: users -> role_users -> roles -> permission_roles -> permissions.
    """


@dataclass
class ManyToManyRelationship:
    """Direct many-to-many relationship through ``pivot_table``."""

    name: str
    pivot_table: str
    foreign_key: str
    related_key: str
    model: str
    actions: dict[str, Any] = field(default_factory=dict)
    title: str | None = None
    kind: RelationshipKind = RelationshipKind.MANY_TO_MANY


@dataclass
class ThroughRelationship:
    """Two-hop relationship through the ``through`` model.

    The first pivot links the parent to the intermediate model, the second
    pivot links the intermediate model to the related model.
    """

    name: str
    through: str
    first_pivot_table: str
    first_foreign_key: str
    first_related_key: str
    second_pivot_table: str
    second_foreign_key: str
    second_related_key: str
    model: str
    actions: dict[str, Any] = field(default_factory=dict)
    title: str | None = None
    kind: RelationshipKind = RelationshipKind.THROUGH


RelationshipDescriptor = ManyToManyRelationship | ThroughRelationship

_MANY_TO_MANY_KEYS = ("pivot_table", "foreign_key", "related_key")
_THROUGH_KEYS = (
    "through",
    "first_pivot_table",
    "first_foreign_key",
    "first_related_key",
    "second_pivot_table",
    "second_foreign_key",
    "second_related_key",
)


def get_relationship_kind(config: dict[str, Any]) -> RelationshipKind:
    """Determine the shape of a relationship entry.

    An entry declaring ``through`` is a two-hop relationship even when its
    ``type`` is omitted; otherwise ``type`` defaults to many-to-many.

    Raises:
        SchemaValidationError: If ``type`` names an unsupported shape
    """
    if "through" in config and "type" not in config:
        return RelationshipKind.THROUGH

    rel_type = config.get("type", RelationshipKind.MANY_TO_MANY.value)
    try:
        return RelationshipKind(rel_type)
    except ValueError as e:
        raise SchemaValidationError(
            f"Relationship '{config.get('name')}' has unsupported type '{rel_type}'. "
            f"Supported types: {', '.join(kind.value for kind in RelationshipKind)}",
            [f"relationships.{config.get('name')}.type"],
        ) from e


def parse_relationship(config: dict[str, Any]) -> RelationshipDescriptor:
    """Convert a ``relationships`` entry into a typed descriptor.

    Args:
        config: Relationship entry from the schema document

    Returns:
        ManyToManyRelationship or ThroughRelationship

    Raises:
        SchemaValidationError: If the entry is unnamed, of unknown type, or
            missing keys required by its shape
    """
    name = config.get("name")
    if not name:
        raise SchemaValidationError(
            "Relationship entry is missing required key: name", ["relationships.name"]
        )

    kind = get_relationship_kind(config)
    required = _MANY_TO_MANY_KEYS if kind is RelationshipKind.MANY_TO_MANY else _THROUGH_KEYS
    missing = [key for key in required if not config.get(key)]
    if missing:
        raise SchemaValidationError(
            f"Relationship '{name}' ({kind.value}) is missing required configuration: "
            f"{', '.join(missing)}",
            [f"relationships.{name}.{key}" for key in missing],
        )

    common = {
        "name": name,
        "model": config.get("model") or name,
        "actions": config.get("actions") or {},
        "title": config.get("title"),
    }

    if kind is RelationshipKind.MANY_TO_MANY:
        return ManyToManyRelationship(
            pivot_table=config["pivot_table"],
            foreign_key=config["foreign_key"],
            related_key=config["related_key"],
            **common,
        )

    return ThroughRelationship(
        through=config["through"],
        first_pivot_table=config["first_pivot_table"],
        first_foreign_key=config["first_foreign_key"],
        first_related_key=config["first_related_key"],
        second_pivot_table=config["second_pivot_table"],
        second_foreign_key=config["second_foreign_key"],
        second_related_key=config["second_related_key"],
        **common,
    )


def pivot_clause(table_name: str, *columns: str) -> sa.TableClause:
    """Build a lightweight table clause for a pivot table."""
    return sa.table(table_name, *(sa.column(name) for name in dict.fromkeys(columns)))


def build_query(
    descriptor: RelationshipDescriptor,
    related_table: sa.Table,
    parent_id: Any,
    related_primary_key: str = "id",
) -> sa.Select:
    """Build the select of related rows for one parent record.

    Many-to-many joins the related table to the pivot table once; a through
    relationship chains two joins (related -> second pivot -> first pivot)
    and selects distinct rows, since several intermediate rows can lead to
    the same related row.

    Args:
        descriptor: Relationship to traverse
        related_table: Table of the related model
        parent_id: Primary key value of the parent record
        related_primary_key: Primary key column of the related table

    Returns:
        Select over the related table's columns, filtered to the parent
    """
    related_pk = related_table.c[related_primary_key]

    if descriptor.kind is RelationshipKind.MANY_TO_MANY:
        pivot = pivot_clause(
            descriptor.pivot_table, descriptor.foreign_key, descriptor.related_key
        )
        return (
            sa.select(related_table)
            .select_from(
                related_table.join(pivot, pivot.c[descriptor.related_key] == related_pk)
            )
            .where(pivot.c[descriptor.foreign_key] == parent_id)
        )

    if descriptor.kind is RelationshipKind.THROUGH:
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
        joined = related_table.join(
            second, second.c[descriptor.second_related_key] == related_pk
        ).join(
            first,
            first.c[descriptor.first_related_key]
            == second.c[descriptor.second_foreign_key],
        )
        return (
            sa.select(related_table)
            .select_from(joined)
            .where(first.c[descriptor.first_foreign_key] == parent_id)
            .distinct()
        )

    raise SchemaValidationError(f"Unsupported relationship kind: {descriptor.kind}")


__all__ = [
    "ManyToManyRelationship",
    "RelationshipDescriptor",
    "RelationshipKind",
    "ThroughRelationship",
    "build_query",
    "get_relationship_kind",
    "parse_relationship",
    "pivot_clause",
]
