"""Core schema data structures and errors.

Schema documents are kept as plain mappings so that they can be cached,
projected and serialized without conversion. The structures in this module
give a typed view of the parts of a document that drive behaviour
(cascade declarations and lifecycle events).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

# A schema document after loading, validation and normalization.
NormalizedSchema = dict[str, Any]

DEFAULT_PRIMARY_KEY = "id"


class RelationshipEvent(str, Enum):
    """Lifecycle events that can trigger relationship actions."""

    ON_CREATE = "on_create"
    ON_UPDATE = "on_update"
    ON_DELETE = "on_delete"


class CascadeDeleteMode(str, Enum):
    """How dependent rows are removed when their parent is deleted."""

    AUTO = "auto"
    """Soft delete when the parent delete is soft and the child supports it."""

    HARD = "hard"
    """Always physically delete the child rows."""


@dataclass
class DetailDefinition:
    """A child table declared in a schema's ``details`` list.

    Represents a parent/child link where child rows reference the parent
    through ``foreign_key``.
    """

    model: str
    foreign_key: str
    cascade_delete: bool = True
    cascade_delete_mode: CascadeDeleteMode = CascadeDeleteMode.AUTO
    title: str | None = None
    list_fields: list[str] | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "DetailDefinition":
        """Build a detail definition from a ``details`` entry.

        Raises:
            SchemaValidationError: If ``model``/``foreign_key`` are missing or
                the cascade mode is unknown
        """
        missing = [key for key in ("model", "foreign_key") if not config.get(key)]
        if missing:
            raise SchemaValidationError(
                f"Detail declaration is missing required keys: {', '.join(missing)}",
                [f"details.{key}" for key in missing],
            )

        mode = config.get("cascade_delete_mode", CascadeDeleteMode.AUTO.value)
        try:
            cascade_mode = CascadeDeleteMode(mode)
        except ValueError as e:
            raise SchemaValidationError(
                f"Detail '{config['model']}' has invalid cascade_delete_mode '{mode}'",
                [f"details.{config['model']}.cascade_delete_mode"],
            ) from e

        return cls(
            model=config["model"],
            foreign_key=config["foreign_key"],
            cascade_delete=config.get("cascade_delete", True) is not False,
            cascade_delete_mode=cascade_mode,
            title=config.get("title"),
            list_fields=config.get("list_fields"),
        )


def parse_details(schema: NormalizedSchema) -> list[DetailDefinition]:
    """Parse the ``details`` list of a schema into typed definitions."""
    return [DetailDefinition.from_config(detail) for detail in schema.get("details") or []]


class SchemaError(Exception):
    """Base exception for all schema pipeline errors."""

    pass


class SchemaLoadError(SchemaError):
    """Raised when a schema document cannot be read or parsed."""

    pass


class SchemaNotFoundError(SchemaLoadError):
    """Raised when no schema document resolves for a model/connection."""

    def __init__(self, model: str, searched: list[str] | None = None):
        super().__init__(f"Schema file not found for model: {model}")
        self.model = model
        self.searched = searched or []


class SchemaValidationError(SchemaError):
    """Raised when a schema document violates the required structure."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class RelationshipNotFoundError(SchemaError):
    """Raised when a relationship name is not declared on a configured model."""

    def __init__(self, name: str, table: str):
        super().__init__(
            f"Dynamic relationship '{name}' not found on table '{table}'. "
            "Ensure configure_from_schema() was called before accessing relationships."
        )
        self.name = name
        self.table = table


class UnsupportedRelationshipError(SchemaError):
    """Raised when an operation is not available for a relationship shape."""

    pass
