"""Structural validation of schema documents.

Validation runs before normalization and caching, so a malformed document
is never normalized or cached.
"""

from collections.abc import Mapping
from typing import Any

from .relationship_types import parse_relationship
from .schema import SchemaValidationError, parse_details

REQUIRED_FIELDS = ("model", "table", "fields")


class SchemaValidator:
    """Validates the required structure of a schema document."""

    def validate(self, schema: dict[str, Any], model: str) -> None:
        """Validate a schema document loaded for ``model``.

        Args:
            schema: The raw schema document
            model: The model name the document was requested under

        Raises:
            SchemaValidationError: If a required field is missing, the model
                name does not match, or fields/relationships/details are
                malformed
        """
        for field_name in REQUIRED_FIELDS:
            if schema.get(field_name) is None:
                raise SchemaValidationError(
                    f"Schema for model '{model}' is missing required field: {field_name}",
                    [field_name],
                )

        if schema["model"] != model:
            raise SchemaValidationError(
                f"Schema model name '{schema['model']}' does not match "
                f"requested model '{model}'",
                ["model"],
            )

        fields = schema["fields"]
        if not isinstance(fields, Mapping) or not fields:
            raise SchemaValidationError(
                f"Schema for model '{model}' must have a non-empty 'fields' mapping",
                ["fields"],
            )

        untyped = [
            name
            for name, definition in fields.items()
            if not isinstance(definition, Mapping) or not definition.get("type")
        ]
        if untyped:
            raise SchemaValidationError(
                f"Schema for model '{model}' has fields without a 'type': "
                f"{', '.join(untyped)}",
                [f"fields.{name}.type" for name in untyped],
            )

        self._validate_relationships(schema, model)
        self._validate_details(schema, model)

    def has_permission(self, schema: dict[str, Any], operation: str) -> bool:
        """Check whether the schema declares a permission for an operation.

        Args:
            schema: The schema document
            operation: The operation (create, read, update, delete)
        """
        return bool((schema.get("permissions") or {}).get(operation))

    def _validate_relationships(self, schema: dict[str, Any], model: str) -> None:
        relationships = schema.get("relationships")
        if relationships is None:
            return

        if not isinstance(relationships, list):
            raise SchemaValidationError(
                f"Schema for model '{model}' must declare 'relationships' as a list",
                ["relationships"],
            )

        seen: set[str] = set()
        for entry in relationships:
            if not isinstance(entry, Mapping):
                raise SchemaValidationError(
                    f"Schema for model '{model}' has a relationship entry that is not a mapping",
                    ["relationships"],
                )
            descriptor = parse_relationship(dict(entry))
            if descriptor.name in seen:
                raise SchemaValidationError(
                    f"Schema for model '{model}' declares relationship "
                    f"'{descriptor.name}' more than once",
                    [f"relationships.{descriptor.name}"],
                )
            seen.add(descriptor.name)

    def _validate_details(self, schema: dict[str, Any], model: str) -> None:
        details = schema.get("details")
        if details is None:
            return

        if not isinstance(details, list) or not all(
            isinstance(entry, Mapping) for entry in details
        ):
            raise SchemaValidationError(
                f"Schema for model '{model}' must declare 'details' as a list of mappings",
                ["details"],
            )

        parse_details(schema)
