"""Schema loader for per-model schema documents.

Schema documents live under a configurable root directory, one file per
model (``{model}.json``, ``{model}.yaml`` or ``{model}.yml``). A
connection-specific subdirectory (``{root}/{connection}/{model}.json``) is
checked before the default location so that the same model name can be
described differently per database connection.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .logging import get_logger
from .schema import DEFAULT_PRIMARY_KEY, SchemaLoadError, SchemaNotFoundError

logger = get_logger(__name__)

SCHEMA_EXTENSIONS = (".json", ".yaml", ".yml")


@dataclass
class LoadedSchema:
    """A raw schema document together with where it came from."""

    document: dict[str, Any]
    path: Path
    from_connection_dir: bool = False


class SchemaLoader:
    """File-based schema loader.

    Resolves the document path for a model, parses it, and applies default
    values for optional table-level attributes.
    """

    def __init__(self, schema_path: str | Path):
        """Initialize with the schema root directory.

        Args:
            schema_path: Directory containing schema documents
        """
        self.schema_path = Path(schema_path)

    def get_schema_file_paths(
        self, model: str, connection: str | None = None
    ) -> list[Path]:
        """Get candidate file paths for a model's schema, in lookup order.

        Args:
            model: The model name
            connection: Optional connection name for subdirectory lookup

        Returns:
            Candidate paths; connection-specific paths come first
        """
        paths: list[Path] = []
        if connection is not None:
            paths.extend(
                self.schema_path / connection / f"{model}{ext}"
                for ext in SCHEMA_EXTENSIONS
            )
        paths.extend(self.schema_path / f"{model}{ext}" for ext in SCHEMA_EXTENSIONS)
        return paths

    async def load_schema(
        self, model: str, connection: str | None = None
    ) -> LoadedSchema:
        """Load the raw schema document for a model.

        Args:
            model: The model name
            connection: Optional connection name

        Returns:
            LoadedSchema with the parsed document and its path

        Raises:
            SchemaNotFoundError: If no document exists at any candidate path
            SchemaLoadError: If the document cannot be read or parsed
        """
        candidates = self.get_schema_file_paths(model, connection)
        connection_dir = self.schema_path / connection if connection else None

        for path in candidates:
            if not path.is_file():
                continue

            document = await asyncio.to_thread(self._read_document, path)
            from_connection_dir = connection_dir is not None and path.parent == connection_dir
            logger.debug(
                "Schema document loaded",
                model=model,
                connection=connection,
                path=str(path),
                from_connection_dir=from_connection_dir,
            )
            return LoadedSchema(document, path, from_connection_dir)

        raise SchemaNotFoundError(model, [str(path) for path in candidates])

    def apply_defaults(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Apply default values for optional table-level attributes.

        - primary_key: defaults to "id"
        - timestamps: defaults to True
        - soft_delete: defaults to False

        Args:
            schema: The raw schema document

        Returns:
            A copy of the schema with defaults applied
        """
        schema = dict(schema)
        if schema.get("primary_key") is None:
            schema["primary_key"] = DEFAULT_PRIMARY_KEY
        if schema.get("timestamps") is None:
            schema["timestamps"] = True
        if schema.get("soft_delete") is None:
            schema["soft_delete"] = False
        return schema

    def _read_document(self, path: Path) -> dict[str, Any]:
        """Read and parse one schema file.

        JSON documents are parsed by the YAML parser, JSON being a subset
        of YAML.
        """
        try:
            with path.open(encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise SchemaLoadError(f"Failed to load schema '{path}': {e}") from e

        if not isinstance(document, dict):
            raise SchemaLoadError(
                f"Schema '{path}' must contain a mapping at the top level, "
                f"got {type(document).__name__}"
            )

        return document
