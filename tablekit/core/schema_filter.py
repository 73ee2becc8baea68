"""Context projections of normalized schemas.

A page typically needs only part of a schema: a table view needs listable
fields, a form needs editable fields and their validation rules, a detail
page needs viewable fields plus child and relationship declarations. The
filter builds those projections from the single normalized document.
"""

from typing import Any

from .logging import get_logger
from .schema import DEFAULT_PRIMARY_KEY, NormalizedSchema

logger = get_logger(__name__)

FULL_CONTEXT = "full"
FORM_CONTEXTS = ("create", "edit")

_LIST_OPTIONAL_KEYS = ("width", "field_template")
_FORM_OPTIONAL_KEYS = (
    "validation",
    "placeholder",
    "description",
    "default",
    "icon",
    "rows",
    "show_in",
)
_DETAIL_OPTIONAL_KEYS = ("description", "field_template", "default")
_DETAIL_SCHEMA_KEYS = (
    "details",
    "relationships",
    "actions",
    "detail_editable",
    "render_mode",
    "title_field",
)
_LOOKUP_KEYS = ("lookup_model", "lookup_id", "lookup_desc", "model", "id", "desc")


class SchemaFilter:
    """Projects a normalized schema onto one or more presentation contexts.

    Contexts:
        list: listable fields with display properties, default sort, actions
        create/edit: fields shown in that form, with validation rules
        form: union of the create and edit projections
        detail: viewable fields plus details, relationships and actions
        meta: base metadata only
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def filter_for_context(
        self, schema: NormalizedSchema, context: str | None = None
    ) -> NormalizedSchema:
        """Filter a schema for one context or a comma-separated set.

        Args:
            schema: The normalized schema
            context: None or "full" for the whole schema, a single context
                name, or comma-separated names (e.g. "list,form")

        Returns:
            The projection. A single unknown context returns the full schema.
            For several contexts, base metadata appears once at the top level
            and each known context's projection is under ``contexts``.
        """
        if context is None or context == FULL_CONTEXT:
            return schema

        if "," in context:
            contexts = [name.strip() for name in context.split(",") if name.strip()]
            return self._filter_for_multiple_contexts(schema, contexts)

        return self._filter_for_single_context(schema, context.strip())

    def related_models(self, schema: NormalizedSchema, context: str | None = None) -> list[str]:
        """List the model names whose schemas a context also needs.

        Only the detail view renders child tables and related rows, so the
        list is empty unless ``context`` is ``detail``, full, or a
        multi-context string that includes ``detail``.
        """
        if context is not None and context != FULL_CONTEXT:
            requested = {name.strip() for name in context.split(",")}
            if "detail" not in requested:
                return []

        models: list[str] = []
        for detail in schema.get("details") or []:
            if detail.get("model"):
                models.append(detail["model"])
        for relationship in schema.get("relationships") or []:
            target = relationship.get("model") or relationship.get("name")
            if target:
                models.append(target)

        return list(dict.fromkeys(models))

    def validation_rules(
        self, schema: NormalizedSchema, context: str = "create"
    ) -> dict[str, dict[str, Any]]:
        """Extract validation rules for fields editable in a form context.

        Returns:
            Mapping of field name to its rules: ``required``, ``type`` and
            every entry of the field's ``validation`` mapping
        """
        rules: dict[str, dict[str, Any]] = {}
        for name, field in (schema.get("fields") or {}).items():
            if context not in (field.get("show_in") or []):
                continue

            field_rules: dict[str, Any] = {
                "required": bool(field.get("required", False)),
                "type": field.get("type", "string"),
            }
            validation = field.get("validation")
            if isinstance(validation, dict):
                field_rules.update(validation)
            rules[name] = field_rules

        return rules

    def _base_metadata(self, schema: NormalizedSchema) -> dict[str, Any]:
        model = schema.get("model", "unknown")
        title = schema.get("title") or str(model).capitalize()
        base: dict[str, Any] = {
            "model": model,
            "title": title,
            "singular_title": schema.get("singular_title") or title,
            "primary_key": schema.get("primary_key") or DEFAULT_PRIMARY_KEY,
        }
        for key in ("title_field", "description", "permissions"):
            if schema.get(key) is not None:
                base[key] = schema[key]
        return base

    def _filter_for_single_context(
        self, schema: NormalizedSchema, context: str
    ) -> NormalizedSchema:
        data = self._context_data(schema, context)
        if data is None:
            self._debug("Unknown schema context; returning full schema", context=context)
            return schema

        base = self._base_metadata(schema)
        base.pop("title_field", None)
        return {**base, **data}

    def _filter_for_multiple_contexts(
        self, schema: NormalizedSchema, contexts: list[str]
    ) -> NormalizedSchema:
        filtered = self._base_metadata(schema)
        if schema.get("actions") is not None:
            filtered["actions"] = schema["actions"]

        filtered["contexts"] = {}
        for context in contexts:
            data = self._context_data(schema, context)
            if data is None:
                self._debug("Skipping unknown schema context", context=context)
                continue
            filtered["contexts"][context] = data

        return filtered

    def _context_data(self, schema: NormalizedSchema, context: str) -> dict[str, Any] | None:
        if context == "meta":
            return {}
        if context == "list":
            return self._list_data(schema)
        if context in FORM_CONTEXTS:
            return self._form_data(schema, context)
        if context == "form":
            return self._combined_form_data(schema)
        if context == "detail":
            return self._detail_data(schema)
        return None

    def _list_data(self, schema: NormalizedSchema) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name, field in self._fields(schema):
            if "list" not in (field.get("show_in") or []):
                continue

            projected = {
                "type": field.get("type", "string"),
                "label": field.get("label", name),
                "sortable": field.get("sortable", False),
                "filterable": field.get("filterable", False),
            }
            for key in _LIST_OPTIONAL_KEYS:
                if key in field:
                    projected[key] = field[key]
            if "filter_type" in field and field.get("filterable"):
                projected["filter_type"] = field["filter_type"]
            fields[name] = projected

        data: dict[str, Any] = {
            "fields": fields,
            "default_sort": schema.get("default_sort") or {},
        }
        if schema.get("actions") is not None:
            data["actions"] = schema["actions"]
        return data

    def _form_data(self, schema: NormalizedSchema, context: str) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name, field in self._fields(schema):
            if context not in (field.get("show_in") or []):
                continue

            projected = {
                "type": field.get("type", "string"),
                "label": field.get("label", name),
                "required": field.get("required", False),
                "editable": field.get("editable", True),
            }
            for key in _FORM_OPTIONAL_KEYS:
                if key in field:
                    projected[key] = field[key]
            if field.get("type") == "smartlookup":
                for key in _LOOKUP_KEYS:
                    if key in field:
                        projected[key] = field[key]
            fields[name] = projected

        return {"fields": fields}

    def _combined_form_data(self, schema: NormalizedSchema) -> dict[str, Any]:
        fields = dict(self._form_data(schema, "create")["fields"])
        for name, field in self._form_data(schema, "edit")["fields"].items():
            fields.setdefault(name, field)
        return {"fields": fields}

    def _detail_data(self, schema: NormalizedSchema) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name, field in self._fields(schema):
            if "detail" not in (field.get("show_in") or []):
                continue

            field_type = field.get("type", "string")
            readonly = field.get("readonly", field_type == "password")
            projected = {
                "type": field_type,
                "label": field.get("label", name),
                "editable": field.get("editable", not readonly),
                "readonly": readonly,
            }
            for key in _DETAIL_OPTIONAL_KEYS:
                if key in field:
                    projected[key] = field[key]
            fields[name] = projected

        data: dict[str, Any] = {"fields": fields}
        for key in _DETAIL_SCHEMA_KEYS:
            if schema.get(key) is not None:
                data[key] = schema[key]
        return data

    def _fields(self, schema: NormalizedSchema) -> list[tuple[str, dict[str, Any]]]:
        return list((schema.get("fields") or {}).items())

    def _debug(self, message: str, **context: Any) -> None:
        if self.debug:
            logger.debug(message, **context)
