"""Schema normalization.

Schema authors may describe fields in several shorthand styles: ORM-style
attribute names, nested or flat lookup declarations, per-flag visibility
or an explicit ``show_in`` list, and legacy boolean type suffixes. The
normalizer rewrites all of them into one canonical shape. Running it on an
already normalized document returns an identical document.
"""

import copy
import re
from typing import Any

from .schema import NormalizedSchema

_BOOLEAN_SUFFIX = re.compile(r"^boolean-(tgl|toggle|chk|sel|yn)$")

_BOOLEAN_UI = {
    "tgl": "toggle",
    "toggle": "toggle",
    "chk": "checkbox",
    "sel": "select",
    "yn": "select",
}

_BOOLEAN_DISPLAY = {
    "toggle": {
        "on": {"label": "Enabled", "icon": "toggle-on"},
        "off": {"label": "Disabled", "icon": "toggle-off"},
    },
    "default": {
        "on": {"label": "Yes", "icon": "check"},
        "off": {"label": "No", "icon": "xmark"},
    },
}

FORM_CONTEXTS = ("create", "edit")


class SchemaNormalizer:
    """Rewrites author-facing shorthand into the canonical schema shape."""

    def normalize(self, schema: dict[str, Any]) -> NormalizedSchema:
        """Normalize a complete schema.

        Steps run in order: ORM attributes, lookup attributes, visibility
        flags, boolean types.

        Args:
            schema: A validated schema document

        Returns:
            A normalized copy; the input is not modified
        """
        schema = copy.deepcopy(schema)
        schema = self.normalize_orm_attributes(schema)
        schema = self.normalize_lookup_attributes(schema)
        schema = self.normalize_visibility_flags(schema)
        schema = self.normalize_boolean_types(schema)
        return schema

    def normalize_orm_attributes(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Map attribute names used by common ORMs onto canonical keys.

        - nullable <-> required (inverted)
        - autoIncrement -> auto_increment, primaryKey -> primary
        - validate -> validation; unique/length folded into validation
        - references -> lookup descriptor
        - nested ui mapping -> label/show_in/sortable/filterable/ui
        - defaultValue -> default
        """
        for field in self._fields(schema):
            if "nullable" in field and "required" not in field:
                field["required"] = not field["nullable"]
            if "required" in field and "nullable" not in field:
                field["nullable"] = not field["required"]

            if "autoIncrement" in field and "auto_increment" not in field:
                field["auto_increment"] = field["autoIncrement"]

            if "primaryKey" in field and "primary" not in field:
                field["primary"] = field["primaryKey"]

            if "validate" in field and "validation" not in field:
                field["validation"] = field["validate"]

            validation = field.get("validation")
            if validation is None or isinstance(validation, dict):
                if "unique" in field and "unique" not in (validation or {}):
                    validation = {**(validation or {}), "unique": field["unique"]}
                if "length" in field and "length" not in (validation or {}):
                    validation = {**(validation or {}), "length": {"max": field["length"]}}
                if validation is not None:
                    field["validation"] = validation

            references = field.get("references")
            if isinstance(references, dict):
                if "lookup" not in field:
                    field["lookup"] = {
                        "model": references.get("model") or references.get("table"),
                        "id": references.get("key") or references.get("id") or "id",
                        "desc": references.get("display") or references.get("desc") or "name",
                    }
                if field.get("type") in (None, "integer") and (
                    "display" in references or "desc" in references
                ):
                    field["type"] = "smartlookup"

            ui = field.get("ui")
            if isinstance(ui, dict):
                for key in ("label", "show_in", "sortable", "filterable"):
                    if key in ui and key not in field:
                        field[key] = ui[key]
                if "widget" in ui and field.get("type") == "boolean":
                    field["ui"] = ui["widget"]
                elif ui.get("type") == "lookup" and field.get("type") in (None, "integer"):
                    field["type"] = "smartlookup"

            if "defaultValue" in field and "default" not in field:
                field["default"] = field["defaultValue"]

        return schema

    def normalize_lookup_attributes(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Expand lookup declarations of smartlookup fields.

        Supports both nested (``lookup: {model, id, desc}``) and shorthand
        (``model``/``id``/``desc``) declarations and produces the flat
        ``lookup_model``/``lookup_id``/``lookup_desc`` attributes.
        """
        for field in self._fields(schema):
            if field.get("type") != "smartlookup":
                continue

            lookup = field.get("lookup")
            for key in ("model", "id", "desc"):
                flat_key = f"lookup_{key}"
                if flat_key in field:
                    continue
                if isinstance(lookup, dict) and lookup.get(key) is not None:
                    field[flat_key] = lookup[key]
                elif key in field:
                    field[flat_key] = field[key]

        return schema

    def normalize_visibility_flags(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Derive a ``show_in`` list and explicit visibility booleans.

        Contexts: ``list``, ``create``, ``edit``, ``detail``; ``form`` is
        shorthand for create and edit. Password fields built from flags are
        never shown in the detail view.
        """
        for field in self._fields(schema):
            show_in = field.get("show_in")

            if isinstance(show_in, list):
                expanded: list[str] = []
                for context in show_in:
                    expanded.extend(FORM_CONTEXTS if context == "form" else [context])
                show_in = list(dict.fromkeys(expanded))
            else:
                listable = field.get("listable", True)
                editable = field.get("editable", not field.get("readonly", False))
                viewable = field.get("viewable", True)

                show_in = []
                if listable:
                    show_in.append("list")
                if editable:
                    show_in.extend(FORM_CONTEXTS)
                if viewable and field.get("type") != "password":
                    show_in.append("detail")

            field["show_in"] = show_in
            field["listable"] = "list" in show_in
            field["editable"] = any(context in show_in for context in FORM_CONTEXTS)
            field["viewable"] = "detail" in show_in
            field["sortable"] = bool(field.get("sortable", False))
            field["filterable"] = bool(field.get("filterable", False))

        return schema

    def normalize_boolean_types(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Normalize boolean variants to ``type: boolean`` with UI hints.

        Legacy suffixes (``boolean-tgl``, ``boolean-yn``...) become a ``ui``
        attribute, and every boolean gets an explicit on/off display with a
        label and an icon.
        """
        for field in self._fields(schema):
            field_type = field.get("type", "string")

            match = _BOOLEAN_SUFFIX.match(field_type)
            if match:
                field["type"] = "boolean"
                field.setdefault("ui", _BOOLEAN_UI.get(match.group(1), "checkbox"))
            elif field_type != "boolean":
                continue

            field.setdefault("ui", "checkbox")
            if isinstance(field["ui"], dict) and "widget" in field["ui"]:
                field["ui"] = field["ui"]["widget"]

            ui = field["ui"] if isinstance(field["ui"], str) else "checkbox"
            defaults = _BOOLEAN_DISPLAY.get(ui, _BOOLEAN_DISPLAY["default"])
            display = field.get("display")
            display = dict(display) if isinstance(display, dict) else {}
            for state in ("on", "off"):
                current = display.get(state)
                current = dict(current) if isinstance(current, dict) else {}
                for key, value in defaults[state].items():
                    current.setdefault(key, value)
                display[state] = current
            field["display"] = display

        return schema

    def _fields(self, schema: dict[str, Any]) -> list[dict[str, Any]]:
        fields = schema.get("fields")
        if not isinstance(fields, dict):
            return []
        return [field for field in fields.values() if isinstance(field, dict)]
