"""Default CRUD actions and action scoping."""

import copy
from typing import Any

from .logging import get_logger
from .schema import NormalizedSchema
from .schema_validator import SchemaValidator

logger = get_logger(__name__)


def _default_actions(schema: NormalizedSchema) -> list[tuple[str, str, dict[str, Any]]]:
    """Default action definitions as (key, permission operation, action)."""
    permissions = schema.get("permissions") or {}
    return [
        (
            "create_action",
            "create",
            {
                "key": "create_action",
                "label": "TABLEKIT.CREATE",
                "icon": "plus",
                "type": "form",
                "style": "primary",
                "scope": ["list"],
                "permission": permissions.get("create", "create"),
                "modal_config": {"type": "form", "title": "TABLEKIT.CREATE"},
            },
        ),
        (
            "edit_action",
            "update",
            {
                "key": "edit_action",
                "label": "TABLEKIT.EDIT",
                "icon": "pen-to-square",
                "type": "form",
                "style": "primary",
                "scope": ["detail"],
                "permission": permissions.get("update", "update"),
                "modal_config": {"type": "form", "title": "TABLEKIT.EDIT"},
            },
        ),
        (
            "delete_action",
            "delete",
            {
                "key": "delete_action",
                "label": "TABLEKIT.DELETE",
                "icon": "trash",
                "type": "delete",
                "style": "danger",
                "scope": ["detail"],
                "permission": permissions.get("delete", "delete"),
                "confirm": "TABLEKIT.DELETE_CONFIRM",
                "modal_config": {
                    "type": "confirm",
                    "buttons": "yes_no",
                    "warning": "WARNING_CANNOT_UNDONE",
                },
            },
        ),
    ]


class SchemaActionManager:
    """Adds default actions to schemas and filters actions by scope."""

    def __init__(self, validator: SchemaValidator | None = None, debug: bool = False):
        self.validator = validator or SchemaValidator()
        self.debug = debug

    def add_default_actions(self, schema: NormalizedSchema) -> NormalizedSchema:
        """Add create/edit/delete actions the schema is permitted but lacks.

        Toggle actions are normalized first. Defaults are prepended so custom
        actions follow them. A schema with ``default_actions: false`` is
        returned unchanged.

        Args:
            schema: The normalized schema

        Returns:
            A copy of the schema with the complete action list
        """
        if schema.get("default_actions") is False:
            self._debug("Default actions disabled", model=schema.get("model"))
            return schema

        schema = dict(schema)
        actions = self.normalize_toggle_actions(list(schema.get("actions") or []), schema)
        existing = {action.get("key") for action in actions}

        defaults = [
            action
            for key, operation, action in _default_actions(schema)
            if key not in existing and self.validator.has_permission(schema, operation)
        ]
        schema["actions"] = defaults + actions

        self._debug(
            "Default actions added",
            model=schema.get("model"),
            actions_added=[action["key"] for action in defaults],
            total_actions=len(schema["actions"]),
        )
        return schema

    def normalize_toggle_actions(
        self, actions: list[dict[str, Any]], schema: NormalizedSchema
    ) -> list[dict[str, Any]]:
        """Give toggle-style field updates a confirmation prompt.

        Applies to actions with ``type: field_update`` and ``toggle: true``
        that name a ``field``. Adds ``field_label`` and ``confirm`` when no
        confirm message is set, and a confirm ``modal_config``.
        """
        normalized = []
        for action in actions:
            if (
                action.get("type") != "field_update"
                or not action.get("toggle")
                or not action.get("field")
            ):
                normalized.append(action)
                continue

            action = copy.deepcopy(action)
            field_name = action["field"]
            field_config = (schema.get("fields") or {}).get(field_name) or {}
            field_label = field_config.get("label") or field_name.replace("_", " ").capitalize()

            if "confirm" not in action:
                action.setdefault("field_label", field_label)
                action["confirm"] = "TABLEKIT.TOGGLE_CONFIRM"

            modal = action.get("modal_config")
            if not isinstance(modal, dict):
                action["modal_config"] = {"type": "confirm", "buttons": "yes_no"}
            else:
                modal.setdefault("type", "confirm")

            self._debug("Normalized toggle action", key=action.get("key"), field=field_name)
            normalized.append(action)

        return normalized

    def filter_actions_by_scope(
        self, actions: list[dict[str, Any]], scope: str
    ) -> list[dict[str, Any]]:
        """Keep actions whose ``scope`` (a string or list) includes ``scope``.

        Actions without a scope are excluded.
        """
        filtered = []
        for action in actions:
            action_scope = action.get("scope")
            if action_scope is None:
                continue
            if isinstance(action_scope, list):
                if scope in action_scope:
                    filtered.append(action)
            elif action_scope == scope:
                filtered.append(action)

        self._debug(
            "Actions filtered by scope",
            scope=scope,
            filtered_actions=[action.get("key") for action in filtered],
        )
        return filtered

    def _debug(self, message: str, **context: Any) -> None:
        if self.debug:
            logger.debug(message, **context)
