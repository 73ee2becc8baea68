"""Translation of translation-key strings inside schemas."""

import copy
import re
from typing import Any, Protocol

from .logging import get_logger
from .schema import NormalizedSchema

logger = get_logger(__name__)

TRANSLATION_KEY = re.compile(r"^[A-Z][A-Z0-9_.]+\.[A-Z0-9_.]+$")

# Signs that placeholders were interpolated with empty values.
_EMPTY_PLACEHOLDER = re.compile(r"\(\s*\)|<strong>\s+\(|>\s{2,}<|\s{2,}")

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class Translator(Protocol):
    """Translation provider."""

    def translate(self, key: str, params: dict[str, Any] | None = None) -> str:
        """Translate a key, returning the key itself when it is unknown."""
        ...


class MappingTranslator:
    """Translator backed by a flat key -> template mapping.

    Templates may contain ``{{name}}`` placeholders, replaced from
    ``params``; placeholders without a value are replaced by an empty string.
    """

    def __init__(self, messages: dict[str, str] | None = None):
        self.messages = messages or {}

    def translate(self, key: str, params: dict[str, Any] | None = None) -> str:
        template = self.messages.get(key)
        if template is None:
            return key

        params = params or {}
        return _PLACEHOLDER.sub(lambda m: str(params.get(m.group(1), "")), template)


class SchemaTranslator:
    """Resolves translation keys found anywhere in a schema document."""

    def __init__(self, translator: Translator | None = None, debug: bool = False):
        self.translator = translator
        self.debug = debug

    def translate(self, schema: NormalizedSchema) -> NormalizedSchema:
        """Translate every translation-key string in the schema.

        Strings that look like translation keys (``TABLEKIT.CREATE``) are
        passed to the translation provider. A key stays untranslated when the
        provider does not know it or the result shows empty placeholder
        interpolation, so that a client can translate it with proper context.
        Non-string values and the document structure are preserved.

        Args:
            schema: The schema to translate

        Returns:
            A translated copy; the input is not modified
        """
        if self.translator is None:
            return copy.deepcopy(schema)

        self._debug("Translating schema", model=schema.get("model"))
        return self._translate_value(schema)

    def _translate_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: self._translate_value(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._translate_value(item) for item in value]
        if isinstance(value, str):
            return self._translate_string(value)
        return copy.deepcopy(value)

    def _translate_string(self, value: str) -> str:
        if not TRANSLATION_KEY.match(value):
            return value

        translated = self.translator.translate(value)  # type: ignore[union-attr]
        if translated == value:
            self._debug("Translation key not found", key=value)
            return value

        if _EMPTY_PLACEHOLDER.search(translated):
            self._debug("Empty placeholder interpolation; keeping key", key=value)
            return value

        return translated

    def _debug(self, message: str, **context: Any) -> None:
        if self.debug:
            logger.debug(message, **context)
