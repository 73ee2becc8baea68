"""Two-tier cache for normalized schemas.

The first tier is a process-local mapping that lives as long as the
``SchemaCache`` instance. The second, optional tier is a shared key/value
store (any backend implementing :class:`CacheStore`) whose entries expire
after a TTL. Lookups check the local tier first and populate it from the
shared tier on a hit. Failures of the shared tier are logged and ignored so
that schema resolution keeps working with local caching only.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
import copy
from dataclasses import dataclass
from datetime import UTC, datetime
import time
from typing import Any

from .logging import get_logger
from .schema import NormalizedSchema

logger = get_logger(__name__)

DEFAULT_CACHE_PREFIX = "tablekit_schema_"


class CacheStore(ABC):
    """Interface for the shared cache tier backend."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value for key, or None if absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value under key, expiring after ttl seconds (None = never)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Must not raise if the key is absent."""
        pass


class MemoryCacheStore(CacheStore):
    """In-memory cache store with TTL expiry.

    Useful for:
    - Unit testing
    - Sharing schemas between several SchemaCache instances in one process
    - Development without an external cache server
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        # key -> (expires_at clock seconds or None, value)
        self.entries: dict[str, tuple[float | None, Any]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self.entries.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.entries[key]
            return None

        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self.clock() + ttl if ttl else None
        self.entries[key] = (expires_at, copy.deepcopy(value))

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)


@dataclass
class CacheEntry:
    """A cached normalized schema."""

    schema: NormalizedSchema
    version: int
    cached_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "version": self.version,
            "cached_at": self.cached_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            schema=data["schema"],
            version=int(data.get("version", 0)),
            cached_at=datetime.fromisoformat(data["cached_at"]),
        )


class SchemaCache:
    """Read-through cache of normalized schemas keyed by model and connection.

    The cache never expires local entries on its own; they are removed only
    by :meth:`clear` and :meth:`clear_all`. Shared-tier entries also expire
    after ``ttl`` seconds.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl: int = 3600,
        enabled: bool = True,
        prefix: str = DEFAULT_CACHE_PREFIX,
        debug: bool = False,
    ):
        """Initialize the cache.

        Args:
            store: Optional shared tier backend
            ttl: Shared tier entry TTL in seconds
            enabled: Whether the shared tier is used at all
            prefix: Key prefix for shared tier entries
            debug: Emit debug log events for hits, misses and writes
        """
        self.store = store
        self.ttl = ttl
        self.enabled = enabled
        self.prefix = prefix
        self.debug = debug
        self._local: dict[str, CacheEntry] = {}
        self._shared_keys: set[str] = set()
        self._version = 0

    @property
    def shared_enabled(self) -> bool:
        """Whether the shared tier is configured and enabled."""
        return self.store is not None and self.enabled

    async def get(
        self, model: str, connection: str | None = None
    ) -> NormalizedSchema | None:
        """Look up a cached schema.

        Args:
            model: The model name
            connection: Optional connection name

        Returns:
            A copy of the cached schema, or None on a miss in both tiers
        """
        key = self.get_cache_key(model, connection)

        entry = self._local.get(key)
        if entry is not None:
            self._debug("Schema cache hit", tier="local", model=model, cache_key=key)
            return copy.deepcopy(entry.schema)

        if not self.shared_enabled:
            return None

        try:
            cached = await self.store.get(self.prefix + key)  # type: ignore[union-attr]
        except Exception as e:
            logger.warning(
                "Shared schema cache read failed; using local cache only",
                model=model,
                cache_key=key,
                error=str(e),
            )
            return None

        if cached is None:
            self._debug("Schema cache miss", model=model, cache_key=key)
            return None

        try:
            entry = CacheEntry.from_dict(cached)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Discarding malformed shared schema cache entry",
                model=model,
                cache_key=key,
                error=str(e),
            )
            return None

        self._local[key] = entry
        self._debug(
            "Schema cache hit", tier="shared", model=model, cache_key=key, version=entry.version
        )
        return copy.deepcopy(entry.schema)

    async def set(
        self, schema: NormalizedSchema, model: str, connection: str | None = None
    ) -> CacheEntry:
        """Store a normalized schema in both tiers.

        Args:
            schema: The normalized schema
            model: The model name
            connection: Optional connection name

        Returns:
            The cache entry written to the local tier
        """
        key = self.get_cache_key(model, connection)
        self._version += 1
        entry = CacheEntry(copy.deepcopy(schema), self._version, datetime.now(UTC))
        self._local[key] = entry

        if self.shared_enabled:
            try:
                await self.store.set(self.prefix + key, entry.to_dict(), self.ttl)  # type: ignore[union-attr]
                self._shared_keys.add(key)
            except Exception as e:
                logger.warning(
                    "Shared schema cache write failed; using local cache only",
                    model=model,
                    cache_key=key,
                    error=str(e),
                )

        self._debug("Schema cached", model=model, cache_key=key, version=entry.version)
        return entry

    async def clear(self, model: str, connection: str | None = None) -> None:
        """Invalidate one model/connection entry in both tiers."""
        key = self.get_cache_key(model, connection)
        self._local.pop(key, None)

        if self.store is not None:
            await self._delete_shared(key)
            self._shared_keys.discard(key)

        self._debug("Schema cache cleared", model=model, cache_key=key)

    async def clear_all(self) -> None:
        """Invalidate every entry this cache holds or has written.

        The local tier is emptied and every shared key written through this
        instance is deleted from the shared tier.
        """
        keys = set(self._local) | self._shared_keys
        self._local.clear()

        if self.store is not None:
            for key in keys:
                await self._delete_shared(key)
        self._shared_keys.clear()

        self._debug("Schema cache cleared", entries_removed=len(keys))

    def get_cache_key(self, model: str, connection: str | None = None) -> str:
        """Build the cache key for a model and connection."""
        return f"{model}:{connection or 'default'}"

    async def _delete_shared(self, key: str) -> None:
        try:
            await self.store.delete(self.prefix + key)  # type: ignore[union-attr]
        except Exception as e:
            logger.warning(
                "Shared schema cache delete failed", cache_key=key, error=str(e)
            )

    def _debug(self, message: str, **context: Any) -> None:
        if self.debug:
            logger.debug(message, **context)
