"""
Read Cache for Derived View-Models

Member views, account balances and bill views are recomputed from the
store on every read. This cache holds the computed views for a short TTL.

Each entry declares what it depends on as (entity_type, entity_id)
pairs. An entity_id of None means "any entity of this type". Writes call
invalidate(entity_type, entity_id) and every dependent entry is dropped.
The cache is never ground truth: a miss always rebuilds from the store.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Iterable, Optional
from uuid import UUID

import structlog


Dependency = tuple[str, Optional[UUID]]


@dataclass
class _Entry:
    value: Any
    stored_at: float
    depends_on: frozenset = field(default_factory=frozenset)


class ReadCache:
    """TTL cache with dependency-based invalidation."""

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, _Entry] = {}
        self._logger = structlog.get_logger(__name__)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None when missing or older than the TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry.value

    def set(
        self,
        key: Hashable,
        value: Any,
        depends_on: Iterable[Dependency] = (),
    ) -> None:
        if self._ttl <= 0:
            return
        self._entries[key] = _Entry(
            value=value,
            stored_at=self._clock(),
            depends_on=frozenset(depends_on),
        )

    def invalidate(self, entity_type: str, entity_id: Optional[UUID] = None) -> int:
        """
        Drop every entry that depends on the given entity.

        Returns the number of entries dropped.
        """
        stale = [
            key for key, entry in self._entries.items()
            if (entity_type, None) in entry.depends_on
            or (entity_id is not None and (entity_type, entity_id) in entry.depends_on)
            or (entity_id is None and any(t == entity_type for t, _ in entry.depends_on))
        ]
        for key in stale:
            del self._entries[key]

        if stale:
            self._logger.debug(
                "cache_invalidated",
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id else None,
                dropped=len(stale),
            )
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
