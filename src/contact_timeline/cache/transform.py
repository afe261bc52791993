"""Memoized conversion of raw records into timeline activities."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from contact_timeline.config import Settings

logger = structlog.get_logger()

A = TypeVar("A")

TransformKey = tuple[str, str, str, bool]


def transform_key(kind: str, record_id: str, timestamp: str, is_pinned: bool) -> TransformKey:
    """Build the cache key for one record.

    The key embeds the mutable fields (timestamp, pinned flag), so changing
    either of them is always a miss.
    """
    return (kind, record_id, timestamp, bool(is_pinned))


class ActivityTransformCache:
    """Caches transformed activities and flushes entirely past ``max_entries``.

    Each entry remembers the raw record it was computed from; a hit is only
    returned while that record is still equal to the one being looked up.
    """

    def __init__(self, max_entries: int | None = None, settings: Settings | None = None) -> None:
        if max_entries is None:
            from contact_timeline.config import get_settings

            max_entries = (settings or get_settings()).transform_cache_max_entries
        self._max_entries = max_entries
        self._entries: dict[TransformKey, tuple[Any, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get_or_transform(self, key: TransformKey, raw: Any, transform: Callable[[Any], A]) -> A:
        entry = self._entries.get(key)
        if entry is not None and entry[0] == raw:
            self.hits += 1
            return entry[1]

        self.misses += 1
        activity = transform(raw)
        if len(self._entries) >= self._max_entries:
            logger.debug("transform_cache_flushed", size=len(self._entries))
            self._entries.clear()
        self._entries[key] = (raw, activity)
        return activity

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
