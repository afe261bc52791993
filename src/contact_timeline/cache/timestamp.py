"""Memoized ISO-8601 timestamp parsing."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from contact_timeline.config import Settings

logger = structlog.get_logger()


def parse_timestamp_ms(value: str) -> int:
    """Parse an ISO-8601 string to epoch milliseconds.

    Naive values are read as UTC. Empty or unparseable values map to 0 so
    they sort as the oldest entries instead of raising.
    """

    if not value:
        return 0
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class TimestampCache:
    """Caches parsed timestamps and flushes entirely past ``max_entries``."""

    def __init__(self, max_entries: int | None = None, settings: Settings | None = None) -> None:
        if max_entries is None:
            from contact_timeline.config import get_settings

            max_entries = (settings or get_settings()).timestamp_cache_max_entries
        self._max_entries = max_entries
        self._entries: dict[str, int] = {}

    def timestamp(self, value: str) -> int:
        cached = self._entries.get(value)
        if cached is not None:
            return cached

        parsed = parse_timestamp_ms(value)
        if len(self._entries) >= self._max_entries:
            logger.debug("timestamp_cache_flushed", size=len(self._entries))
            self._entries.clear()
        self._entries[value] = parsed
        return parsed

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
