"""Process-wide caches used by the timeline engine."""

from .timestamp import TimestampCache, parse_timestamp_ms
from .transform import ActivityTransformCache, transform_key

__all__ = ["ActivityTransformCache", "TimestampCache", "parse_timestamp_ms", "transform_key"]
