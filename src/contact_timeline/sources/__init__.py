"""Collaborator contracts for internal activities and pinned emails."""

from .activities import (
    ActivityQueryResult,
    ActivityReadResult,
    ActivitySourceAdapter,
    ActivityStore,
    JsonActivityStore,
)
from .pinned import InMemoryPinnedItems, PinnedItems

__all__ = [
    "ActivityQueryResult",
    "ActivityReadResult",
    "ActivitySourceAdapter",
    "ActivityStore",
    "InMemoryPinnedItems",
    "JsonActivityStore",
    "PinnedItems",
]
