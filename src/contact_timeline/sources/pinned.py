"""Pinned-email lookup."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable


@runtime_checkable
class PinnedItems(Protocol):
    """The pinned-items collaborator, scoped per contact."""

    def is_email_pinned(self, contact_email: str, message_id: str) -> bool:
        ...


class InMemoryPinnedItems:
    """Pinned message ids held in memory per contact."""

    def __init__(self) -> None:
        self._pinned: dict[str, set[str]] = {}

    def pin(self, contact_email: str, message_ids: Iterable[str]) -> None:
        self._pinned.setdefault(contact_email, set()).update(message_ids)

    def unpin(self, contact_email: str, message_id: str) -> None:
        self._pinned.get(contact_email, set()).discard(message_id)

    def is_email_pinned(self, contact_email: str, message_id: str) -> bool:
        return message_id in self._pinned.get(contact_email, ())
