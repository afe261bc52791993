"""Contract of the raw mail fetch collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from contact_timeline.models import RawEmailMessage


@dataclass(frozen=True)
class EmailPage:
    """One page of a contact's emails, newest first."""

    emails: list[RawEmailMessage] = field(default_factory=list)
    next_cursor: str | None = None
    total_count: int | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


@runtime_checkable
class MailFetcher(Protocol):
    """Raw page fetch and backfill for one mailbox.

    Implementations raise on failure; the coordinator turns errors into state.
    Timeouts are the implementation's concern.
    """

    async def fetch_page(self, contact_email: str, cursor: str | None, limit: int) -> EmailPage:
        """Fetch the page after ``cursor`` (``None`` for the first page)."""
        ...

    async def sync_history(self, contact_email: str, user_id: str) -> None:
        """Backfill the contact's full email history."""
        ...
