"""Mail fetcher that pages from the local store and backfills it from Gmail."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from typing import Protocol

import structlog

from contact_timeline.config import Settings
from contact_timeline.exceptions import EmailFetchError, EmailStoreError
from contact_timeline.models import RawEmailMessage
from contact_timeline.store.repository import EmailStoreRepository
from contact_timeline.sync import EmailPage

logger = structlog.get_logger()


class HistorySource(Protocol):
    """Anything that can stream a contact's full mail history in batches."""

    def iter_history(
        self, contact_email: str, batch_size: int | None = None
    ) -> AsyncIterator[list[RawEmailMessage]]: ...


class StoredEmailFetcher:
    """Serves pages from SQLite; ``sync_history`` pulls the history into it.

    Cursors are stringified offsets into the contact's stored emails, newest
    first.
    """

    def __init__(
        self,
        repository: EmailStoreRepository,
        source: HistorySource,
        settings: Settings | None = None,
    ) -> None:
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self.repository = repository
        self.source = source

    async def fetch_page(self, contact_email: str, cursor: str | None, limit: int) -> EmailPage:
        try:
            offset = int(cursor) if cursor else 0
        except ValueError as exc:
            raise EmailFetchError(f"Invalid page cursor: {cursor!r}") from exc

        try:
            page = await asyncio.to_thread(self.repository.page, contact_email, offset, limit)
        except sqlite3.Error as exc:
            raise EmailStoreError(f"Failed to read stored emails for {contact_email}: {exc}") from exc

        loaded = offset + len(page.emails)
        next_cursor = str(loaded) if page.emails and loaded < page.total_count else None
        logger.debug(
            "stored_page_fetched",
            contact_email=contact_email,
            offset=offset,
            count=len(page.emails),
            total=page.total_count,
        )
        return EmailPage(emails=page.emails, next_cursor=next_cursor, total_count=page.total_count)

    async def sync_history(self, contact_email: str, user_id: str) -> None:
        logger.info("email_history_sync_started", contact_email=contact_email, user_id=user_id)

        synced = 0
        async for batch in self.source.iter_history(contact_email, self.settings.store_batch_size):
            try:
                await asyncio.to_thread(self.repository.upsert_many, contact_email, batch)
            except sqlite3.Error as exc:
                raise EmailStoreError(f"Failed to store emails for {contact_email}: {exc}") from exc
            synced += len(batch)
            logger.info("email_history_batch_stored", contact_email=contact_email, synced=synced)

        logger.info("email_history_sync_completed", contact_email=contact_email, synced=synced)
